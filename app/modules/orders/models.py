# Supabase tables: orders
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

orders:
- id: uuid (primary key)
- order_number: integer (unique) - allocated by get_next_order_number()
- title: text (not null)
- price: numeric (not null)
- brand: text (nullable)
- model: text (nullable)
- place_number: integer (default: 1)
- delivery_method: text (self_pickup, cargo_rf, cargo_kz)
- delivery_price_confirm: numeric (nullable)
- text_order: text (nullable) - free-form buyer notes
- status: text (created, seller_confirmed, admin_confirmed, processed, shipped, delivered, cancelled)
- order_created_type: text (free_order, ads_order, product_order, price_offer_order)
- product_id: uuid (nullable, references products.id)
- buyer_id: uuid (references profiles.id)
- seller_id: uuid (references profiles.id)
- buyer_opt_id: text (nullable)
- seller_opt_id: text (nullable)
- telegram_url_order: text (nullable) - buyer Telegram username
- images: text[] (default: {}) - at most 35 photo URLs
- video_url: text[] (default: {})
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

RPC:
- get_next_order_number() -> integer
"""

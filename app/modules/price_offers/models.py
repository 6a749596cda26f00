# Supabase tables: price_offers
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

price_offers:
- id: uuid (primary key)
- product_id: uuid (references products.id)
- buyer_id: uuid (references profiles.id)
- seller_id: uuid (references profiles.id)
- original_price: numeric - product price when the offer was made
- offered_price: numeric (> 0, <= original_price)
- message: text (nullable) - buyer note
- seller_response: text (nullable)
- status: text (pending, accepted, rejected, expired, cancelled; default pending)
- expires_at: timestamp - created_at + 72h, reset when the price changes
- order_id: uuid (nullable, references orders.id) - set on accept
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

At most one pending offer per (product_id, buyer_id); a new offer from the
same buyer updates the pending one.
"""

# Supabase tables: products, product_images, product_videos
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

products:
- id: uuid (primary key)
- lot_number: integer (unique, assigned by a sequence on insert)
- title: text (not null)
- price: numeric (not null)
- delivery_price: numeric (nullable)
- brand: text (nullable)
- model: text (nullable)
- description: text (nullable)
- place_number: integer (default: 1) - number of packages
- status: text (pending, active, sold, archived; default pending)
- seller_id: uuid (references profiles.id)
- seller_name: text - copied from the seller profile
- optid_created: text - seller OPT_ID at creation time
- telegram_url: text (nullable) - seller Telegram username
- cloudinary_url: text (nullable) - primary image
- cloudinary_public_id: text (nullable)
- preview_image_url: text (nullable) - compressed primary image
- view_count: integer (default: 0) - incremented by increment_product_view_count(product_id)
- telegram_notification_status: text (not_sent, sent, failed)
- telegram_message_id: text (nullable)
- telegram_confirmed_at: timestamp (nullable)
- telegram_last_error: text (nullable)
- last_notification_sent_at: timestamp (nullable) - drives the repost cooldown
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

product_images:
- id: uuid (primary key)
- product_id: uuid (references products.id, on delete cascade)
- url: text (not null)
- public_id: text (nullable) - CDN asset id
- is_primary: boolean (default: false) - exactly one per product with images
- created_at: timestamp (default: now())

product_videos:
- id: uuid (primary key)
- product_id: uuid (references products.id, on delete cascade)
- url: text (not null)
- created_at: timestamp (default: now())
"""

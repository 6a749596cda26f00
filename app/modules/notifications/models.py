# Supabase tables: notifications, event_logs, telegram_notifications_log
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

notifications:
- id: uuid (primary key)
- user_id: uuid (foreign key to profiles.id, not null)
- type: text (not null) - e.g. price_offer, order_status, product_status
- title: text (not null)
- message: text (not null)
- data: jsonb (default: {})
- read: boolean (default: false)
- created_at: timestamp (default: now())

event_logs:
- id: uuid (primary key)
- action_type: text (not null)
- entity_type: text (not null)
- entity_id: uuid (nullable)
- user_id: uuid (nullable)
- details: jsonb (nullable)
- created_at: timestamp (default: now())

telegram_notifications_log:
- id: uuid (primary key)
- function_name: text
- notification_type: text
- recipient_type: text - personal | group
- recipient_identifier: text
- recipient_name: text (nullable)
- message_text: text (nullable, first 500 chars)
- status: text - sent | failed | pending
- telegram_message_id: text (nullable)
- related_entity_type: text (nullable)
- related_entity_id: uuid (nullable)
- error_message: text (nullable)
- metadata: jsonb (nullable)
- created_at: timestamp (default: now())
"""

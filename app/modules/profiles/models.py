# Supabase tables: profiles, auth.users
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

profiles:
- id: uuid (primary key, references auth.users.id)
- email: text (not null) - synced from auth.users
- full_name: text (nullable)
- user_type: text (buyer, seller, admin; default buyer)
- verification_status: text (pending, verified, blocked; default pending)
- opt_id: text (unique, nullable) - short public trading id, e.g. "MDY"
- phone: text (nullable)
- company_name: text (nullable)
- location: text (nullable)
- description_user: text (nullable)
- telegram: text (nullable) - username without "@"
- telegram_id: bigint (nullable, unique) - chat id for direct bot messages
- avatar_url: text (nullable)
- auth_method: text (email, telegram)
- admin_new_user_notified_at: timestamp (nullable) - set once admins were told about the account
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Note: profiles rows are created by a database trigger on auth.users insert,
copying user_type and full_name from the sign-up metadata.

telegram_user_sessions:
- id: uuid (primary key)
- user_id: bigint - Telegram id of the admin uploading order photos
- order_id: uuid (references orders.id)
- expires_at: timestamp
- created_at: timestamp (default: now())
"""

# Supabase Auth
# This module uses Supabase's built-in authentication system
# Marketplace data for each account lives in public.profiles (see profiles/models.py)

"""
Supabase Auth provides:
- auth.sign_up() - Register new users (user_type and full_name go into user_metadata;
  a database trigger creates the matching profiles row)
- auth.sign_in_with_password() - Authenticate users
- auth.get_user() - Get current user from JWT token
- auth.sign_out() - Logout users
- auth.admin.create_user() / update_user_by_id() - Telegram login (service role key required)

Telegram-created accounts use the placeholder email telegram_<telegram_id>@temp.telegram
and carry auth_method=telegram in user_metadata.
"""

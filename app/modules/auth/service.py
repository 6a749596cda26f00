import hashlib
import hmac
import time
import uuid
from supabase import Client
from app.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse,
    TelegramAuthData, TelegramLoginResponse
)
from app.config.settings import settings
from fastapi import HTTPException
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


def clear_auth_cache():
    _AUTH_USER_CACHE.clear()


def prune_auth_cache(now: float):
    for key in [key for key, (_, expiry) in _AUTH_USER_CACHE.items() if expiry <= now]:
        del _AUTH_USER_CACHE[key]


def telegram_data_check_string(fields: Dict[str, Any]) -> str:
    """Non-empty fields except hash, sorted by key, joined as key=value lines."""
    pairs = sorted(
        (key, value) for key, value in fields.items()
        if key != "hash" and value is not None and value != ""
    )
    return "\n".join(f"{key}={value}" for key, value in pairs)


def verify_telegram_auth(fields: Dict[str, Any], bot_token: str) -> bool:
    """Check a Telegram Login Widget payload: HMAC-SHA256 keyed with SHA256(bot_token)."""
    received = fields.get("hash")
    if not received or not bot_token:
        return False
    secret_key = hashlib.sha256(bot_token.encode()).digest()
    expected = hmac.new(secret_key, telegram_data_check_string(fields).encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, str(received))


class AuthService:
    def __init__(self, supabase: Client, admin_client: Optional[Client] = None):
        self.supabase = supabase
        self.admin_client = admin_client

    def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Register a new user using Supabase Auth"""
        try:
            user_metadata = {"user_type": register_data.user_type}
            if register_data.full_name:
                user_metadata["full_name"] = register_data.full_name

            auth_response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {
                    "data": user_metadata
                }
            })

            if not auth_response.user:
                raise HTTPException(status_code=400, detail="Failed to register user")

            return RegisterResponse(
                user_id=auth_response.user.id,
                email=auth_response.user.email or register_data.email,
                message="User registered successfully"
            )
        except HTTPException:
            raise
        except Exception as e:
            error_message = str(e)
            if "already registered" in error_message.lower() or "already exists" in error_message.lower():
                raise HTTPException(status_code=400, detail="User already exists")
            raise HTTPException(status_code=500, detail=f"Registration failed: {error_message}")

    def login(self, login_data: LoginRequest) -> TokenResponse:
        """Authenticate user using Supabase Auth"""
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })

            if not auth_response.user or not auth_response.session:
                raise HTTPException(status_code=401, detail="Invalid credentials")

            return TokenResponse(
                access_token=auth_response.session.access_token,
                token_type="bearer",
                user_id=auth_response.user.id,
                email=auth_response.user.email or login_data.email
            )
        except HTTPException:
            raise
        except Exception as e:
            error_message = str(e)
            if "invalid" in error_message.lower() or "credentials" in error_message.lower():
                raise HTTPException(status_code=401, detail="Invalid email or password")
            raise HTTPException(status_code=500, detail=f"Login failed: {error_message}")

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                user_data, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry:
                    return user_data
                del _AUTH_USER_CACHE[cache_key]
            user_response = self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            user = user_response.user
            user_data = {
                "id": user.id,
                "email": user.email,
                "user_metadata": user.user_metadata or {},
                "app_metadata": user.app_metadata or {},
                "created_at": user.created_at,
                "updated_at": user.updated_at
            }
            if len(_AUTH_USER_CACHE) >= _AUTH_CACHE_MAX_SIZE:
                prune_auth_cache(now)
            if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
                _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
            return user_data
        except HTTPException:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")

    def logout(self, token: str) -> bool:
        """Logout user using Supabase Auth"""
        try:
            # Supabase tokens are stateless JWTs; drop our cached lookup and let the token expire
            _AUTH_USER_CACHE.pop(hashlib.sha256(token.encode()).hexdigest(), None)
            self.supabase.auth.sign_out()
            return True
        except Exception:
            return False

    def telegram_login(self, auth_data: TelegramAuthData, bot_token: Optional[str]) -> TelegramLoginResponse:
        """
        Log in through the Telegram Login Widget.
        Existing accounts (matched on profiles.telegram_id) get a fresh one-time password;
        unknown Telegram users get a new account with a placeholder email.
        The client signs in with the returned credentials.
        """
        if not bot_token:
            raise HTTPException(status_code=500, detail="TELEGRAM_BOT_TOKEN not configured")
        if self.admin_client is None:
            raise HTTPException(status_code=500, detail="Service role key not configured")

        if not verify_telegram_auth(auth_data.model_dump(), bot_token):
            logger.warning(f"Invalid Telegram auth payload for telegram_id {auth_data.id}")
            raise HTTPException(status_code=400, detail="Invalid Telegram authentication data")

        age = int(time.time()) - auth_data.auth_date
        if age > settings.telegram_auth_max_age_seconds:
            raise HTTPException(status_code=400, detail="Authentication data is too old")

        full_name = f"{auth_data.first_name} {auth_data.last_name or ''}".strip()
        temp_password = str(uuid.uuid4())

        try:
            existing = self.admin_client.table("profiles")\
                .select("id, email")\
                .eq("telegram_id", auth_data.id)\
                .limit(1)\
                .execute()

            if existing.data:
                profile = existing.data[0]
                self.admin_client.auth.admin.update_user_by_id(profile["id"], {"password": temp_password})
                self.admin_client.table("profiles").update({
                    "full_name": full_name,
                    "avatar_url": auth_data.photo_url,
                    "telegram": auth_data.username,
                }).eq("id", profile["id"]).execute()
                logger.info(f"Telegram login for existing profile {profile['id']}")
                return TelegramLoginResponse(email=profile["email"], password=temp_password, is_new_user=False)

            email = f"telegram_{auth_data.id}@temp.telegram"
            created = self.admin_client.auth.admin.create_user({
                "email": email,
                "password": temp_password,
                "email_confirm": True,
                "user_metadata": {
                    "auth_method": "telegram",
                    "telegram_id": auth_data.id,
                    "telegram_username": auth_data.username,
                    "telegram_first_name": auth_data.first_name,
                    "photo_url": auth_data.photo_url,
                    "full_name": full_name,
                }
            })
            if not created or not created.user:
                raise HTTPException(status_code=500, detail="Failed to create Telegram user")
            logger.info(f"Created Telegram user {created.user.id} for telegram_id {auth_data.id}")
            return TelegramLoginResponse(email=email, password=temp_password, is_new_user=True)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Telegram login failed for telegram_id {auth_data.id}: {e}")
            raise HTTPException(status_code=500, detail=f"Telegram login failed: {str(e)}")

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for admin auth operations and background jobs

    # Telegram
    telegram_bot_token: Optional[str] = None
    telegram_bot_id: int = 0
    telegram_product_group_chat_id: str = ""
    telegram_order_group_chat_id: str = ""
    telegram_webhook_secret: Optional[str] = None
    telegram_auth_max_age_seconds: int = 300
    telegram_bot_username: str = "partsbay_bot"
    telegram_upload_session_hours: int = 24  # how long /start order_<id> keeps an admin attached to an order

    # Cloudinary
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    cloudinary_default_folder: str = "products"

    # Resend (transactional email)
    resend_api_key: Optional[str] = None
    email_from: str = "PartsBay.ae <noreply@partsbay.ae>"

    # Pusher (offer/order fan-out)
    pusher_app_id: Optional[str] = None
    pusher_key: Optional[str] = None
    pusher_secret: Optional[str] = None
    pusher_cluster: str = "eu"

    # AWS S3 media backup (will read from uppercase env vars automatically)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_bucket_name: Optional[str] = None

    # Marketplace
    site_url: str = "https://partsbay.ae"
    max_order_photos: int = 35
    repost_cooldown_hours: int = 72
    offer_ttl_hours: int = 72
    offer_expiry_interval_seconds: int = 300
    enable_background_jobs: bool = False

    # App
    app_name: str = "partsbay-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    http_timeout_seconds: float = 30.0

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cloudinary_configured(self) -> bool:
        return all([self.cloudinary_cloud_name, self.cloudinary_api_key, self.cloudinary_api_secret])

    @property
    def s3_configured(self) -> bool:
        return all([self.aws_access_key_id, self.aws_secret_access_key, self.s3_bucket_name])

    @property
    def pusher_configured(self) -> bool:
        return all([self.pusher_app_id, self.pusher_key, self.pusher_secret])

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()

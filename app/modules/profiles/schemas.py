from pydantic import BaseModel, field_validator
from typing import Optional, Literal
from datetime import datetime

UserType = Literal["buyer", "seller", "admin"]
VerificationStatus = Literal["pending", "verified", "blocked"]


def normalize_opt_id(value: str) -> str:
    """OPT_IDs are stored upper-case and matched exactly."""
    return value.strip().upper()


def normalize_telegram_username(value: Optional[str]) -> Optional[str]:
    """Accept "@name", "https://t.me/name" or "name"; store "name"."""
    if value is None:
        return None
    value = value.strip()
    for prefix in ("https://t.me/", "http://t.me/", "t.me/"):
        if value.lower().startswith(prefix):
            value = value[len(prefix):]
            break
    return value.lstrip("@").strip() or None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    location: Optional[str] = None
    telegram: Optional[str] = None
    description_user: Optional[str] = None
    avatar_url: Optional[str] = None

    @field_validator("telegram")
    @classmethod
    def clean_telegram(cls, value):
        return normalize_telegram_username(value)


class VerificationUpdate(BaseModel):
    verification_status: VerificationStatus


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    user_type: str = "buyer"
    verification_status: str = "pending"
    opt_id: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    location: Optional[str] = None
    description_user: Optional[str] = None
    telegram: Optional[str] = None
    telegram_id: Optional[int] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

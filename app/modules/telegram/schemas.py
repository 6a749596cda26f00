from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Literal, Optional, Union


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    title: Optional[str] = None
    type: Optional[str] = None


class TelegramPhotoSize(BaseModel):
    file_id: str
    file_unique_id: Optional[str] = None
    width: int = 0
    height: int = 0
    file_size: Optional[int] = None


class TelegramMessage(BaseModel):
    message_id: int
    date: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    text: Optional[str] = None
    caption: Optional[str] = None
    media_group_id: Optional[str] = None
    photo: Optional[List[TelegramPhotoSize]] = None
    video: Optional[Dict[str, Any]] = None
    document: Optional[Dict[str, Any]] = None
    animation: Optional[Dict[str, Any]] = None

    class Config:
        populate_by_name = True


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    channel_post: Optional[TelegramMessage] = None


class WebhookResponse(BaseModel):
    ok: bool = True
    product_id: Optional[str] = None
    lot_number: Optional[int] = None
    order_id: Optional[str] = None
    reason: Optional[str] = None


RecipientGroup = Literal["all_users", "sellers", "buyers", "verified_users", "pending_users"]


class PersonalMessageRequest(BaseModel):
    user_id: str
    message: str = Field(..., min_length=1, max_length=4096)
    images: List[str] = []


class BulkMessageRequest(BaseModel):
    recipients: Union[List[str], RecipientGroup]
    message: str = Field(..., min_length=1, max_length=4096)
    images: List[str] = []

    @field_validator("recipients")
    @classmethod
    def recipients_not_empty(cls, value):
        if isinstance(value, list) and not value:
            raise ValueError("At least one recipient is required")
        return value


class PersonalMessageResponse(BaseModel):
    success: bool = True
    telegram_message_id: Optional[str] = None


class BulkMessageError(BaseModel):
    user_id: str
    user_name: Optional[str] = None
    error: str


class BulkMessageResponse(BaseModel):
    total: int
    sent: int
    failed: int
    errors: List[BulkMessageError] = []


class UploadLinkResponse(BaseModel):
    order_id: str
    url: str

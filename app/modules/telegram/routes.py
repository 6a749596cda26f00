from fastapi import APIRouter, Depends, Header, HTTPException, status
from app.config import settings
from app.database.supabase_client import get_service_supabase
from app.modules.media.cloudinary_storage import CloudinaryStorage
from app.modules.media.routes import get_optional_cloudinary_storage
from app.modules.orders.service import OrderService
from app.modules.profiles.service import ProfileService
from app.modules.telegram.client import TelegramClient, get_telegram_client
from app.modules.telegram.media_intake import OrderMediaIntake, upload_link
from app.modules.telegram.schemas import (
    TelegramUpdate, WebhookResponse, PersonalMessageRequest, PersonalMessageResponse,
    BulkMessageRequest, BulkMessageResponse, UploadLinkResponse
)
from app.modules.telegram.service import TelegramNotifier, get_telegram_notifier
from app.modules.telegram.webhook import TelegramWebhookService
from app.core.dependencies import require_permission, require_admin
from supabase import Client
from typing import Dict, Optional
import hmac

router = APIRouter(prefix="/telegram", tags=["telegram"])


def get_webhook_service(
    supabase: Client = Depends(get_service_supabase),
    client: TelegramClient = Depends(get_telegram_client),
    storage: Optional[CloudinaryStorage] = Depends(get_optional_cloudinary_storage)
) -> TelegramWebhookService:
    return TelegramWebhookService(supabase, intake=OrderMediaIntake(supabase, client, storage))


@router.post("/webhook", response_model=WebhookResponse)
async def telegram_webhook(
    update: TelegramUpdate,
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
    service: TelegramWebhookService = Depends(get_webhook_service)
):
    """Bot webhook. Ignored updates still answer ok so Telegram does not redeliver them."""
    secret = settings.telegram_webhook_secret
    if secret and not hmac.compare_digest(x_telegram_bot_api_secret_token or "", secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")
    return service.handle_update(update)


@router.get("/upload-link/{order_id}", response_model=UploadLinkResponse)
async def get_upload_link(
    order_id: str,
    profile: Dict = Depends(require_admin),
    supabase: Client = Depends(get_service_supabase)
):
    """Deep link that opens the bot chat bound to an order for photo uploads"""
    OrderService(supabase).get_order(order_id, profile)
    return UploadLinkResponse(order_id=order_id, url=upload_link(order_id))


@router.post("/messages/personal", response_model=PersonalMessageResponse)
async def send_personal_message(
    request: PersonalMessageRequest,
    profile: Dict = Depends(require_permission("telegram:message")),
    supabase: Client = Depends(get_service_supabase),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Send a message, optionally with photos, to one user's Telegram"""
    target = ProfileService(supabase).get_profile_row(request.user_id)
    message_id = notifier.send_personal_message(target, request.message, request.images, profile)
    return PersonalMessageResponse(telegram_message_id=message_id)


@router.post("/messages/bulk", response_model=BulkMessageResponse)
async def send_bulk_message(
    request: BulkMessageRequest,
    profile: Dict = Depends(require_permission("telegram:message")),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Send a message to a list of users or a named group; users without Telegram are counted but skipped"""
    return notifier.send_bulk_message(request.recipients, request.message, request.images, profile)

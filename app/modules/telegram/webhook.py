import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException
from supabase import Client

from app.config import settings
from app.modules.notifications.service import NotificationService
from app.modules.telegram.media_intake import OrderMediaIntake
from app.modules.telegram.schemas import TelegramUpdate, WebhookResponse
import logging

logger = logging.getLogger(__name__)

_LOT_PATTERNS = (
    re.compile(r"LOT\(лот\)\s*#(\d+)", re.IGNORECASE),
    re.compile(r"Лот\s*#(\d+)", re.IGNORECASE),
)


def extract_lot_number(text: Optional[str]) -> Optional[int]:
    for pattern in _LOT_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return int(match.group(1))
    return None


def _bare_chat_id(chat_id) -> str:
    """Supergroup ids come as -100<id>; compare on the bare id."""
    value = str(chat_id).strip().lstrip("-")
    return value[3:] if value.startswith("100") and len(value) > 10 else value


def is_same_chat(chat_id, configured_chat_id) -> bool:
    if not configured_chat_id:
        return False
    return _bare_chat_id(chat_id) == _bare_chat_id(configured_chat_id)


class TelegramWebhookService:
    """Confirms lot publication when the bot's own post shows up in the product group.
    Private chats with the bot go to the order photo intake."""

    def __init__(self, supabase: Client, notifications: Optional[NotificationService] = None,
                 intake: Optional[OrderMediaIntake] = None):
        self.supabase = supabase
        self.notifications = notifications or NotificationService(supabase)
        self.intake = intake

    def handle_update(self, update: TelegramUpdate) -> WebhookResponse:
        message = update.message or update.channel_post
        if message is None:
            return WebhookResponse(reason="no message")

        if update.message is not None and message.chat.type == "private":
            if self.intake is None:
                return WebhookResponse(reason="private chat")
            return self.intake.handle(message)

        if not is_same_chat(message.chat.id, settings.telegram_product_group_chat_id):
            logger.debug(f"Skip update {update.update_id}: chat {message.chat.id} is not the product group")
            return WebhookResponse(reason="other chat")

        sender = message.from_user
        if not sender or not sender.is_bot or sender.id != settings.telegram_bot_id:
            logger.debug(f"Skip update {update.update_id}: sender is not the bot")
            return WebhookResponse(reason="other sender")

        lot_number = extract_lot_number(message.text or message.caption)
        if lot_number is None:
            return WebhookResponse(reason="no lot number")

        try:
            found = self.supabase.table("products")\
                .select("id, lot_number, title, telegram_notification_status")\
                .eq("lot_number", lot_number)\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Failed to look up lot #{lot_number}: {e}")
            return WebhookResponse(lot_number=lot_number, reason="lookup failed")
        if not found or not found.data:
            logger.warning(f"Lot #{lot_number} from Telegram not found")
            return WebhookResponse(lot_number=lot_number, reason="product not found")

        product = found.data
        posted_at = datetime.fromtimestamp(message.date, tz=timezone.utc).isoformat()
        try:
            self.supabase.table("products").update({
                "telegram_notification_status": "sent",
                "telegram_message_id": str(message.message_id),
                "telegram_confirmed_at": datetime.now(timezone.utc).isoformat(),
                "last_notification_sent_at": posted_at,
                "telegram_last_error": None,
            }).eq("id", product["id"]).execute()
        except Exception as e:
            logger.error(f"Failed to confirm lot #{lot_number}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        logger.info(f"Product {product['id']} (lot #{lot_number}) confirmed in Telegram")
        self.notifications.log_telegram_delivery(
            function_name="telegram_webhook",
            notification_type="product_published",
            recipient_type="group",
            recipient_identifier=str(message.chat.id),
            status="sent",
            message_text=message.text or message.caption,
            telegram_message_id=str(message.message_id),
            related_entity_type="product",
            related_entity_id=product["id"],
            metadata={
                "lot_number": lot_number,
                "previous_status": product.get("telegram_notification_status"),
                "confirmed_via": "webhook",
                "media_group_id": message.media_group_id,
            }
        )
        return WebhookResponse(product_id=product["id"], lot_number=lot_number)

"""
Order photo intake through the bot's private chat.

An admin opens the deep link from the admin panel (/start order_<id>), which
binds their Telegram account to that order for telegram_upload_session_hours.
Every photo they send afterwards is downloaded from Telegram, uploaded to the
CDN under orders/<id> and appended to the order's images.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config import settings
from app.modules.media.cloudinary_storage import CloudinaryError, CloudinaryStorage
from app.modules.orders.service import OrderService
from app.modules.telegram import messages
from app.modules.telegram.client import TelegramClient, TelegramError
from app.modules.telegram.schemas import TelegramMessage, TelegramPhotoSize, WebhookResponse
import logging

logger = logging.getLogger(__name__)

SESSION_TABLE = "telegram_user_sessions"
START_ORDER_PATTERN = re.compile(r"^/start\s+order_([0-9A-Za-z-]+)$")


def best_photo(sizes: List[TelegramPhotoSize]) -> TelegramPhotoSize:
    """Telegram sends several resolutions of each photo; keep the largest."""
    return max(sizes, key=lambda size: (size.file_size or 0, size.width * size.height))


def upload_link(order_id: str) -> str:
    return f"https://t.me/{settings.telegram_bot_username}?start=order_{order_id}"


class OrderMediaIntake:
    def __init__(
        self,
        supabase: Client,
        client: TelegramClient,
        storage: Optional[CloudinaryStorage],
        orders: Optional[OrderService] = None,
    ):
        self.supabase = supabase
        self.client = client
        self.storage = storage
        self.orders = orders or OrderService(supabase)

    def _reply(self, chat_id, text: str) -> None:
        try:
            self.client.send_message(chat_id, text)
        except TelegramError as e:
            logger.warning(f"Could not reply in chat {chat_id}: {e.description}")

    def _admin_for(self, telegram_id: int) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("profiles")\
            .select("*")\
            .eq("telegram_id", telegram_id)\
            .eq("user_type", "admin")\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _session_order_id(self, telegram_id: int) -> Optional[str]:
        result = self.supabase.table(SESSION_TABLE)\
            .select("order_id, expires_at")\
            .eq("user_id", telegram_id)\
            .gt("expires_at", datetime.now(timezone.utc).isoformat())\
            .order("expires_at", desc=True)\
            .limit(1)\
            .execute()
        return result.data[0]["order_id"] if result.data else None

    def _open_session(self, telegram_id: int, order_id: str) -> None:
        now = datetime.now(timezone.utc)
        self.supabase.table(SESSION_TABLE).delete().lt("expires_at", now.isoformat()).execute()
        self.supabase.table(SESSION_TABLE).delete().eq("user_id", telegram_id).execute()
        self.supabase.table(SESSION_TABLE).insert({
            "user_id": telegram_id,
            "order_id": order_id,
            "expires_at": (now + timedelta(hours=settings.telegram_upload_session_hours)).isoformat(),
        }).execute()

    def handle(self, message: TelegramMessage) -> WebhookResponse:
        chat_id = message.chat.id
        sender = message.from_user
        if sender is None or sender.is_bot:
            return WebhookResponse(reason="no sender")
        try:
            admin = self._admin_for(sender.id)
            if admin is None:
                logger.info(f"Rejected private message from non-admin Telegram user {sender.id}")
                self._reply(chat_id, messages.UPLOAD_ADMINS_ONLY)
                return WebhookResponse(reason="not an admin")

            started = START_ORDER_PATTERN.match((message.text or "").strip())
            if started:
                return self._start_session(chat_id, sender.id, started.group(1), admin)
            if message.photo:
                return self._attach_photo(message, admin)
            if message.video or message.document or message.animation:
                self._reply(chat_id, messages.UPLOAD_PHOTOS_ONLY)
                return WebhookResponse(reason="unsupported media")
            return self._show_session(chat_id, sender.id, admin)
        except Exception as e:
            logger.error(f"Order photo intake failed for Telegram user {sender.id}: {e}")
            self._reply(chat_id, messages.UPLOAD_FAILED)
            return WebhookResponse(reason="intake failed")

    def _start_session(self, chat_id, telegram_id: int, order_id: str, admin: Dict[str, Any]) -> WebhookResponse:
        try:
            order = self.orders.get_order(order_id, admin)
        except HTTPException as e:
            if e.status_code != 404:
                raise
            self._reply(chat_id, messages.UPLOAD_ORDER_NOT_FOUND)
            return WebhookResponse(order_id=order_id, reason="order not found")
        self._open_session(telegram_id, order_id)
        logger.info(f"Admin {admin['id']} started a photo upload session for order {order_id}")
        self._reply(chat_id, messages.build_upload_session_started(order.get("order_number")))
        return WebhookResponse(order_id=order_id, reason="session started")

    def _show_session(self, chat_id, telegram_id: int, admin: Dict[str, Any]) -> WebhookResponse:
        order_id = self._session_order_id(telegram_id)
        if order_id is None:
            self._reply(chat_id, messages.UPLOAD_NO_SESSION)
            return WebhookResponse(reason="no session")
        order = self.orders.get_order(order_id, admin)
        self._reply(chat_id, messages.build_upload_session_current(order.get("order_number")))
        return WebhookResponse(order_id=order_id, reason="session active")

    def _attach_photo(self, message: TelegramMessage, admin: Dict[str, Any]) -> WebhookResponse:
        chat_id = message.chat.id
        order_id = self._session_order_id(message.from_user.id)
        if order_id is None:
            self._reply(chat_id, messages.UPLOAD_NO_SESSION)
            return WebhookResponse(reason="no session")
        if self.storage is None:
            logger.error("Cloudinary is not configured, cannot accept order photos")
            self._reply(chat_id, messages.UPLOAD_FAILED)
            return WebhookResponse(order_id=order_id, reason="storage not configured")

        order = self.orders.get_order(order_id, admin)
        try:
            self.orders.check_photo_capacity(order, 1)
        except HTTPException:
            self._reply(chat_id, messages.build_photo_limit_reached(order.get("order_number"), settings.max_order_photos))
            return WebhookResponse(order_id=order_id, reason="photo limit reached")

        photo = best_photo(message.photo)
        try:
            content = self.client.download_file(self.client.get_file_path(photo.file_id))
            uploaded = self.storage.upload(
                content,
                f"order_{order_id}_{message.message_id}.jpg",
                f"orders/{order_id}",
                content_type="image/jpeg"
            )
            updated = self.orders.attach_order_media(order_id, [uploaded["secure_url"]], [], admin)
        except (TelegramError, CloudinaryError, HTTPException) as e:
            logger.error(f"Failed to attach Telegram photo {photo.file_id} to order {order_id}: {e}")
            self._reply(chat_id, messages.UPLOAD_FAILED)
            return WebhookResponse(order_id=order_id, reason="upload failed")

        logger.info(f"Attached Telegram photo to order {order_id}: {uploaded['secure_url']}")
        self._reply(chat_id, messages.build_photo_attached(
            order.get("order_number"), len(updated.get("images") or []), settings.max_order_photos
        ))
        return WebhookResponse(order_id=order_id, reason="photo attached")

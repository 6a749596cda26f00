"""
Outbound Telegram notifications: lots to the product group, orders to the
order group, and direct messages to sellers, admins and verified users.
Delivery is best-effort; every attempt is written to telegram_notifications_log.
"""
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, HTTPException
from supabase import Client

from app.config import settings
from app.database.supabase_client import get_service_supabase
from app.modules.notifications.service import NotificationService
from app.modules.telegram import messages
from app.modules.telegram.client import (
    TelegramClient, TelegramError, get_telegram_client, normalize_group_chat_id,
    build_media_items, chunk_media, MAX_MEDIA_PER_GROUP
)
import logging

logger = logging.getLogger(__name__)

ADMIN_MESSAGE_PAUSE_SEC = 1
PERSONAL_CHUNK_PAUSE_SEC = 2
BULK_BATCH_SIZE = 10
BULK_BATCH_PAUSE_SEC = 1

# Named recipient groups for bulk messages: profile column and value, None for everyone
RECIPIENT_GROUPS = {
    "all_users": None,
    "sellers": ("user_type", "seller"),
    "buyers": ("user_type", "buyer"),
    "verified_users": ("verification_status", "verified"),
    "pending_users": ("verification_status", "pending"),
}


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _message_id(result: Dict[str, Any]) -> Optional[str]:
    payload = result.get("result")
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if isinstance(payload, dict) and payload.get("message_id") is not None:
        return str(payload["message_id"])
    return None


def prefers_english(profile: Dict[str, Any]) -> bool:
    """Sellers are messaged in English, everyone else in Russian."""
    return (profile or {}).get("user_type") == "seller"


class TelegramNotifier:
    def __init__(
        self,
        supabase: Client,
        client: TelegramClient,
        notifications: Optional[NotificationService] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.supabase = supabase
        self.client = client
        self.notifications = notifications or NotificationService(supabase)
        self._sleep = sleep

    def _log(self, function_name: str, notification_type: str, recipient_type: str, recipient_identifier,
             status: str, **kwargs):
        self.notifications.log_telegram_delivery(
            function_name=function_name,
            notification_type=notification_type,
            recipient_type=recipient_type,
            recipient_identifier=recipient_identifier,
            status=status,
            **kwargs
        )

    def publish_product(self, product: Dict[str, Any]) -> bool:
        """Post a lot to the product group: images with the lot text as caption, then videos."""
        chat_id = normalize_group_chat_id(settings.telegram_product_group_chat_id or "")
        if not self.client.configured or not chat_id:
            logger.warning(f"Telegram product group not configured, skipping product {product.get('id')}")
            return False

        product_id = product.get("id")
        text = messages.build_product_message(product)
        images = [img["url"] for img in product.get("product_images") or [] if img.get("url")]
        videos = [vid["url"] for vid in product.get("product_videos") or [] if vid.get("url")]

        error = None
        try:
            if images:
                sent = self.client.send_media_groups(images, text, chat_id, media_type="photo")
            else:
                self.client.send_message(chat_id, text)
                sent = True
            if videos:
                sent = self.client.send_media_groups(videos, None, chat_id, media_type="video") and sent
        except TelegramError as e:
            logger.error(f"Failed to publish product {product_id} to Telegram: {e.description}")
            sent = False
            error = e.description

        if not sent and error is None:
            error = "One or more media groups failed"

        update = {"last_notification_sent_at": _utcnow_iso()}
        if sent:
            update.update({"telegram_notification_status": "sent", "telegram_last_error": None})
        else:
            update.update({"telegram_notification_status": "failed", "telegram_last_error": error})
        try:
            self.supabase.table("products").update(update).eq("id", product_id).execute()
        except Exception as e:
            logger.error(f"Failed to update telegram status of product {product_id}: {e}")

        self._log(
            "publish_product", "product_published", "group", chat_id,
            "sent" if sent else "failed",
            message_text=text,
            related_entity_type="product",
            related_entity_id=product_id,
            error_message=error,
            metadata={"images": len(images), "videos": len(videos)}
        )
        return sent

    def notify_order(self, order: Dict[str, Any]) -> bool:
        """Post an order to the order group. First 10 images carry the order text; the rest follow in labelled groups."""
        chat_id = normalize_group_chat_id(settings.telegram_order_group_chat_id or "")
        if not self.client.configured or not chat_id:
            logger.warning(f"Telegram order group not configured, skipping order {order.get('id')}")
            return False

        text = messages.build_order_message(order)
        images = list(order.get("images") or [])
        videos = list(order.get("video_url") or [])
        first, rest = images[:MAX_MEDIA_PER_GROUP], images[MAX_MEDIA_PER_GROUP:]

        error = None
        try:
            if first:
                sent = self.client.send_media_groups(first, text, chat_id, media_type="photo")
            else:
                self.client.send_message(chat_id, text)
                sent = True
            if rest:
                caption = messages.build_order_extra_images_caption(order.get("order_number"))
                sent = self.client.send_media_groups(rest, caption, chat_id, media_type="photo") and sent
            if videos:
                sent = self.client.send_media_groups(videos, None, chat_id, media_type="video") and sent
        except TelegramError as e:
            logger.error(f"Failed to send order {order.get('id')} to Telegram: {e.description}")
            sent = False
            error = e.description

        self._log(
            "notify_order", "order_created", "group", chat_id,
            "sent" if sent else "failed",
            message_text=text,
            related_entity_type="order",
            related_entity_id=order.get("id"),
            error_message=error,
            metadata={"order_number": order.get("order_number"), "images": len(images), "videos": len(videos)}
        )
        return sent

    def _send_direct(self, function_name: str, notification_type: str, profile: Dict[str, Any], text: str,
                     photo: Optional[str] = None, entity_type: Optional[str] = None,
                     entity_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                     disable_preview: bool = False) -> bool:
        telegram_id = profile.get("telegram_id")
        if not telegram_id:
            logger.info(f"Profile {profile.get('id')} has no telegram_id, skipping {notification_type}")
            return False
        if not self.client.configured:
            logger.warning(f"Telegram bot not configured, skipping {notification_type}")
            return False
        try:
            if photo:
                result = self.client.send_photo(telegram_id, photo, text)
            else:
                result = self.client.send_message(telegram_id, text, disable_web_page_preview=disable_preview)
        except TelegramError as e:
            logger.error(f"Failed to send {notification_type} to {profile.get('id')}: {e.description}")
            self._log(
                function_name, notification_type, profile.get("user_type") or "user", telegram_id, "failed",
                message_text=text,
                recipient_name=profile.get("full_name"),
                related_entity_type=entity_type,
                related_entity_id=entity_id,
                error_message=e.description,
                metadata=metadata
            )
            return False
        self._log(
            function_name, notification_type, profile.get("user_type") or "user", telegram_id, "sent",
            message_text=text,
            recipient_name=profile.get("full_name"),
            telegram_message_id=_message_id(result),
            related_entity_type=entity_type,
            related_entity_id=entity_id,
            metadata=metadata
        )
        return True

    def notify_seller_new_offer(self, offer: Dict[str, Any], product: Dict[str, Any],
                                buyer: Dict[str, Any], seller: Dict[str, Any]) -> bool:
        english = prefers_english(seller)
        text = messages.build_offer_message(
            product=product,
            buyer=buyer,
            offered_price=offer.get("offered_price"),
            original_price=offer.get("original_price") or product.get("price"),
            message=offer.get("message"),
            expires_at=offer.get("expires_at"),
            product_url=f"{settings.site_url}/product/{product.get('id')}",
            english=english,
        )
        image = product.get("cloudinary_url") or product.get("preview_image_url")
        photo = messages.optimize_cloudinary_url(image) if image else None
        return self._send_direct(
            "notify_seller_new_offer", "price_offer", seller, text, photo=photo,
            entity_type="price_offer", entity_id=offer.get("id"),
            metadata={"product_id": product.get("id"), "offered_price": offer.get("offered_price")}
        )

    def notify_product_sold(self, order: Dict[str, Any], seller: Dict[str, Any]) -> bool:
        english = prefers_english(seller)
        text = messages.build_product_sold_message(
            order,
            order_url=f"{settings.site_url}/order/{order.get('id')}",
            sold_at=order.get("created_at") or datetime.now(timezone.utc),
            english=english,
        )
        return self._send_direct(
            "notify_product_sold", "product_sold", seller, text,
            entity_type="order", entity_id=order.get("id"),
            metadata={"product_id": order.get("product_id")}
        )

    def _notify_admins(self, function_name: str, notification_type: str, text: str, entity_type: str,
                       entity_id: Optional[str], metadata: Optional[Dict[str, Any]] = None,
                       disable_preview: bool = False) -> int:
        """Send one text to every admin with a linked Telegram account; returns how many got it."""
        try:
            result = self.supabase.table("profiles")\
                .select("id, full_name, telegram_id, user_type")\
                .eq("user_type", "admin")\
                .execute()
        except Exception as e:
            logger.error(f"Failed to load admins for {notification_type} {entity_id}: {e}")
            return 0
        admins = [a for a in result.data or [] if a.get("telegram_id")]
        delivered = 0
        for index, admin in enumerate(admins):
            if index > 0:
                self._sleep(ADMIN_MESSAGE_PAUSE_SEC)
            if self._send_direct(
                function_name, notification_type, admin, text,
                entity_type=entity_type, entity_id=entity_id,
                metadata={**(metadata or {}), "admin_id": admin.get("id")},
                disable_preview=disable_preview
            ):
                delivered += 1
        logger.info(f"Notified {delivered}/{len(admins)} admins about {entity_type} {entity_id}")
        return delivered

    def notify_admins_new_product(self, product: Dict[str, Any]) -> int:
        """Send the moderation request to every admin with a linked Telegram account."""
        text = messages.build_admin_new_product_message(product, settings.site_url)
        return self._notify_admins(
            "notify_admins_new_product", "product_pending", text, "product", product.get("id")
        )

    def notify_admins_new_user(self, user: Dict[str, Any]) -> int:
        """Ask admins to review a new account. Each account is announced once (profiles.admin_new_user_notified_at)."""
        user_id = user.get("id")
        try:
            found = self.supabase.table("profiles")\
                .select("*")\
                .eq("id", user_id)\
                .maybe_single()\
                .execute()
            profile = found.data if found else None
        except Exception as e:
            logger.warning(f"Could not load profile {user_id} for the new-user notice: {e}")
            profile = None
        if profile and profile.get("admin_new_user_notified_at"):
            logger.info(f"Admins already notified about user {user_id}, skipping")
            return 0

        details = {**user, **{k: v for k, v in (profile or {}).items() if v is not None}}
        text = messages.build_admin_new_user_message(details, settings.site_url)
        delivered = self._notify_admins(
            "notify_admins_new_user", "new_user_pending", text, "user", user_id,
            metadata={"user_type": details.get("user_type")},
            disable_preview=True
        )
        if delivered:
            try:
                self.supabase.table("profiles")\
                    .update({"admin_new_user_notified_at": _utcnow_iso()})\
                    .eq("id", user_id)\
                    .execute()
            except Exception as e:
                logger.error(f"Failed to mark user {user_id} as announced: {e}")
        return delivered

    def _deliver(self, telegram_id, text: str, images: List[str], pause: float) -> Optional[str]:
        """Plain text, or photo albums of 10 with the text as the first caption. Stops at the first failure."""
        if not images:
            return _message_id(self.client.send_message(telegram_id, text))
        first_message_id = None
        for index, chunk in enumerate(chunk_media(images)):
            if index > 0:
                self._sleep(pause)
            result = self.client.send_media_group(
                telegram_id, build_media_items(chunk, "photo", text if index == 0 else None)
            )
            first_message_id = first_message_id or _message_id(result)
        return first_message_id

    def send_personal_message(self, target: Dict[str, Any], text: str, images: List[str],
                              admin: Dict[str, Any]) -> Optional[str]:
        """Admin message to one user. Returns the Telegram message id; delivery errors become 502."""
        telegram_id = target.get("telegram_id")
        if not telegram_id:
            raise HTTPException(status_code=400, detail="User does not have Telegram ID")
        if not self.client.configured:
            raise HTTPException(status_code=503, detail="Telegram bot not configured")

        recipient_name = target.get("full_name") or target.get("email")
        metadata = {
            "admin_user_id": admin.get("id"),
            "admin_name": admin.get("full_name") or admin.get("email"),
            "images_count": len(images),
        }
        try:
            message_id = self._deliver(telegram_id, text, images, PERSONAL_CHUNK_PAUSE_SEC)
        except TelegramError as e:
            logger.error(f"Personal message to {target.get('id')} failed: {e.description}")
            self._log(
                "send_personal_message", "admin_personal_message", "personal", telegram_id, "failed",
                message_text=text, recipient_name=recipient_name,
                related_entity_type="user", related_entity_id=target.get("id"),
                error_message=e.description, metadata=metadata
            )
            raise HTTPException(status_code=502, detail=f"Failed to send message via Telegram: {e.description}")

        self._log(
            "send_personal_message", "admin_personal_message", "personal", telegram_id, "sent",
            message_text=text, recipient_name=recipient_name, telegram_message_id=message_id,
            related_entity_type="user", related_entity_id=target.get("id"), metadata=metadata
        )
        self.notifications.log_event("admin_telegram_message", "user", target.get("id"), admin.get("id"), {
            "target_user": recipient_name,
            "telegram_id": telegram_id,
            "message_length": len(text),
            "images_count": len(images),
            "telegram_message_id": message_id,
        })
        return message_id

    def resolve_recipients(self, recipients) -> List[str]:
        """Profile ids for an explicit id list or a named group from RECIPIENT_GROUPS."""
        if isinstance(recipients, list):
            return recipients
        if recipients not in RECIPIENT_GROUPS:
            raise HTTPException(status_code=400, detail=f"Unknown recipient group: {recipients}")
        try:
            query = self.supabase.table("profiles").select("id")
            condition = RECIPIENT_GROUPS[recipients]
            if condition:
                query = query.eq(*condition)
            result = query.execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch recipients for group {recipients}: {e}")
        return [row["id"] for row in result.data or []]

    def send_bulk_message(self, recipients, text: str, images: List[str], admin: Dict[str, Any]) -> Dict[str, Any]:
        """Message many users in batches. Only the first 10 images are sent; per-user failures are collected."""
        if not self.client.configured:
            raise HTTPException(status_code=503, detail="Telegram bot not configured")
        recipient_ids = self.resolve_recipients(recipients)
        images = images[:MAX_MEDIA_PER_GROUP]
        profiles = []
        if recipient_ids:
            try:
                result = self.supabase.table("profiles")\
                    .select("id, telegram_id, full_name, telegram")\
                    .in_("id", recipient_ids)\
                    .execute()
            except Exception as e:
                raise HTTPException(status_code=500, detail=f"Failed to fetch recipient profiles: {e}")
            profiles = [p for p in result.data or [] if p.get("telegram_id")]

        summary = {"total": len(recipient_ids), "sent": 0, "failed": 0, "errors": []}
        batches = [profiles[i:i + BULK_BATCH_SIZE] for i in range(0, len(profiles), BULK_BATCH_SIZE)]
        for batch_index, batch in enumerate(batches):
            if batch_index > 0:
                self._sleep(BULK_BATCH_PAUSE_SEC)
            for profile in batch:
                error = None
                try:
                    self._deliver(profile["telegram_id"], text, images, PERSONAL_CHUNK_PAUSE_SEC)
                    summary["sent"] += 1
                except TelegramError as e:
                    error = e.description
                    summary["failed"] += 1
                    summary["errors"].append({
                        "user_id": profile["id"],
                        "user_name": profile.get("full_name") or profile.get("telegram"),
                        "error": error,
                    })
                self.notifications.log_event("bulk_message_send", "message", profile["id"], admin.get("id"), {
                    "message_text": text[:100],
                    "image_count": len(images),
                    "status": "failed" if error else "success",
                    "error": error,
                })
        logger.info(f"Bulk message by {admin.get('id')}: {summary['sent']} sent, {summary['failed']} failed "
                    f"of {summary['total']} recipients")
        return summary

    def notify_verification_status(self, profile: Dict[str, Any], status: str) -> bool:
        """Tell a user their verification status changed. The same status is never sent twice in a row."""
        last = self.notifications.last_sent_telegram_status("verification_status", "profile", profile.get("id"))
        if last and (last.get("metadata") or {}).get("status") == status:
            logger.info(f"Verification status {status} already sent to {profile.get('id')}, skipping")
            return False
        text = messages.build_verification_message(status, prefers_english(profile), settings.site_url)
        return self._send_direct(
            "notify_verification_status", "verification_status", profile, text,
            entity_type="profile", entity_id=profile.get("id"),
            metadata={"status": status}
        )


def get_telegram_notifier(
    supabase: Client = Depends(get_service_supabase),
    client: TelegramClient = Depends(get_telegram_client)
) -> TelegramNotifier:
    return TelegramNotifier(supabase, client)

from supabase import Client
from app.modules.notifications.schemas import NotificationResponse
from typing import List, Optional, Dict, Any
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[NotificationResponse]:
        """Insert an in-app notification. Best-effort: returns None on failure."""
        try:
            result = self.supabase.table("notifications").insert({
                "user_id": user_id,
                "type": type,
                "title": title,
                "message": message,
                "data": data or {},
                "read": False
            }).execute()
            if not result.data:
                return None
            return NotificationResponse(**result.data[0])
        except Exception as e:
            logger.error(f"Error creating notification for {user_id}: {e}")
            return None

    def list_notifications(self, user_id: str, unread_only: bool = False, limit: int = 50, offset: int = 0) -> List[NotificationResponse]:
        try:
            query = self.supabase.table("notifications")\
                .select("*")\
                .eq("user_id", user_id)
            if unread_only:
                query = query.eq("read", False)
            result = query.order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [NotificationResponse(**n) for n in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def mark_read(self, notification_id: str, user_id: str) -> NotificationResponse:
        try:
            result = self.supabase.table("notifications")\
                .update({"read": True})\
                .eq("id", notification_id)\
                .eq("user_id", user_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Notification not found")
            return NotificationResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def mark_all_read(self, user_id: str) -> int:
        try:
            result = self.supabase.table("notifications")\
                .update({"read": True})\
                .eq("user_id", user_id)\
                .eq("read", False)\
                .execute()
            return len(result.data or [])
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def log_event(
        self,
        action_type: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Append to event_logs. Failures are logged, never raised."""
        try:
            self.supabase.table("event_logs").insert({
                "action_type": action_type,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "user_id": user_id,
                "details": details or {}
            }).execute()
        except Exception as e:
            logger.error(f"Failed to log event {action_type} for {entity_type} {entity_id}: {e}")

    def log_telegram_delivery(
        self,
        function_name: str,
        notification_type: str,
        recipient_type: str,
        recipient_identifier: str,
        status: str,
        message_text: Optional[str] = None,
        recipient_name: Optional[str] = None,
        telegram_message_id: Optional[str] = None,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[str] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        try:
            self.supabase.table("telegram_notifications_log").insert({
                "function_name": function_name,
                "notification_type": notification_type,
                "recipient_type": recipient_type,
                "recipient_identifier": str(recipient_identifier),
                "recipient_name": recipient_name,
                "message_text": message_text[:500] if message_text else None,
                "status": status,
                "telegram_message_id": telegram_message_id,
                "related_entity_type": related_entity_type,
                "related_entity_id": related_entity_id,
                "error_message": error_message,
                "metadata": metadata or {}
            }).execute()
        except Exception as e:
            logger.error(f"Failed to log telegram delivery ({notification_type}): {e}")

    def last_sent_telegram_status(self, notification_type: str, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        """Most recent successfully sent log row for an entity, used for deduplication."""
        try:
            result = self.supabase.table("telegram_notifications_log")\
                .select("id, created_at, metadata")\
                .eq("notification_type", notification_type)\
                .eq("status", "sent")\
                .eq("related_entity_type", entity_type)\
                .eq("related_entity_id", entity_id)\
                .order("created_at", desc=True)\
                .limit(1)\
                .execute()
            return result.data[0] if result.data else None
        except Exception as e:
            logger.warning(f"Could not read telegram notification log: {e}")
            return None

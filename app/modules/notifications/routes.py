from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.notifications.schemas import NotificationResponse, MarkAllReadResponse
from app.modules.notifications.service import NotificationService
from app.core.dependencies import require_permission
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_notification_service(supabase: Client = Depends(get_supabase)) -> NotificationService:
    return NotificationService(supabase)


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
    profile: Dict = Depends(require_permission("notifications:read")),
    service: NotificationService = Depends(get_notification_service)
):
    """In-app notifications of the current user, newest first"""
    return service.list_notifications(profile["id"], unread_only=unread_only, limit=limit, offset=offset)


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    profile: Dict = Depends(require_permission("notifications:read")),
    service: NotificationService = Depends(get_notification_service)
):
    return MarkAllReadResponse(updated=service.mark_all_read(profile["id"]))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    profile: Dict = Depends(require_permission("notifications:read")),
    service: NotificationService = Depends(get_notification_service)
):
    return service.mark_read(notification_id, profile["id"])

from fastapi import APIRouter, BackgroundTasks, Depends
from app.database.supabase_client import get_supabase
from app.modules.orders.schemas import (
    OrderCreate, OrderResponse, OrderStatusUpdate, OrderMediaAttach,
    TelegramOrderImport, TelegramOrderImportResponse, NotificationResendResponse
)
from app.modules.orders.service import OrderService
from app.modules.notifications.service import NotificationService
from app.modules.telegram.service import TelegramNotifier, get_telegram_notifier
from app.core.dependencies import require_permission
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/orders", tags=["orders"])

ORDER_STATUS_TITLES = {
    "seller_confirmed": "Order confirmed by seller",
    "admin_confirmed": "Order confirmed by admin",
    "processed": "Order registered",
    "shipped": "Order shipped",
    "delivered": "Order delivered",
    "cancelled": "Order cancelled",
}


def get_order_service(supabase: Client = Depends(get_supabase)) -> OrderService:
    return OrderService(supabase)


def get_notification_service(supabase: Client = Depends(get_supabase)) -> NotificationService:
    return NotificationService(supabase)


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    order_data: OrderCreate,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("orders:create")),
    service: OrderService = Depends(get_order_service),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Create an order and announce it in the order group"""
    order = service.create_order(order_data, profile)
    background_tasks.add_task(notifier.notify_order, order)
    if order.get("order_created_type") == "product_order":
        seller = service.get_seller(order["seller_id"])
        if seller:
            background_tasks.add_task(notifier.notify_product_sold, order, seller)
    return OrderResponse(**order)


@router.get("", response_model=List[OrderResponse])
async def list_orders(
    status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    profile: Dict = Depends(require_permission("orders:read")),
    service: OrderService = Depends(get_order_service)
):
    return service.list_orders(profile, status=status, limit=limit, offset=offset)


@router.post("/import-telegram", response_model=TelegramOrderImportResponse)
async def import_telegram_order(
    request: TelegramOrderImport,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("orders:import")),
    service: OrderService = Depends(get_order_service),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Create an order from a text block copied from Telegram (admin)"""
    result = service.import_telegram_order(request.text, request.delivery_method, profile)
    if result.success and result.order:
        background_tasks.add_task(notifier.notify_order, result.order.model_dump())
    return result


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    profile: Dict = Depends(require_permission("orders:read")),
    service: OrderService = Depends(get_order_service)
):
    return OrderResponse(**service.get_order(order_id, profile))


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    profile: Dict = Depends(require_permission("orders:update")),
    service: OrderService = Depends(get_order_service),
    notifications: NotificationService = Depends(get_notification_service)
):
    """Move an order along its lifecycle; the other party gets an in-app notification"""
    order, previous = service.update_order_status(order_id, request.status, profile)
    recipient = order["buyer_id"] if profile["id"] != order.get("buyer_id") else order.get("seller_id")
    if recipient:
        notifications.create_notification(
            user_id=recipient,
            type="order_status",
            title=ORDER_STATUS_TITLES.get(request.status, "Order updated"),
            message=f"Order #{order.get('order_number')}: {previous} -> {request.status}",
            data={"order_id": order_id, "status": request.status}
        )
    notifications.log_event(
        "order_status_changed", "order", order_id, profile["id"],
        {"from": previous, "to": request.status}
    )
    return OrderResponse(**order)


@router.post("/{order_id}/media", response_model=OrderResponse)
async def attach_order_media(
    order_id: str,
    media: OrderMediaAttach,
    profile: Dict = Depends(require_permission("orders:update")),
    service: OrderService = Depends(get_order_service)
):
    """Attach already uploaded media URLs to an order"""
    return OrderResponse(**service.attach_order_media(order_id, media.images, media.videos, profile))


@router.post("/{order_id}/resend-notification", response_model=NotificationResendResponse)
async def resend_order_notification(
    order_id: str,
    profile: Dict = Depends(require_permission("orders:manage")),
    service: OrderService = Depends(get_order_service),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Send the order to the order group again (admin)"""
    order = service.get_order(order_id, profile)
    return NotificationResendResponse(success=notifier.notify_order(order), order_id=order_id)

from fastapi import APIRouter, BackgroundTasks, Depends
from app.database.supabase_client import get_supabase
from app.modules.price_offers.schemas import (
    OfferCreate, OfferPriceUpdate, OfferRespond, OfferResponse, CompetitiveSummary
)
from app.modules.price_offers.service import PriceOfferService, offer_channels, offer_event_payload
from app.modules.notifications.service import NotificationService
from app.modules.realtime.publisher import (
    EventPublisher, get_event_publisher, OFFER_CREATED, OFFER_UPDATED, OFFER_STATUS_CHANGED
)
from app.modules.telegram.service import TelegramNotifier, get_telegram_notifier
from app.core.dependencies import require_permission
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/price-offers", tags=["price-offers"])


def get_price_offer_service(supabase: Client = Depends(get_supabase)) -> PriceOfferService:
    return PriceOfferService(supabase)


def get_notification_service(supabase: Client = Depends(get_supabase)) -> NotificationService:
    return NotificationService(supabase)


@router.post("", response_model=OfferResponse, status_code=201)
async def create_offer(
    request: OfferCreate,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("price_offers:create")),
    service: PriceOfferService = Depends(get_price_offer_service),
    notifications: NotificationService = Depends(get_notification_service),
    publisher: EventPublisher = Depends(get_event_publisher),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Make an offer below the asking price; repeating it updates the pending one"""
    offer, product, created = service.create_offer(request.product_id, request.offered_price, request.message, profile)
    seller = service.get_profile(offer["seller_id"])

    notifications.log_event(
        "price_offer_created" if created else "price_offer_updated",
        "price_offer", offer["id"], profile["id"],
        {"product_id": product["id"], "offered_price": offer["offered_price"], "original_price": product["price"]}
    )
    background_tasks.add_task(notifier.notify_seller_new_offer, offer, product, profile, seller)
    background_tasks.add_task(
        publisher.trigger, offer_channels(offer), OFFER_CREATED if created else OFFER_UPDATED, offer_event_payload(offer)
    )
    return OfferResponse(**offer)


@router.get("", response_model=List[OfferResponse])
async def list_offers(
    role: Optional[str] = None,
    status: Optional[str] = None,
    product_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    profile: Dict = Depends(require_permission("price_offers:read")),
    service: PriceOfferService = Depends(get_price_offer_service)
):
    """Offers made (role=buyer) or received (role=seller); admins see all"""
    return service.list_offers(profile, role=role, status=status, product_id=product_id, limit=limit, offset=offset)


@router.get("/products/{product_id}/summary", response_model=CompetitiveSummary)
async def get_competitive_summary(
    product_id: str,
    profile: Dict = Depends(require_permission("price_offers:read")),
    service: PriceOfferService = Depends(get_price_offer_service)
):
    return service.get_competitive_summary(product_id)


@router.get("/{offer_id}", response_model=OfferResponse)
async def get_offer(
    offer_id: str,
    profile: Dict = Depends(require_permission("price_offers:read")),
    service: PriceOfferService = Depends(get_price_offer_service)
):
    return OfferResponse(**service.get_offer(offer_id, profile))


@router.put("/{offer_id}", response_model=OfferResponse)
async def update_offer_price(
    offer_id: str,
    request: OfferPriceUpdate,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("price_offers:create")),
    service: PriceOfferService = Depends(get_price_offer_service),
    publisher: EventPublisher = Depends(get_event_publisher)
):
    """Change the price of a pending offer; the 72h validity restarts"""
    offer = service.update_offer_price(offer_id, request.offered_price, request.message, profile)
    background_tasks.add_task(publisher.trigger, offer_channels(offer), OFFER_UPDATED, offer_event_payload(offer))
    return OfferResponse(**offer)


@router.post("/{offer_id}/cancel", response_model=OfferResponse)
async def cancel_offer(
    offer_id: str,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("price_offers:create")),
    service: PriceOfferService = Depends(get_price_offer_service),
    publisher: EventPublisher = Depends(get_event_publisher)
):
    offer = service.cancel_offer(offer_id, profile)
    background_tasks.add_task(publisher.trigger, offer_channels(offer), OFFER_STATUS_CHANGED, offer_event_payload(offer))
    return OfferResponse(**offer)


@router.post("/{offer_id}/respond", response_model=OfferResponse)
async def respond_to_offer(
    offer_id: str,
    request: OfferRespond,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("price_offers:respond")),
    service: PriceOfferService = Depends(get_price_offer_service),
    notifications: NotificationService = Depends(get_notification_service),
    publisher: EventPublisher = Depends(get_event_publisher),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Seller accepts or rejects; accepting creates the order and closes competing offers"""
    offer, order, rejected = service.respond_to_offer(offer_id, request.action, request.seller_response, profile)

    notifications.create_notification(
        user_id=offer["buyer_id"],
        type="price_offer",
        title="Offer accepted" if order else "Offer rejected",
        message=f"Your offer of {offer['offered_price']} was {offer['status']}",
        data={"offer_id": offer["id"], "product_id": offer["product_id"], "order_id": offer.get("order_id")}
    )
    notifications.log_event(
        f"price_offer_{offer['status']}", "price_offer", offer["id"], profile["id"],
        {"order_id": offer.get("order_id"), "auto_rejected": [o["id"] for o in rejected]}
    )
    for changed in [offer] + rejected:
        background_tasks.add_task(publisher.trigger, offer_channels(changed), OFFER_STATUS_CHANGED, offer_event_payload(changed))
    if order:
        background_tasks.add_task(notifier.notify_order, order)
    return OfferResponse(**offer)

import asyncio
import logging
from app.config import settings
from app.database.supabase_client import get_service_supabase
from app.modules.price_offers.service import PriceOfferService, offer_channels, offer_event_payload
from app.modules.realtime.publisher import get_event_publisher, OFFER_STATUS_CHANGED

logger = logging.getLogger(__name__)


def expire_pending_offers() -> int:
    """Expire overdue pending offers and tell the parties. Returns the number expired."""
    service = PriceOfferService(get_service_supabase())
    expired = service.expire_offers()
    if not expired:
        logger.debug("No expired offers found")
        return 0
    logger.info(f"Expired {len(expired)} price offer(s)")
    publisher = get_event_publisher()
    for offer in expired:
        publisher.trigger(offer_channels(offer), OFFER_STATUS_CHANGED, offer_event_payload(offer))
    return len(expired)


async def offer_expiry_loop():
    """Background task that periodically expires overdue price offers"""
    while True:
        try:
            await asyncio.to_thread(expire_pending_offers)
        except Exception as e:
            logger.error(f"Error in offer expiry loop: {str(e)}")

        await asyncio.sleep(settings.offer_expiry_interval_seconds)

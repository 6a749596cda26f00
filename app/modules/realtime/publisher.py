"""Fan-out of offer/product events to Pusher channels over the HTTP events API."""
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from app.config import settings
from app.core.http_client import get_http_client

logger = logging.getLogger(__name__)

MAX_CHANNELS_PER_EVENT = 100
PUSHER_TIMEOUT_SEC = 10

OFFER_CREATED = "offer-created"
OFFER_UPDATED = "offer-updated"
OFFER_STATUS_CHANGED = "offer-status-changed"
PRODUCT_UPDATED = "product-updated"


def buyer_channel(user_id: str) -> str:
    return f"buyer-{user_id}"


def seller_channel(user_id: str) -> str:
    return f"seller-{user_id}"


def product_channel(product_id: str) -> str:
    return f"product-{product_id}"


def sign_request(secret: str, method: str, path: str, params: Dict[str, str]) -> str:
    """HMAC-SHA256 of "METHOD\\npath\\nsorted_query" as required by the Pusher REST API."""
    query = "&".join(f"{key}={params[key]}" for key in sorted(params))
    to_sign = f"{method}\n{path}\n{query}"
    return hmac.new(secret.encode(), to_sign.encode(), hashlib.sha256).hexdigest()


class EventPublisher:
    def __init__(
        self,
        app_id: Optional[str],
        key: Optional[str],
        secret: Optional[str],
        cluster: str = "eu",
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.app_id = app_id
        self.key = key
        self.secret = secret
        self.host = f"https://api-{cluster}.pusher.com"
        self._http = http_client or get_http_client()
        self._clock = clock

    @property
    def configured(self) -> bool:
        return all([self.app_id, self.key, self.secret])

    def trigger(self, channels: List[str], event: str, data: Dict[str, Any]) -> bool:
        """Publish one event to the channels. Returns False on failure; never raises."""
        channels = [c for c in dict.fromkeys(channels) if c]
        if not channels:
            return False
        if not self.configured:
            logger.debug("Pusher not configured, skipping %s to %s", event, channels)
            return False

        body = json.dumps({
            "name": event,
            "channels": channels[:MAX_CHANNELS_PER_EVENT],
            "data": json.dumps(data, default=str),
        })
        path = f"/apps/{self.app_id}/events"
        params = {
            "auth_key": self.key,
            "auth_timestamp": str(int(self._clock())),
            "auth_version": "1.0",
            "body_md5": hashlib.md5(body.encode()).hexdigest(),
        }
        params["auth_signature"] = sign_request(self.secret, "POST", path, params)

        try:
            response = self._http.post(
                f"{self.host}{path}?{urlencode(params)}",
                content=body,
                headers={"Content-Type": "application/json"},
                timeout=PUSHER_TIMEOUT_SEC,
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error("Failed to publish %s to %s: %s", event, channels, e)
            return False


def get_event_publisher() -> EventPublisher:
    return EventPublisher(
        settings.pusher_app_id,
        settings.pusher_key,
        settings.pusher_secret,
        cluster=settings.pusher_cluster,
    )

from supabase import Client
from app.config import settings
from app.modules.price_offers.schemas import OfferResponse, CompetitiveSummary
from app.modules.orders.service import OrderService
from app.modules.realtime.publisher import buyer_channel, seller_channel, product_channel
from app.core.dependencies import is_admin, check_offer_access
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def offer_channels(offer: Dict[str, Any]) -> List[str]:
    return [
        buyer_channel(offer["buyer_id"]),
        seller_channel(offer["seller_id"]),
        product_channel(offer["product_id"]),
    ]


def offer_event_payload(offer: Dict[str, Any]) -> Dict[str, Any]:
    return OfferResponse(**offer).model_dump(mode="json")


def offer_expires_at(now: Optional[datetime] = None) -> datetime:
    return (now or _now()) + timedelta(hours=settings.offer_ttl_hours)


def is_expired(offer: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    value = offer.get("expires_at")
    if not value:
        return False
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value <= (now or _now())


class PriceOfferService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_row(self, offer_id: str) -> Dict[str, Any]:
        result = self.supabase.table("price_offers")\
            .select("*")\
            .eq("id", offer_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Offer not found")
        return result.data

    def _get_product(self, product_id: str) -> Dict[str, Any]:
        result = self.supabase.table("products")\
            .select("*")\
            .eq("id", product_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Product not found")
        return result.data

    def get_profile(self, profile_id: str) -> Dict[str, Any]:
        result = self.supabase.table("profiles")\
            .select("*")\
            .eq("id", profile_id)\
            .maybe_single()\
            .execute()
        return result.data if result and result.data else {"id": profile_id}

    def _ensure_open(self, offer: Dict[str, Any]) -> None:
        if offer.get("status") != "pending":
            raise HTTPException(status_code=400, detail=f"Offer is {offer.get('status')}, not pending")
        if is_expired(offer):
            raise HTTPException(status_code=400, detail="Offer has expired")

    def create_offer(self, product_id: str, offered_price: float, message: Optional[str], profile: dict) -> Tuple[Dict[str, Any], Dict[str, Any], bool]:
        """Create an offer, or update the buyer's pending one. Returns (offer, product, created)."""
        try:
            product = self._get_product(product_id)
            if product.get("status") != "active":
                raise HTTPException(status_code=400, detail="Offers can only be made on active products")
            if product.get("seller_id") == profile["id"]:
                raise HTTPException(status_code=400, detail="You cannot make an offer on your own product")
            if offered_price <= 0 or offered_price > float(product["price"]):
                raise HTTPException(status_code=400, detail="Offered price must be greater than 0 and not exceed the product price")

            expires_at = offer_expires_at().isoformat()
            existing = self.supabase.table("price_offers")\
                .select("*")\
                .eq("product_id", product_id)\
                .eq("buyer_id", profile["id"])\
                .eq("status", "pending")\
                .limit(1)\
                .execute()

            if existing.data:
                result = self.supabase.table("price_offers")\
                    .update({
                        "offered_price": offered_price,
                        "original_price": product["price"],
                        "message": message,
                        "expires_at": expires_at,
                        "updated_at": _now().isoformat()
                    })\
                    .eq("id", existing.data[0]["id"])\
                    .execute()
                created = False
            else:
                result = self.supabase.table("price_offers").insert({
                    "product_id": product_id,
                    "buyer_id": profile["id"],
                    "seller_id": product["seller_id"],
                    "original_price": product["price"],
                    "offered_price": offered_price,
                    "message": message,
                    "status": "pending",
                    "expires_at": expires_at
                }).execute()
                created = True

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to save offer")
            offer = result.data[0]
            logger.info(f"Offer {offer['id']} {'created' if created else 'updated'} on product {product_id}: {offered_price}")
            return offer, product, created
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_offers(
        self,
        profile: dict,
        role: Optional[str] = None,
        status: Optional[str] = None,
        product_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[OfferResponse]:
        """Offers made (role=buyer) or received (role=seller); admins see all unless a role is given"""
        try:
            query = self.supabase.table("price_offers").select("*")
            if role is None and not is_admin(profile):
                role = "seller" if profile.get("user_type") == "seller" else "buyer"
            if role == "seller":
                query = query.eq("seller_id", profile["id"])
            elif role == "buyer":
                query = query.eq("buyer_id", profile["id"])
            if status:
                query = query.eq("status", status)
            if product_id:
                query = query.eq("product_id", product_id)
            result = query.order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [OfferResponse(**o) for o in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_offer(self, offer_id: str, profile: dict) -> Dict[str, Any]:
        try:
            offer = self._get_row(offer_id)
            check_offer_access(offer, profile)
            return offer
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_competitive_summary(self, product_id: str) -> CompetitiveSummary:
        """How many buyers are bidding and the best pending price"""
        try:
            result = self.supabase.table("price_offers")\
                .select("offered_price")\
                .eq("product_id", product_id)\
                .eq("status", "pending")\
                .gt("expires_at", _now().isoformat())\
                .execute()
            prices = [float(o["offered_price"]) for o in result.data or []]
            return CompetitiveSummary(
                product_id=product_id,
                pending_count=len(prices),
                max_offered_price=max(prices) if prices else None
            )
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_offer_price(self, offer_id: str, offered_price: float, message: Optional[str], profile: dict) -> Dict[str, Any]:
        try:
            offer = self._get_row(offer_id)
            if offer["buyer_id"] != profile["id"]:
                raise HTTPException(status_code=403, detail="Only the buyer can change the offer")
            self._ensure_open(offer)
            product = self._get_product(offer["product_id"])
            if offered_price > float(product["price"]):
                raise HTTPException(status_code=400, detail="Offered price must not exceed the product price")

            update_data = {
                "offered_price": offered_price,
                "expires_at": offer_expires_at().isoformat(),
                "updated_at": _now().isoformat()
            }
            if message is not None:
                update_data["message"] = message
            result = self.supabase.table("price_offers")\
                .update(update_data)\
                .eq("id", offer_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Offer not found")
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def cancel_offer(self, offer_id: str, profile: dict) -> Dict[str, Any]:
        try:
            offer = self._get_row(offer_id)
            if offer["buyer_id"] != profile["id"] and not is_admin(profile):
                raise HTTPException(status_code=403, detail="Only the buyer can cancel the offer")
            if offer.get("status") != "pending":
                raise HTTPException(status_code=400, detail=f"Offer is {offer.get('status')}, not pending")
            return self._set_status(offer_id, "cancelled")
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _set_status(self, offer_id: str, status: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        update_data = {"status": status, "updated_at": _now().isoformat()}
        update_data.update(extra or {})
        result = self.supabase.table("price_offers")\
            .update(update_data)\
            .eq("id", offer_id)\
            .execute()
        if not result.data:
            raise HTTPException(status_code=404, detail="Offer not found")
        return result.data[0]

    def respond_to_offer(self, offer_id: str, action: str, seller_response: Optional[str], profile: dict) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]], List[Dict[str, Any]]]:
        """
        Seller accepts or rejects a pending offer.
        Accepting creates a price_offer_order at the offered price and rejects
        every other pending offer on the product.
        Returns (offer, order or None, auto-rejected offers).
        """
        try:
            offer = self._get_row(offer_id)
            if offer["seller_id"] != profile["id"] and not is_admin(profile):
                raise HTTPException(status_code=403, detail="Only the seller can respond to this offer")
            self._ensure_open(offer)

            if action == "reject":
                updated = self._set_status(offer_id, "rejected", {"seller_response": seller_response})
                return updated, None, []

            product = self._get_product(offer["product_id"])
            if product.get("status") != "active":
                raise HTTPException(status_code=400, detail="Product is no longer available")
            order = OrderService(self.supabase).create_price_offer_order(offer, product)
            updated = self._set_status(offer_id, "accepted", {
                "seller_response": seller_response,
                "order_id": order["id"]
            })
            rejected = self.supabase.table("price_offers")\
                .update({"status": "rejected", "updated_at": _now().isoformat()})\
                .eq("product_id", offer["product_id"])\
                .eq("status", "pending")\
                .neq("id", offer_id)\
                .execute()
            logger.info(f"Offer {offer_id} accepted, order {order['id']}, {len(rejected.data or [])} competing offers rejected")
            return updated, order, rejected.data or []
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def expire_offers(self) -> List[Dict[str, Any]]:
        """Mark pending offers past expires_at as expired; returns the expired rows"""
        result = self.supabase.table("price_offers")\
            .update({"status": "expired", "updated_at": _now().isoformat()})\
            .eq("status", "pending")\
            .lt("expires_at", _now().isoformat())\
            .execute()
        return result.data or []

from supabase import Client
from app.config import settings
from app.modules.orders.schemas import (
    OrderCreate, OrderResponse, TelegramOrderImportResponse
)
from app.modules.telegram.order_parser import parse_telegram_order, validate_parsed_order
from app.modules.profiles.schemas import normalize_opt_id
from app.core.dependencies import is_admin, check_order_access
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS = {
    "created": {"seller_confirmed", "admin_confirmed", "cancelled"},
    "seller_confirmed": {"admin_confirmed", "cancelled"},
    "admin_confirmed": {"processed", "cancelled"},
    "processed": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}

SELLER_TARGET_STATUSES = {"seller_confirmed", "cancelled"}


def check_status_transition(current: str, new: str, profile: dict, order: Dict[str, Any]) -> None:
    """Raise 400/403 unless the actor may move the order from current to new."""
    if new not in ORDER_TRANSITIONS.get(current, set()):
        raise HTTPException(status_code=400, detail=f"Invalid status transition: {current} -> {new}")
    if is_admin(profile):
        return
    if profile["id"] == order.get("seller_id"):
        if new not in SELLER_TARGET_STATUSES:
            raise HTTPException(status_code=403, detail=f"Sellers cannot set status {new}")
        return
    if profile["id"] == order.get("buyer_id"):
        if new != "cancelled" or current != "created":
            raise HTTPException(status_code=403, detail="Buyers can only cancel orders that are not yet confirmed")
        return
    raise HTTPException(status_code=403, detail="Not a participant of this order")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_row(self, order_id: str) -> Dict[str, Any]:
        result = self.supabase.table("orders")\
            .select("*")\
            .eq("id", order_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Order not found")
        return result.data

    def _profile_by(self, column: str, value: str) -> Optional[Dict[str, Any]]:
        query = self.supabase.table("profiles").select("*")
        if column == "opt_id":
            value = normalize_opt_id(value)
        query = query.eq(column, value)
        result = query.limit(1).execute()
        return result.data[0] if result.data else None

    def _resolve_profile(self, profile_id: Optional[str], opt_id: Optional[str], role: str) -> Dict[str, Any]:
        if profile_id:
            found = self._profile_by("id", profile_id)
        elif opt_id:
            found = self._profile_by("opt_id", opt_id)
        else:
            raise HTTPException(status_code=400, detail=f"{role.capitalize()} id or OPT_ID is required")
        if not found:
            raise HTTPException(status_code=404, detail=f"{role.capitalize()} not found: {profile_id or opt_id}")
        return found

    def _next_order_number(self) -> int:
        result = self.supabase.rpc("get_next_order_number", {}).execute()
        value = result.data
        if isinstance(value, list):
            value = value[0] if value else None
        if isinstance(value, dict):
            value = next(iter(value.values()), None)
        if value is None:
            raise HTTPException(status_code=500, detail="Failed to allocate order number")
        return int(value)

    def _insert_order(self, order_data: Dict[str, Any]) -> Dict[str, Any]:
        order_data["order_number"] = self._next_order_number()
        order_data.setdefault("status", "created")
        result = self.supabase.table("orders").insert(order_data).execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create order")
        order = result.data[0]
        logger.info(f"Order {order['id']} #{order['order_number']} created ({order_data.get('order_created_type')})")
        return order

    def _mark_product(self, product_id: str, status: str) -> None:
        self.supabase.table("products")\
            .update({"status": status, "updated_at": _now_iso()})\
            .eq("id", product_id)\
            .execute()

    def _claim_product(self, product_id: str) -> None:
        """Move an active product to sold. Only one concurrent order can win the update."""
        result = self.supabase.table("products")\
            .update({"status": "sold", "updated_at": _now_iso()})\
            .eq("id", product_id)\
            .eq("status", "active")\
            .execute()
        if not result.data:
            raise HTTPException(status_code=409, detail="Product has already been sold")

    def _insert_claimed_order(self, product_id: str, order_data: Dict[str, Any]) -> Dict[str, Any]:
        self._claim_product(product_id)
        try:
            return self._insert_order(order_data)
        except Exception:
            self._mark_product(product_id, "active")
            raise

    def create_order(self, order_data: OrderCreate, profile: dict) -> Dict[str, Any]:
        """Product order (buyer orders an active lot) or free order (seller/admin for a given buyer)"""
        try:
            if len(order_data.images) > settings.max_order_photos:
                raise HTTPException(
                    status_code=400,
                    detail=f"An order can have at most {settings.max_order_photos} photos"
                )
            if order_data.product_id:
                return self._create_product_order(order_data, profile)
            return self._create_free_order(order_data, profile)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _create_product_order(self, order_data: OrderCreate, profile: dict) -> Dict[str, Any]:
        result = self.supabase.table("products")\
            .select("*")\
            .eq("id", order_data.product_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Product not found")
        product = result.data
        if product.get("status") != "active":
            raise HTTPException(status_code=400, detail="Product is not available for ordering")

        buyer = profile
        if is_admin(profile) and (order_data.buyer_id or order_data.buyer_opt_id):
            buyer = self._resolve_profile(order_data.buyer_id, order_data.buyer_opt_id, "buyer")
        if buyer["id"] == product.get("seller_id"):
            raise HTTPException(status_code=400, detail="You cannot order your own product")
        seller = self._profile_by("id", product["seller_id"]) or {}

        return self._insert_claimed_order(product["id"], {
            "title": product["title"],
            "price": product["price"],
            "brand": product.get("brand"),
            "model": product.get("model"),
            "place_number": product.get("place_number") or order_data.place_number,
            "delivery_method": order_data.delivery_method,
            "delivery_price_confirm": order_data.delivery_price_confirm
            if order_data.delivery_price_confirm is not None else product.get("delivery_price"),
            "text_order": order_data.text_order,
            "order_created_type": "product_order",
            "product_id": product["id"],
            "buyer_id": buyer["id"],
            "seller_id": product["seller_id"],
            "buyer_opt_id": buyer.get("opt_id"),
            "seller_opt_id": seller.get("opt_id") or product.get("optid_created"),
            "telegram_url_order": buyer.get("telegram"),
            "images": order_data.images or ([product["cloudinary_url"]] if product.get("cloudinary_url") else []),
            "video_url": order_data.video_url,
        })

    def _create_free_order(self, order_data: OrderCreate, profile: dict) -> Dict[str, Any]:
        if profile.get("user_type") not in ("seller", "admin"):
            raise HTTPException(status_code=403, detail="Only sellers and admins can create orders without a product")
        if not order_data.title or order_data.price is None:
            raise HTTPException(status_code=400, detail="Title and price are required")

        buyer = self._resolve_profile(order_data.buyer_id, order_data.buyer_opt_id, "buyer")
        seller = profile
        if is_admin(profile) and (order_data.seller_id or order_data.seller_opt_id):
            seller = self._resolve_profile(order_data.seller_id, order_data.seller_opt_id, "seller")
        if buyer["id"] == seller["id"]:
            raise HTTPException(status_code=400, detail="Buyer and seller must be different users")

        return self._insert_order({
            "title": order_data.title.strip(),
            "price": order_data.price,
            "brand": order_data.brand,
            "model": order_data.model,
            "place_number": order_data.place_number,
            "delivery_method": order_data.delivery_method,
            "delivery_price_confirm": order_data.delivery_price_confirm,
            "text_order": order_data.text_order,
            "order_created_type": "free_order",
            "buyer_id": buyer["id"],
            "seller_id": seller["id"],
            "buyer_opt_id": buyer.get("opt_id"),
            "seller_opt_id": seller.get("opt_id"),
            "telegram_url_order": buyer.get("telegram"),
            "images": order_data.images,
            "video_url": order_data.video_url,
        })

    def create_price_offer_order(self, offer: Dict[str, Any], product: Dict[str, Any]) -> Dict[str, Any]:
        """Order at the offered price once the seller accepts an offer"""
        buyer = self._profile_by("id", offer["buyer_id"]) or {}
        seller = self._profile_by("id", offer["seller_id"]) or {}
        return self._insert_claimed_order(product["id"], {
            "title": product["title"],
            "price": offer["offered_price"],
            "brand": product.get("brand"),
            "model": product.get("model"),
            "place_number": product.get("place_number") or 1,
            "delivery_method": "cargo_rf",
            "delivery_price_confirm": product.get("delivery_price"),
            "text_order": offer.get("message"),
            "order_created_type": "price_offer_order",
            "product_id": product["id"],
            "buyer_id": offer["buyer_id"],
            "seller_id": offer["seller_id"],
            "buyer_opt_id": buyer.get("opt_id"),
            "seller_opt_id": seller.get("opt_id") or product.get("optid_created"),
            "telegram_url_order": buyer.get("telegram"),
            "images": [product["cloudinary_url"]] if product.get("cloudinary_url") else [],
            "video_url": [],
        })

    def get_order(self, order_id: str, profile: dict) -> Dict[str, Any]:
        try:
            order = self._get_row(order_id)
            check_order_access(order, profile)
            return order
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_orders(
        self,
        profile: dict,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[OrderResponse]:
        """Buyers see purchases, sellers see sales, admins see everything"""
        try:
            query = self.supabase.table("orders").select("*")
            if not is_admin(profile):
                column = "seller_id" if profile.get("user_type") == "seller" else "buyer_id"
                query = query.eq(column, profile["id"])
            if status:
                query = query.eq("status", status)
            result = query.order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [OrderResponse(**o) for o in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_order_status(self, order_id: str, new_status: str, profile: dict) -> Tuple[Dict[str, Any], str]:
        """Apply a status change; returns (updated order, previous status)"""
        try:
            order = self._get_row(order_id)
            check_order_access(order, profile)
            previous = order.get("status")
            check_status_transition(previous, new_status, profile, order)

            result = self.supabase.table("orders")\
                .update({"status": new_status, "updated_at": _now_iso()})\
                .eq("id", order_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Order not found")

            if new_status == "cancelled" and order.get("product_id"):
                self._mark_product(order["product_id"], "active")
                logger.info(f"Product {order['product_id']} returned to catalog after order {order_id} cancelled")
            return result.data[0], previous
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def check_photo_capacity(self, order: Dict[str, Any], adding: int) -> None:
        current = len(order.get("images") or [])
        if current + adding > settings.max_order_photos:
            raise HTTPException(
                status_code=400,
                detail=f"Photo limit reached: {current}/{settings.max_order_photos} photos already attached"
            )

    def attach_order_media(self, order_id: str, images: List[str], videos: List[str], profile: dict) -> Dict[str, Any]:
        """Append media URLs to an order, skipping ones already attached"""
        try:
            order = self._get_row(order_id)
            check_order_access(order, profile)
            current_images = list(order.get("images") or [])
            current_videos = list(order.get("video_url") or [])
            new_images = [url for url in dict.fromkeys(images) if url not in current_images]
            new_videos = [url for url in dict.fromkeys(videos) if url not in current_videos]
            self.check_photo_capacity(order, len(new_images))
            if not new_images and not new_videos:
                return order

            result = self.supabase.table("orders")\
                .update({
                    "images": current_images + new_images,
                    "video_url": current_videos + new_videos,
                    "updated_at": _now_iso()
                })\
                .eq("id", order_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Order not found")
            logger.info(f"Attached {len(new_images)} images and {len(new_videos)} videos to order {order_id}")
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def import_telegram_order(self, text: str, delivery_method: str, profile: dict) -> TelegramOrderImportResponse:
        """Create a free order from an order block copied from the Telegram order group"""
        parsed = parse_telegram_order(text)
        if not parsed.success:
            return TelegramOrderImportResponse(success=False, errors=parsed.errors, warnings=parsed.warnings)
        data = parsed.data
        errors = validate_parsed_order(data)
        if errors:
            return TelegramOrderImportResponse(success=False, errors=errors, warnings=parsed.warnings)

        try:
            seller = self._profile_by("opt_id", data.seller_opt_id)
            buyer = self._profile_by("opt_id", data.buyer_opt_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not seller:
            errors.append(f"Продавец с OPT_ID {data.seller_opt_id} не найден")
        if not buyer:
            errors.append(f"Покупатель с OPT_ID {data.buyer_opt_id} не найден")
        if errors:
            return TelegramOrderImportResponse(success=False, errors=errors, warnings=parsed.warnings)

        try:
            order = self._insert_order({
                "title": data.title,
                "price": float(data.price),
                "brand": data.brand,
                "model": data.model,
                "place_number": int(data.place_number),
                "delivery_method": delivery_method,
                "delivery_price_confirm": float(data.delivery_price) if data.delivery_price else None,
                "order_created_type": "free_order",
                "buyer_id": buyer["id"],
                "seller_id": seller["id"],
                "buyer_opt_id": buyer.get("opt_id"),
                "seller_opt_id": seller.get("opt_id"),
                "telegram_url_order": buyer.get("telegram"),
                "images": [],
                "video_url": [],
            })
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        logger.info(f"Imported Telegram order {order['id']} by {profile['id']}")
        return TelegramOrderImportResponse(success=True, order=OrderResponse(**order), warnings=parsed.warnings)

    def get_seller(self, seller_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._profile_by("id", seller_id)
        except Exception as e:
            logger.error(f"Failed to load seller {seller_id}: {e}")
            return None

from supabase import Client
from app.config import settings
from app.modules.products.schemas import (
    ProductCreate, ProductUpdate, ProductResponse, ProductDetailResponse,
    ProductImageResponse
)
from app.modules.media.cloudinary_storage import TRANSFORMATION_PRESETS
from app.modules.telegram.messages import optimize_cloudinary_url
from app.core.dependencies import is_admin
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
import math
import logging

logger = logging.getLogger(__name__)

PRODUCT_STATUSES = ("pending", "active", "sold", "archived")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def repost_hours_remaining(last_sent_at, cooldown_hours: int, now: Optional[datetime] = None) -> int:
    """Whole hours left before a lot may be reposted again; 0 when allowed."""
    last = _parse_ts(last_sent_at)
    if last is None:
        return 0
    remaining = last + timedelta(hours=cooldown_hours) - (now or _now())
    if remaining.total_seconds() <= 0:
        return 0
    return math.ceil(remaining.total_seconds() / 3600)


def preview_url(url: Optional[str]) -> Optional[str]:
    return optimize_cloudinary_url(url, TRANSFORMATION_PRESETS["medium"]) if url else None


class ProductService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_row(self, product_id: str) -> Dict[str, Any]:
        result = self.supabase.table("products")\
            .select("*")\
            .eq("id", product_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Product not found")
        return result.data

    def _check_owner(self, product: Dict[str, Any], profile: dict):
        if not is_admin(profile) and product.get("seller_id") != profile["id"]:
            raise HTTPException(status_code=403, detail="You can only manage your own products")

    def _images(self, product_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("product_images")\
            .select("*")\
            .eq("product_id", product_id)\
            .order("created_at")\
            .execute()
        images = result.data or []
        # Primary first, then upload order
        return sorted(images, key=lambda img: not img.get("is_primary"))

    def _videos(self, product_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("product_videos")\
            .select("*")\
            .eq("product_id", product_id)\
            .order("created_at")\
            .execute()
        return result.data or []

    def get_product_with_media(self, product_id: str) -> Dict[str, Any]:
        """Product row with product_images (primary first) and product_videos attached"""
        product = self._get_row(product_id)
        product["product_images"] = self._images(product_id)
        product["product_videos"] = self._videos(product_id)
        return product

    def list_products(
        self,
        status: Optional[str] = None,
        brand: Optional[str] = None,
        model: Optional[str] = None,
        seller_id: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        limit: int = 20,
        offset: int = 0,
        allow_any_status: bool = False
    ) -> List[ProductResponse]:
        """Public catalog: active products unless the caller may see other statuses"""
        try:
            query = self.supabase.table("products").select("*")
            if allow_any_status:
                if status:
                    query = query.eq("status", status)
            else:
                query = query.eq("status", "active")
            if brand:
                query = query.eq("brand", brand)
            if model:
                query = query.eq("model", model)
            if seller_id:
                query = query.eq("seller_id", seller_id)
            if search:
                term = search.strip().replace(",", " ")
                query = query.or_(f"title.ilike.%{term}%,brand.ilike.%{term}%,model.ilike.%{term}%")
            if min_price is not None:
                query = query.gte("price", min_price)
            if max_price is not None:
                query = query.lte("price", max_price)
            result = query.order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [ProductResponse(**p) for p in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_product(self, product_id: str, profile: Optional[dict] = None) -> ProductDetailResponse:
        """Active products are public; others only for their seller and admins"""
        try:
            product = self.get_product_with_media(product_id)
            if product.get("status") != "active":
                if not profile or (not is_admin(profile) and product.get("seller_id") != profile["id"]):
                    raise HTTPException(status_code=404, detail="Product not found")
            return ProductDetailResponse(**product)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_product(self, product_data: ProductCreate, profile: dict) -> Dict[str, Any]:
        """Create a product. Sellers always start in pending; admins may pick status and seller."""
        try:
            seller = profile
            status = "pending"
            if is_admin(profile):
                status = product_data.status or "pending"
                if product_data.seller_id and product_data.seller_id != profile["id"]:
                    seller_result = self.supabase.table("profiles")\
                        .select("*")\
                        .eq("id", product_data.seller_id)\
                        .maybe_single()\
                        .execute()
                    if not seller_result or not seller_result.data:
                        raise HTTPException(status_code=404, detail="Seller not found")
                    seller = seller_result.data

            insert_data = {
                "title": product_data.title.strip(),
                "price": product_data.price,
                "delivery_price": product_data.delivery_price,
                "brand": product_data.brand,
                "model": product_data.model,
                "description": product_data.description,
                "place_number": product_data.place_number,
                "status": status,
                "seller_id": seller["id"],
                "seller_name": seller.get("full_name") or "Unknown",
                "optid_created": seller.get("opt_id"),
                "telegram_url": seller.get("telegram"),
                "telegram_notification_status": "not_sent",
            }
            result = self.supabase.table("products").insert(insert_data).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create product")
            product = result.data[0]

            for index, url in enumerate(product_data.image_urls):
                self.supabase.table("product_images").insert({
                    "product_id": product["id"],
                    "url": url,
                    "is_primary": index == 0
                }).execute()
            for url in product_data.video_urls:
                self.supabase.table("product_videos").insert({
                    "product_id": product["id"],
                    "url": url
                }).execute()
            if product_data.image_urls:
                product.update(self._sync_primary(product["id"]))

            logger.info(f"Product {product['id']} created by {profile['id']} with status {status}")
            return product
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_product(self, product_id: str, product_data: ProductUpdate, profile: dict) -> ProductResponse:
        try:
            product = self._get_row(product_id)
            self._check_owner(product, profile)
            if not is_admin(profile) and product.get("status") == "sold":
                raise HTTPException(status_code=400, detail="Sold products cannot be edited")

            update_data = product_data.model_dump(exclude_unset=True)
            update_data["updated_at"] = _now().isoformat()
            result = self.supabase.table("products")\
                .update(update_data)\
                .eq("id", product_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Product not found")
            return ProductResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def set_product_status(self, product_id: str, status: str) -> Dict[str, Any]:
        """Moderation status change. Returns the updated row with the previous status under 'previous_status'."""
        if status not in PRODUCT_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid product status: {status}")
        try:
            product = self._get_row(product_id)
            result = self.supabase.table("products")\
                .update({"status": status, "updated_at": _now().isoformat()})\
                .eq("id", product_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Product not found")
            updated = result.data[0]
            updated["previous_status"] = product.get("status")
            logger.info(f"Product {product_id} status {product.get('status')} -> {status}")
            return updated
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def record_view(self, product_id: str) -> None:
        try:
            self.supabase.rpc("increment_product_view_count", {"product_id": product_id}).execute()
        except Exception as e:
            logger.warning(f"Failed to record view for product {product_id}: {e}")

    def _sync_primary(self, product_id: str) -> Dict[str, Any]:
        """Keep exactly one primary image and mirror it on the product row"""
        images = self.supabase.table("product_images")\
            .select("*")\
            .eq("product_id", product_id)\
            .order("created_at")\
            .execute().data or []
        primary = next((img for img in images if img.get("is_primary")), None)
        if primary is None and images:
            primary = images[0]
            self.supabase.table("product_images")\
                .update({"is_primary": True})\
                .eq("id", primary["id"])\
                .execute()
        extra_primaries = [img["id"] for img in images if img.get("is_primary") and primary and img["id"] != primary["id"]]
        if extra_primaries:
            self.supabase.table("product_images")\
                .update({"is_primary": False})\
                .in_("id", extra_primaries)\
                .execute()

        mirror = {
            "cloudinary_url": primary["url"] if primary else None,
            "cloudinary_public_id": primary.get("public_id") if primary else None,
            "preview_image_url": preview_url(primary["url"]) if primary else None,
        }
        self.supabase.table("products").update(mirror).eq("id", product_id).execute()
        return mirror

    def add_product_image(self, product_id: str, url: str, public_id: Optional[str], profile: dict) -> ProductImageResponse:
        try:
            product = self._get_row(product_id)
            self._check_owner(product, profile)
            has_images = bool(self._images(product_id))
            result = self.supabase.table("product_images").insert({
                "product_id": product_id,
                "url": url,
                "public_id": public_id,
                "is_primary": not has_images
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to add image")
            if not has_images:
                self._sync_primary(product_id)
            return ProductImageResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_product_image(self, product_id: str, image_id: str, profile: dict) -> Dict[str, Any]:
        """Delete an image; removing the primary promotes the next one. Returns the deleted row."""
        try:
            product = self._get_row(product_id)
            self._check_owner(product, profile)
            result = self.supabase.table("product_images")\
                .delete()\
                .eq("id", image_id)\
                .eq("product_id", product_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Image not found")
            self._sync_primary(product_id)
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def set_primary_image(self, product_id: str, image_id: str, profile: dict) -> Dict[str, Any]:
        try:
            product = self._get_row(product_id)
            self._check_owner(product, profile)
            images = self._images(product_id)
            if not any(img["id"] == image_id for img in images):
                raise HTTPException(status_code=404, detail="Image not found")
            self.supabase.table("product_images")\
                .update({"is_primary": False})\
                .eq("product_id", product_id)\
                .execute()
            self.supabase.table("product_images")\
                .update({"is_primary": True})\
                .eq("id", image_id)\
                .execute()
            return self._sync_primary(product_id)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def prepare_repost(self, product_id: str, profile: dict) -> Dict[str, Any]:
        """Validate a repost request and return the product with media for publishing"""
        try:
            product = self._get_row(product_id)
            self._check_owner(product, profile)
            if product.get("status") != "active":
                raise HTTPException(status_code=400, detail="Only active products can be reposted")
            if not is_admin(profile):
                hours = repost_hours_remaining(product.get("last_notification_sent_at"), settings.repost_cooldown_hours)
                if hours > 0:
                    raise HTTPException(
                        status_code=429,
                        detail={
                            "message": f"Product can be reposted once every {settings.repost_cooldown_hours} hours",
                            "hours_remaining": hours
                        }
                    )
            return self.get_product_with_media(product_id)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def latest_order_for_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("orders")\
                .select("*")\
                .eq("product_id", product_id)\
                .neq("status", "cancelled")\
                .order("created_at", desc=True)\
                .limit(1)\
                .execute()
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Failed to load order for product {product_id}: {e}")
            return None

    def get_seller(self, seller_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("profiles")\
                .select("*")\
                .eq("id", seller_id)\
                .maybe_single()\
                .execute()
            return result.data if result else None
        except Exception as e:
            logger.error(f"Failed to load seller {seller_id}: {e}")
            return None

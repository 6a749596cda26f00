from fastapi import APIRouter, BackgroundTasks, Depends
from app.database.supabase_client import get_supabase
from app.modules.products.schemas import (
    ProductCreate, ProductUpdate, ProductResponse, ProductDetailResponse,
    ProductStatusUpdate, ProductImageCreate, ProductImageResponse, RepostResponse
)
from app.modules.products.service import ProductService
from app.modules.media.cloudinary_storage import CloudinaryStorage
from app.modules.media.routes import get_optional_cloudinary_storage, get_backup_storage
from app.modules.media.s3_storage import MediaBackup
from app.modules.realtime.publisher import EventPublisher, get_event_publisher, product_channel, PRODUCT_UPDATED
from app.modules.telegram.service import TelegramNotifier, get_telegram_notifier
from app.core.dependencies import require_permission, get_optional_profile, is_admin
from supabase import Client
from typing import List, Dict, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


def get_product_service(supabase: Client = Depends(get_supabase)) -> ProductService:
    return ProductService(supabase)


@router.get("", response_model=List[ProductResponse])
async def list_products(
    status: Optional[str] = None,
    brand: Optional[str] = None,
    model: Optional[str] = None,
    seller_id: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    limit: int = 20,
    offset: int = 0,
    profile: Optional[Dict] = Depends(get_optional_profile),
    service: ProductService = Depends(get_product_service)
):
    """Catalog. Anonymous users and non-admins only see active products."""
    return service.list_products(
        status=status,
        brand=brand,
        model=model,
        seller_id=seller_id,
        search=search,
        min_price=min_price,
        max_price=max_price,
        limit=limit,
        offset=offset,
        allow_any_status=bool(profile) and is_admin(profile)
    )


@router.get("/{product_id}", response_model=ProductDetailResponse)
async def get_product(
    product_id: str,
    profile: Optional[Dict] = Depends(get_optional_profile),
    service: ProductService = Depends(get_product_service)
):
    return service.get_product(product_id, profile)


@router.post("/{product_id}/view", status_code=204)
async def record_view(
    product_id: str,
    service: ProductService = Depends(get_product_service)
):
    service.record_view(product_id)
    return None


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    product_data: ProductCreate,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("products:create")),
    service: ProductService = Depends(get_product_service),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Create a product; pending products are sent to admins for moderation"""
    product = service.create_product(product_data, profile)
    if product["status"] == "pending":
        background_tasks.add_task(notifier.notify_admins_new_product, product)
    elif product["status"] == "active":
        background_tasks.add_task(notifier.publish_product, service.get_product_with_media(product["id"]))
    return ProductResponse(**product)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    product_data: ProductUpdate,
    profile: Dict = Depends(require_permission("products:update")),
    service: ProductService = Depends(get_product_service)
):
    return service.update_product(product_id, product_data, profile)


@router.put("/{product_id}/status", response_model=ProductResponse)
async def set_product_status(
    product_id: str,
    request: ProductStatusUpdate,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("products:moderate")),
    service: ProductService = Depends(get_product_service),
    notifier: TelegramNotifier = Depends(get_telegram_notifier),
    publisher: EventPublisher = Depends(get_event_publisher)
):
    """Moderate a product. Publishing posts the lot to the group; selling notifies the seller."""
    product = service.set_product_status(product_id, request.status)
    if request.status == product["previous_status"]:
        return ProductResponse(**product)
    background_tasks.add_task(
        publisher.trigger, [product_channel(product_id)], PRODUCT_UPDATED,
        {"id": product_id, "status": request.status, "previous_status": product["previous_status"]}
    )
    if request.status == "active":
        background_tasks.add_task(notifier.publish_product, service.get_product_with_media(product_id))
    elif request.status == "sold":
        order = service.latest_order_for_product(product_id)
        seller = service.get_seller(product["seller_id"]) if product.get("seller_id") else None
        if order and seller:
            background_tasks.add_task(notifier.notify_product_sold, order, seller)
        else:
            logger.info(f"Product {product_id} marked sold without an order, seller not notified")
    return ProductResponse(**product)


@router.post("/{product_id}/repost", response_model=RepostResponse)
async def repost_product(
    product_id: str,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("products:repost")),
    service: ProductService = Depends(get_product_service),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Re-send an active lot to the Telegram product group"""
    product = service.prepare_repost(product_id, profile)
    background_tasks.add_task(notifier.publish_product, product)
    return RepostResponse(product_id=product_id, message="Repost scheduled")


@router.post("/{product_id}/images", response_model=ProductImageResponse, status_code=201)
async def add_product_image(
    product_id: str,
    image: ProductImageCreate,
    profile: Dict = Depends(require_permission("products:update")),
    service: ProductService = Depends(get_product_service)
):
    return service.add_product_image(product_id, image.url, image.public_id, profile)


@router.delete("/{product_id}/images/{image_id}", status_code=204)
async def delete_product_image(
    product_id: str,
    image_id: str,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("products:update")),
    service: ProductService = Depends(get_product_service),
    storage: Optional[CloudinaryStorage] = Depends(get_optional_cloudinary_storage),
    backup: Optional[MediaBackup] = Depends(get_backup_storage)
):
    """Delete an image; its CDN asset and S3 backup are removed in the background"""
    image = service.delete_product_image(product_id, image_id, profile)
    if image.get("public_id"):
        if storage:
            background_tasks.add_task(storage.delete, image["public_id"])
        if backup:
            background_tasks.add_task(backup.remove, image["public_id"])
    return None


@router.put("/{product_id}/images/{image_id}/primary")
async def set_primary_image(
    product_id: str,
    image_id: str,
    profile: Dict = Depends(require_permission("products:update")),
    service: ProductService = Depends(get_product_service)
):
    """Make an image the primary one; returns the mirrored product image fields"""
    return service.set_primary_image(product_id, image_id, profile)

from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

ProductStatus = Literal["pending", "active", "sold", "archived"]


class ProductCreate(BaseModel):
    title: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    delivery_price: Optional[float] = Field(default=None, ge=0)
    brand: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None
    place_number: int = Field(default=1, ge=1)
    image_urls: List[str] = []
    video_urls: List[str] = []
    # Admin only: create on behalf of a seller and/or publish directly
    seller_id: Optional[str] = None
    status: Optional[ProductStatus] = None


class ProductUpdate(BaseModel):
    title: Optional[str] = None
    price: Optional[float] = Field(default=None, gt=0)
    delivery_price: Optional[float] = Field(default=None, ge=0)
    brand: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None
    place_number: Optional[int] = Field(default=None, ge=1)


class ProductStatusUpdate(BaseModel):
    status: ProductStatus


class ProductImageCreate(BaseModel):
    url: str
    public_id: Optional[str] = None


class ProductImageResponse(BaseModel):
    id: str
    product_id: str
    url: str
    public_id: Optional[str] = None
    is_primary: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductVideoResponse(BaseModel):
    id: str
    product_id: str
    url: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    id: str
    lot_number: Optional[int] = None
    title: str
    price: float
    delivery_price: Optional[float] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None
    place_number: Optional[int] = 1
    status: str
    seller_id: Optional[str] = None
    seller_name: Optional[str] = None
    optid_created: Optional[str] = None
    telegram_url: Optional[str] = None
    cloudinary_url: Optional[str] = None
    preview_image_url: Optional[str] = None
    view_count: Optional[int] = 0
    telegram_notification_status: Optional[str] = None
    last_notification_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductDetailResponse(ProductResponse):
    product_images: List[ProductImageResponse] = []
    product_videos: List[ProductVideoResponse] = []


class RepostResponse(BaseModel):
    success: bool = True
    product_id: str
    message: str

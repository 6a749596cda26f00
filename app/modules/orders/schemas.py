from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

OrderStatus = Literal[
    "created", "seller_confirmed", "admin_confirmed", "processed", "shipped", "delivered", "cancelled"
]
DeliveryMethod = Literal["self_pickup", "cargo_rf", "cargo_kz"]


class OrderCreate(BaseModel):
    product_id: Optional[str] = None
    title: Optional[str] = None
    price: Optional[float] = Field(default=None, gt=0)
    brand: Optional[str] = None
    model: Optional[str] = None
    place_number: int = Field(default=1, ge=1)
    delivery_method: DeliveryMethod = "cargo_rf"
    delivery_price_confirm: Optional[float] = Field(default=None, ge=0)
    text_order: Optional[str] = None
    # Free orders: buyer by id or OPT_ID; admins may also name the seller
    buyer_id: Optional[str] = None
    buyer_opt_id: Optional[str] = None
    seller_id: Optional[str] = None
    seller_opt_id: Optional[str] = None
    images: List[str] = []
    video_url: List[str] = []


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderMediaAttach(BaseModel):
    images: List[str] = []
    videos: List[str] = []


class OrderResponse(BaseModel):
    id: str
    order_number: Optional[int] = None
    title: str
    price: float
    brand: Optional[str] = None
    model: Optional[str] = None
    place_number: Optional[int] = 1
    delivery_method: Optional[str] = None
    delivery_price_confirm: Optional[float] = None
    text_order: Optional[str] = None
    status: str
    order_created_type: Optional[str] = None
    product_id: Optional[str] = None
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    buyer_opt_id: Optional[str] = None
    seller_opt_id: Optional[str] = None
    telegram_url_order: Optional[str] = None
    images: List[str] = []
    video_url: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TelegramOrderImport(BaseModel):
    text: str = Field(..., min_length=1)
    delivery_method: DeliveryMethod = "cargo_rf"


class TelegramOrderImportResponse(BaseModel):
    success: bool
    order: Optional[OrderResponse] = None
    errors: List[str] = []
    warnings: List[str] = []


class NotificationResendResponse(BaseModel):
    success: bool
    order_id: str

from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime

OfferStatus = Literal["pending", "accepted", "rejected", "expired", "cancelled"]


class OfferCreate(BaseModel):
    product_id: str
    offered_price: float = Field(..., gt=0)
    message: Optional[str] = None


class OfferPriceUpdate(BaseModel):
    offered_price: float = Field(..., gt=0)
    message: Optional[str] = None


class OfferRespond(BaseModel):
    action: Literal["accept", "reject"]
    seller_response: Optional[str] = None


class OfferResponse(BaseModel):
    id: str
    product_id: str
    buyer_id: str
    seller_id: str
    original_price: float
    offered_price: float
    message: Optional[str] = None
    seller_response: Optional[str] = None
    status: str
    expires_at: datetime
    order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompetitiveSummary(BaseModel):
    product_id: str
    pending_count: int
    max_offered_price: Optional[float] = None

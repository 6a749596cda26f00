from pydantic import BaseModel
from typing import Optional


class Base64UploadRequest(BaseModel):
    base64: str
    name: str
    type: Optional[str] = None
    folder: Optional[str] = None
    order_id: Optional[str] = None


class MediaUploadResponse(BaseModel):
    success: bool = True
    public_id: str
    url: str
    resource_type: str
    bytes: Optional[int] = None
    format: Optional[str] = None
    thumbnail_url: Optional[str] = None
    order_id: Optional[str] = None
    backup_key: Optional[str] = None

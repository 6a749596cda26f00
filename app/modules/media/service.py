import base64
import binascii
import os
import re
from typing import Optional

from fastapi import HTTPException
from supabase import Client

from app.config import settings
from app.modules.media.cloudinary_storage import CloudinaryStorage, CloudinaryError, build_transformation_url
from app.modules.media.s3_storage import MediaBackup
from app.modules.media.schemas import MediaUploadResponse
from app.modules.orders.service import OrderService
import logging

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif", "heic"}
VIDEO_EXTENSIONS = {"mp4", "mov", "webm"}
MAX_IMAGE_BYTES = 10 * 1024 * 1024
MAX_VIDEO_BYTES = 100 * 1024 * 1024

_DATA_URL_PREFIX = re.compile(r"^data:[^;,]*(;base64)?,", re.IGNORECASE)


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


def classify_upload(filename: str, content_type: Optional[str], size: int) -> str:
    """Return "image" or "video"; raise 400 for unsupported types and oversized files."""
    ext = file_extension(filename)
    kind = None
    if ext in IMAGE_EXTENSIONS:
        kind = "image"
    elif ext in VIDEO_EXTENSIONS:
        kind = "video"
    elif content_type and content_type.startswith("image/") and content_type.split("/")[1] in IMAGE_EXTENSIONS:
        kind = "image"
    if kind is None:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Allowed: {', '.join(sorted(IMAGE_EXTENSIONS | VIDEO_EXTENSIONS))}"
        )
    if size == 0:
        raise HTTPException(status_code=400, detail="File is empty")
    limit = MAX_IMAGE_BYTES if kind == "image" else MAX_VIDEO_BYTES
    if size > limit:
        raise HTTPException(status_code=400, detail=f"File too large. Maximum {limit // (1024 * 1024)}MB for {kind}s")
    return kind


def decode_base64_payload(data: str) -> bytes:
    """Decode a base64 string, accepting an optional data: URL prefix"""
    cleaned = _DATA_URL_PREFIX.sub("", data.strip())
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid base64 data")


class MediaService:
    def __init__(self, supabase: Client, storage: CloudinaryStorage, backup: Optional[MediaBackup] = None):
        self.supabase = supabase
        self.storage = storage
        self.backup = backup
        self.orders = OrderService(supabase)

    def _backup(self, content: bytes, public_id: str, ext: str, content_type: Optional[str]) -> Optional[str]:
        if self.backup is None:
            return None
        try:
            return self.backup.store(content, public_id, ext, content_type)
        except Exception as e:
            logger.warning(f"Media backup failed for {public_id}: {e}")
            return None

    def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str],
        profile: dict,
        folder: Optional[str] = None,
        order_id: Optional[str] = None
    ) -> MediaUploadResponse:
        """Upload to the CDN; with order_id the photo limit is checked first and the URL attached after"""
        kind = classify_upload(filename, content_type, len(content))
        order = None
        if order_id:
            order = self.orders.get_order(order_id, profile)
            if kind == "image":
                self.orders.check_photo_capacity(order, 1)
        folder = folder or (f"orders/{order_id}" if order_id else settings.cloudinary_default_folder)

        try:
            uploaded = self.storage.upload(content, filename, folder, resource_type=kind, content_type=content_type)
        except CloudinaryError as e:
            raise HTTPException(status_code=502, detail=f"Upload failed: {e}")
        public_id = uploaded.get("public_id")
        url = uploaded.get("secure_url")
        if not public_id or not url:
            raise HTTPException(status_code=502, detail="Upload failed: incomplete response from CDN")
        logger.info(f"Uploaded {kind} {public_id} ({len(content)} bytes) for {profile['id']}")

        backup_key = self._backup(content, public_id, file_extension(filename), content_type)

        if order is not None:
            self.orders.attach_order_media(
                order_id,
                images=[url] if kind == "image" else [],
                videos=[url] if kind == "video" else [],
                profile=profile
            )

        return MediaUploadResponse(
            public_id=public_id,
            url=url,
            resource_type=kind,
            bytes=uploaded.get("bytes"),
            format=uploaded.get("format"),
            thumbnail_url=build_transformation_url(self.storage.cloud_name, public_id, "thumbnail") if kind == "image" else None,
            order_id=order_id,
            backup_key=backup_key
        )

    def upload_base64(
        self,
        data: str,
        name: str,
        content_type: Optional[str],
        profile: dict,
        folder: Optional[str] = None,
        order_id: Optional[str] = None
    ) -> MediaUploadResponse:
        content = decode_base64_payload(data)
        return self.upload(content, name, content_type, profile, folder=folder, order_id=order_id)

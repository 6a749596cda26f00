from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from app.config import settings
from app.database.supabase_client import get_supabase
from app.modules.media.cloudinary_storage import CloudinaryStorage
from app.modules.media.s3_storage import MediaBackup
from app.modules.media.schemas import Base64UploadRequest, MediaUploadResponse
from app.modules.media.service import MediaService
from app.core.dependencies import require_permission
from supabase import Client
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["media"])


def get_cloudinary_storage() -> CloudinaryStorage:
    try:
        return CloudinaryStorage()
    except ValueError as e:
        logger.error(f"Cloudinary unavailable: {e}")
        raise HTTPException(status_code=500, detail="Media storage is not configured")


def get_optional_cloudinary_storage() -> Optional[CloudinaryStorage]:
    """CDN client for best-effort cleanup; None when Cloudinary is not configured"""
    if not settings.cloudinary_configured:
        return None
    return CloudinaryStorage()


def get_backup_storage() -> Optional[MediaBackup]:
    if not settings.s3_configured:
        return None
    return MediaBackup()


def get_media_service(
    supabase: Client = Depends(get_supabase),
    storage: CloudinaryStorage = Depends(get_cloudinary_storage),
    backup: Optional[MediaBackup] = Depends(get_backup_storage)
) -> MediaService:
    return MediaService(supabase, storage, backup)


@router.post("/upload", response_model=MediaUploadResponse, status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    folder: Optional[str] = Form(None),
    order_id: Optional[str] = Form(None),
    profile: Dict = Depends(require_permission("media:upload")),
    service: MediaService = Depends(get_media_service)
):
    """Upload an image or video; pass order_id to attach it to an order"""
    content = await file.read()
    return service.upload(
        content,
        file.filename or "upload",
        file.content_type,
        profile,
        folder=folder,
        order_id=order_id
    )


@router.post("/upload-base64", response_model=MediaUploadResponse, status_code=201)
async def upload_media_base64(
    request: Base64UploadRequest,
    profile: Dict = Depends(require_permission("media:upload")),
    service: MediaService = Depends(get_media_service)
):
    """Same as /upload for clients that send files as base64 JSON"""
    return service.upload_base64(
        request.base64,
        request.name,
        request.type,
        profile,
        folder=request.folder,
        order_id=request.order_id
    )

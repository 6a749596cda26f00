from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from app.database.supabase_client import get_supabase
from app.modules.profiles.schemas import ProfileUpdate, ProfileResponse, VerificationUpdate
from app.modules.profiles.service import ProfileService
from app.modules.telegram.service import TelegramNotifier, get_telegram_notifier
from app.core.dependencies import require_permission, is_admin
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/profiles", tags=["profiles"])


def get_profile_service(supabase: Client = Depends(get_supabase)) -> ProfileService:
    return ProfileService(supabase)


@router.get("", response_model=List[ProfileResponse])
async def list_profiles(
    user_type: Optional[str] = None,
    verification_status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    profile: Dict = Depends(require_permission("profiles:list")),
    service: ProfileService = Depends(get_profile_service)
):
    """List profiles (admin)"""
    return service.list_profiles(
        user_type=user_type,
        verification_status=verification_status,
        search=search,
        limit=limit,
        offset=offset
    )


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    profile: Dict = Depends(require_permission("profiles:read"))
):
    return ProfileResponse(**profile)


@router.put("/me", response_model=ProfileResponse)
async def update_my_profile(
    profile_data: ProfileUpdate,
    profile: Dict = Depends(require_permission("profiles:update")),
    service: ProfileService = Depends(get_profile_service)
):
    """Update own profile"""
    return service.update_profile(profile["id"], profile_data)


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: str,
    profile: Dict = Depends(require_permission("profiles:read")),
    service: ProfileService = Depends(get_profile_service)
):
    """Get profile by ID (own profile, or any profile for admins)"""
    if user_id != profile["id"] and not is_admin(profile):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Profile not accessible")
    return service.get_profile(user_id)


@router.put("/{user_id}/verification", response_model=ProfileResponse)
async def set_verification_status(
    user_id: str,
    request: VerificationUpdate,
    background_tasks: BackgroundTasks,
    profile: Dict = Depends(require_permission("profiles:verify")),
    service: ProfileService = Depends(get_profile_service),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Change verification status and tell the user on Telegram"""
    updated = service.set_verification_status(user_id, request.verification_status)
    if updated.get("telegram_id"):
        background_tasks.add_task(notifier.notify_verification_status, updated, request.verification_status)
    return ProfileResponse(**updated)

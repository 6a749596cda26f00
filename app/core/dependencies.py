"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from app.config.permissions_config import get_user_type_permissions
from supabase import Client
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def _get_request_cache(request: Request) -> Dict[str, Any]:
    """Return request-scoped cache for access data (profile, permission names)."""
    if not hasattr(request.state, "access_cache"):
        request.state.access_cache = {}
    return request.state.access_cache


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    token = credentials.credentials
    user_data = auth_service.get_current_user(token)
    return user_data


def load_profile(user_id: str, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Fetch the profiles row for a user. Uses request-scoped cache when provided."""
    if cache is not None and "profile" in cache:
        return cache["profile"]
    try:
        result = supabase.table("profiles")\
            .select("*")\
            .eq("id", user_id)\
            .maybe_single()\
            .execute()
    except Exception as e:
        logger.error(f"Error loading profile {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load profile")
    if not result or not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found"
        )
    profile = result.data
    if cache is not None:
        cache["profile"] = profile
    return profile


def get_current_profile(
    request: Request,
    user_data: dict = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase)
) -> dict:
    """Profile of the authenticated user (user_type, verification_status, opt_id...)."""
    return load_profile(user_data["id"], supabase, _get_request_cache(request))


optional_security = HTTPBearer(auto_error=False)


def get_optional_profile(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(optional_security),
    supabase: Client = Depends(get_supabase)
) -> Optional[dict]:
    """Profile when a valid Bearer token is sent, None for anonymous catalog visitors."""
    if credentials is None:
        return None
    user_data = AuthService(supabase).get_current_user(credentials.credentials)
    return load_profile(user_data["id"], supabase, _get_request_cache(request))


def is_admin(profile: dict) -> bool:
    return bool(profile) and profile.get("user_type") == "admin"


def is_blocked(profile: dict) -> bool:
    return profile.get("verification_status") == "blocked"


def get_user_permissions(profile: dict) -> List[str]:
    """Permission names granted by the profile's user type."""
    return get_user_type_permissions(profile.get("user_type") or "")


def require_permission(required_permission: str):
    """Factory function to create permission check dependency"""
    def check_permission(
        profile: dict = Depends(get_current_profile)
    ) -> dict:
        """Dependency to check if user has required permission"""
        if is_blocked(profile):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is blocked"
            )
        if required_permission not in get_user_permissions(profile):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {required_permission}"
            )
        return profile
    return check_permission


def require_admin(profile: dict = Depends(get_current_profile)) -> dict:
    if not is_admin(profile):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return profile


def check_order_access(order: Dict[str, Any], profile: dict) -> dict:
    """Allow if admin, the order's buyer or the order's seller"""
    if is_admin(profile):
        return profile
    if profile["id"] in (order.get("buyer_id"), order.get("seller_id")):
        return profile
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You must be the buyer or the seller of this order to access it"
    )


def check_offer_access(offer: Dict[str, Any], profile: dict) -> dict:
    """Allow if admin, the offer's buyer or the offer's seller"""
    if is_admin(profile):
        return profile
    if profile["id"] in (offer.get("buyer_id"), offer.get("seller_id")):
        return profile
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You must be the buyer or the seller of this offer to access it"
    )

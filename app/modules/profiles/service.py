from supabase import Client
from app.modules.profiles.schemas import ProfileUpdate, ProfileResponse
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_profile_row(self, user_id: str) -> Dict[str, Any]:
        try:
            result = self.supabase.table("profiles")\
                .select("*")\
                .eq("id", user_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise HTTPException(status_code=404, detail="Profile not found")
            return result.data
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_profile(self, user_id: str) -> ProfileResponse:
        """Get profile by ID"""
        return ProfileResponse(**self.get_profile_row(user_id))

    def update_profile(self, user_id: str, profile_data: ProfileUpdate) -> ProfileResponse:
        """Update own profile; only fields present in the request are written"""
        try:
            update_data = profile_data.model_dump(exclude_unset=True)
            update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

            result = self.supabase.table("profiles")\
                .update(update_data)\
                .eq("id", user_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Profile not found")

            return ProfileResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_profiles(
        self,
        user_type: Optional[str] = None,
        verification_status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[ProfileResponse]:
        """Admin listing with optional filters; search matches name, email or OPT_ID"""
        try:
            query = self.supabase.table("profiles").select("*")
            if user_type:
                query = query.eq("user_type", user_type)
            if verification_status:
                query = query.eq("verification_status", verification_status)
            if search:
                term = search.strip().replace(",", " ")
                query = query.or_(f"full_name.ilike.%{term}%,email.ilike.%{term}%,opt_id.ilike.%{term}%")
            result = query.order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [ProfileResponse(**p) for p in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def set_verification_status(self, user_id: str, verification_status: str) -> Dict[str, Any]:
        """Change verification status; returns the updated profile row"""
        try:
            result = self.supabase.table("profiles")\
                .update({
                    "verification_status": verification_status,
                    "updated_at": datetime.now(timezone.utc).isoformat()
                })\
                .eq("id", user_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Profile not found")
            logger.info(f"Profile {user_id} verification status set to {verification_status}")
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

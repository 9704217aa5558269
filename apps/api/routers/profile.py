"""
Profile API Router
"""

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.auth import get_current_profile, get_current_user_id
from core.database import get_db
from models import UserProfile
from schemas import UserProfileResponse, UserProfileUpsert
from services import user_profile_service

router = APIRouter(prefix="/v1/profile", tags=["Profile"])


@router.get("", response_model=UserProfileResponse)
def get_profile(profile: UserProfile = Depends(get_current_profile)):
    return profile


@router.put("", response_model=UserProfileResponse)
def upsert_profile(
    body: UserProfileUpsert,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return user_profile_service.upsert_profile(db, user_id, body)


@router.post("/custom-equipment")
def add_custom_equipment(
    body: Dict[str, Any] = Body(...),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Add a user-defined piece of equipment.

    Malformed input is answered with 400 and {success: false, error,
    message} rather than a validation exception.
    """
    result = user_profile_service.add_custom_equipment(db, user_id, body)
    content = {
        "success": result.success,
        "equipment": result.equipment,
        "error": result.error,
        "message": result.message,
    }
    return JSONResponse(status_code=201 if result.success else 400, content=content)

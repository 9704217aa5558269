"""
Authentication dependencies.
"""
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.database import get_db
from core.security import decode_user_id
from models import UserProfile

# auto_error=False: a missing header is a 401, not FastAPI's default 403
bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> UUID:
    if not credentials:
        raise _unauthorized("Not authenticated")
    user_id = decode_user_id(credentials.credentials)
    if user_id is None:
        raise _unauthorized("Invalid authentication credentials")
    return user_id


def get_current_profile(
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> UserProfile:
    """
    Current user's profile.

    Users without a profile are still authenticated; endpoints that work
    before onboarding should depend on get_current_user_id instead.
    """
    profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found. Please create a profile first.",
        )
    return profile

"""
JWT helpers.

Tokens are issued by the identity provider in front of this service and
carry the user id in `sub`. create_access_token is for service-to-service
calls and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from uuid import UUID

from jose import JWTError, jwt

from core.config import settings

ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32

if len(settings.SECRET_KEY) < MIN_SECRET_LENGTH:
    raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_LENGTH} characters")


def create_access_token(claims: Dict, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = dict(claims, exp=datetime.now(timezone.utc) + lifetime)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_user_id(token: str) -> Optional[UUID]:
    """Subject of a valid token as a UUID; None for bad signature, expiry or a malformed sub."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    subject = claims.get("sub")
    if not subject:
        return None
    try:
        return UUID(str(subject))
    except ValueError:
        return None

"""
API dependencies for FastAPI dependency injection.

Provides common dependencies like database sessions and authentication.
"""
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import (
    BadRequestException,
    ForbiddenException,
    UnauthorizedException,
)
from skillconnect.lib.db import get_db as get_db_session
from skillconnect.lib.logging import get_logger
from skillconnect.models.users import User
from skillconnect.services.auth_service import AuthService


logger = get_logger(__name__)

# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency to get current authenticated user from JWT token.

    Raises:
        UnauthorizedException: 401 if the token is missing, invalid or its user is gone
        ForbiddenException: 403 if the account is banned
    """
    if credentials is None:
        raise UnauthorizedException("Please login first")

    user = AuthService(db).user_for_token(credentials.credentials)
    if user.banned:
        logger.warning("Banned user attempt", extra={"user_id": str(user.id)})
        raise ForbiddenException("Account is banned")
    return user


async def get_verified_user(user: User = Depends(get_current_user)) -> User:
    """Marketplace actions require an admin-verified account."""
    if not user.verified and not user.is_admin:
        raise ForbiddenException("Your account is pending verification")
    return user


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenException("Admin access required")
    return user


def get_expected_version(if_match: Optional[str] = Header(default=None)) -> Optional[int]:
    """
    Parse an optional ``If-Match`` header into the row version the client saw.

    Accepts a bare integer or a quoted/weak ETag form (``"3"``, ``W/"3"``).
    """
    if if_match is None:
        return None
    value = if_match.strip()
    if value.startswith("W/"):
        value = value[2:]
    value = value.strip('"')
    try:
        return int(value)
    except ValueError:
        raise BadRequestException("If-Match must carry an integer version", details={"If-Match": if_match})


def get_idempotency_key(idempotency_key: Optional[str] = Header(default=None)) -> Optional[str]:
    if idempotency_key is not None and not (1 <= len(idempotency_key.strip()) <= 255):
        raise BadRequestException("Idempotency-Key must be 1-255 characters")
    return idempotency_key.strip() if idempotency_key else None

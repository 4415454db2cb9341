"""
Common Dependencies
===================

Shared dependencies used across the application.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Annotated, Optional
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import ErrorCodes, ForbiddenError, ValidationError
from app.core.security import decode_token
from app.db.session import get_db
from app.models.user import FisherProfile, User, UserRole
from app.services.auth_service import AuthService
from app.services.cache import CacheKeys, get_redis

logger = logging.getLogger(__name__)

DBSession = Annotated[AsyncSession, Depends(get_db)]

security = HTTPBearer(auto_error=False)

# Fixed identity used when DEV_AUTH_DISABLED is on
DEV_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
DEV_USER_EMAIL = "dev@test.local"

_USER_AUTH_CACHE_TTL = 300  # 5 minutes


# =============================================================================
# User Auth Cache Helpers
# =============================================================================

def _serialize_user_for_cache(user: User) -> dict:
    """Serialize the User columns the auth layer needs to a JSON-safe dict."""
    return {
        "user_id": str(user.user_id),
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "role": user.role.value if isinstance(user.role, UserRole) else str(user.role),
        "google_id": user.google_id,
        "stripe_customer_id": user.stripe_customer_id,
        "last_login": user.last_login.isoformat() if user.last_login else None,
        "created_at": user.created_at.isoformat() if getattr(user, "created_at", None) else None,
        "updated_at": user.updated_at.isoformat() if getattr(user, "updated_at", None) else None,
    }


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _build_user_from_cache(data: dict) -> User:
    """
    Reconstruct a *transient* (session-free) User from a cached dict.

    Consumers only read column attributes. Anything that needs the profile
    or subscription loads it through the request's session.
    """
    return User(
        user_id=uuid.UUID(data["user_id"]),
        email=data["email"],
        name=data.get("name"),
        image=data.get("image"),
        role=UserRole(data.get("role", UserRole.PARTICIPANT.value)),
        google_id=data.get("google_id"),
        stripe_customer_id=data.get("stripe_customer_id"),
        last_login=_parse_dt(data.get("last_login")),
        created_at=_parse_dt(data.get("created_at")) or datetime.now(timezone.utc),
        updated_at=_parse_dt(data.get("updated_at")) or datetime.now(timezone.utc),
    )


async def _get_cached_user(user_id: uuid.UUID) -> User | None:
    try:
        client = await get_redis()
        raw = await client.get(CacheKeys.user_auth(str(user_id)))
        if raw is None:
            return None
        return _build_user_from_cache(json.loads(raw))
    except Exception as e:
        logger.warning("User auth cache read failed for %s: %s", user_id, e)
        return None


async def _cache_user(user: User) -> None:
    try:
        client = await get_redis()
        await client.setex(
            CacheKeys.user_auth(str(user.user_id)),
            _USER_AUTH_CACHE_TTL,
            json.dumps(_serialize_user_for_cache(user), default=str),
        )
    except Exception as e:
        logger.warning("User auth cache write failed for %s: %s", user.user_id, e)


# =============================================================================
# User resolution
# =============================================================================

async def get_or_create_dev_user(db: AsyncSession) -> User:
    """
    Get or create the development user (DEV_AUTH_DISABLED only).

    The dev user is an admin so every route can be exercised locally.
    """
    cached = await _get_cached_user(DEV_USER_ID)
    if cached is not None:
        return cached

    result = await db.execute(select(User).where(User.user_id == DEV_USER_ID))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            user_id=DEV_USER_ID,
            email=DEV_USER_EMAIL,
            name="Development User",
            role=UserRole.ADMIN,
        )
        db.add(user)
        await db.flush()
        db.add(FisherProfile(user_id=DEV_USER_ID))
        await db.commit()
        await db.refresh(user)

    await _cache_user(user)
    return user


async def _resolve_user_from_token(
    credentials: HTTPAuthorizationCredentials,
    db: AsyncSession,
) -> User | None:
    """Decode the JWT, then return the User from Redis cache or the DB."""
    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        return None

    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError:
        return None

    cached = await _get_cached_user(user_id)
    if cached is not None:
        return cached

    user = await AuthService(db).get_user_by_id(user_id)
    if user is not None:
        await _cache_user(user)
    return user


async def get_current_user_optional(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: DBSession,
) -> Optional[User]:
    """Current user if a valid token is present, None otherwise."""
    if settings.auth_disabled:
        return await get_or_create_dev_user(db)

    if credentials is None:
        return None

    return await _resolve_user_from_token(credentials, db)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: DBSession,
) -> User:
    """
    Get current authenticated user.

    Raises 401 if not authenticated or token is invalid.
    """
    if settings.auth_disabled:
        return await get_or_create_dev_user(db)

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": ErrorCodes.UNAUTHORIZED,
                "message": "Not authenticated",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await _resolve_user_from_token(credentials, db)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": ErrorCodes.AUTH_TOKEN_EXPIRED,
                "message": "Invalid or expired token",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentUserOptional = Annotated[Optional[User], Depends(get_current_user_optional)]


async def require_admin(current_user: CurrentUser) -> User:
    """403 unless the caller has the ADMIN role."""
    if current_user.role != UserRole.ADMIN:
        raise ForbiddenError(message="Admin access required")
    return current_user


AdminUser = Annotated[User, Depends(require_admin)]


def resolve_target_user(current_user: User, user_id: Optional[str]) -> uuid.UUID:
    """
    User whose data a request reads.

    Defaults to the caller; reading another user's data requires ADMIN.
    """
    if not user_id:
        return current_user.user_id
    try:
        target = uuid.UUID(user_id)
    except ValueError:
        raise ValidationError(message="Invalid user id", field="user_id")
    if target != current_user.user_id and not current_user.is_admin:
        raise ForbiddenError(message="Only admins can access other users' data")
    return target

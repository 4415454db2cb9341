"""
Security Module
===============

Password hashing (bcrypt via passlib) and JWT issue/verify (python-jose).

Tokens carry the user id in ``sub`` plus the marketplace role so route
guards can reject non-captains before touching the database.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(password: str) -> str:
    """Hash a plain-text password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain-text password against a stored bcrypt hash."""
    return pwd_context.verify(plain_password, hashed_password)


def _encode(data: dict[str, Any], token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **data,
        "exp": now + lifetime,
        "iat": now,
        "type": token_type,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(
    data: dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a short-lived access token.

    Args:
        data: Claims to encode (``sub``, ``email``, ``role``)
        expires_delta: Override for JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT string
    """
    lifetime = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, ACCESS_TOKEN_TYPE, lifetime)


def create_refresh_token(
    data: dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a long-lived refresh token (JWT_REFRESH_TOKEN_EXPIRE_DAYS)."""
    lifetime = expires_delta or timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode(data, REFRESH_TOKEN_TYPE, lifetime)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT.

    Returns:
        The payload, or None when the signature or expiry check fails
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        return None


def create_tokens_for_user(
    user_id: uuid.UUID,
    email: str,
    role: str = "PARTICIPANT",
) -> dict[str, Any]:
    """
    Issue the access/refresh pair returned by every login flow.

    Returns:
        Dict with access_token, refresh_token, token_type and expires_in (seconds)
    """
    claims = {
        "sub": str(user_id),
        "email": email,
        "role": role,
    }

    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
        "token_type": "bearer",
        "expires_in": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }

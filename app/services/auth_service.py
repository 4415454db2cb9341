"""
Authentication Service
======================

Business logic for user authentication, registration, and token management.
Every new account gets a fisher profile in the same transaction.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
import uuid

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.security import (
    create_tokens_for_user,
    decode_token,
    hash_password,
    verify_password,
)
from app.models.user import FisherProfile, User, UserRole
from app.schemas.auth import UserRegister

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.user_id == user_id))
        return result.scalar_one_or_none()

    async def _create_with_profile(self, user: User) -> User:
        self.db.add(user)
        await self.db.flush()

        self.db.add(FisherProfile(user_id=user.user_id))
        await self.db.flush()

        # Populate selectin relationships without a sync lazy load
        await self.db.refresh(user, ["profile", "subscription"])
        return user

    async def create_user(self, user_data: UserRegister) -> User:
        """Create a new user and their fisher profile."""
        user = User(
            email=user_data.email,
            password_hash=hash_password(user_data.password),
            name=user_data.name,
            role=user_data.role,
        )
        user = await self._create_with_profile(user)
        logger.info("Registered user %s as %s", user.user_id, user.role.value)
        return user

    async def authenticate_user(
        self,
        email: str,
        password: str,
    ) -> Optional[User]:
        """
        Authenticate user by email and password.

        Returns:
            User if authentication succeeds, None otherwise
        """
        user = await self.get_user_by_email(email)

        if user is None or user.password_hash is None:
            return None

        if not verify_password(password, user.password_hash):
            return None

        user.last_login = datetime.now(timezone.utc)
        return user

    async def refresh_tokens(self, refresh_token: str) -> Optional[dict]:
        """
        Issue a new token pair from a refresh token.

        Returns:
            New tokens, or None when the token is invalid or the user is gone
        """
        payload = decode_token(refresh_token)

        if payload is None or payload.get("type") != "refresh":
            return None

        try:
            user_id = uuid.UUID(payload.get("sub", ""))
        except ValueError:
            return None

        user = await self.get_user_by_id(user_id)
        if user is None:
            return None

        return create_tokens_for_user(
            user_id=user.user_id,
            email=user.email,
            role=user.role.value,
        )

    async def create_oauth_user(
        self,
        email: str,
        name: Optional[str],
        google_id: str,
        image: Optional[str] = None,
        role: UserRole = UserRole.PARTICIPANT,
    ) -> User:
        """
        Find the user by email (linking the Google id) or create one.

        ``role`` only applies to a new account; an existing user keeps theirs.
        """
        user = await self.get_user_by_email(email)

        if user is not None:
            if user.google_id is None:
                user.google_id = google_id
                user.image = user.image or image
            user.last_login = datetime.now(timezone.utc)
            return user

        user = User(
            email=email,
            name=name,
            google_id=google_id,
            image=image,
            role=role,
            last_login=datetime.now(timezone.utc),
        )
        user = await self._create_with_profile(user)
        logger.info("Registered Google user %s as %s", user.user_id, role.value)
        return user

    async def verify_google_id_token(self, token: str) -> dict:
        """
        Verify a Google ID token and return the decoded claims.

        Verification is synchronous in google-auth, so it runs in a thread.

        Raises:
            ValueError: If the token is invalid, expired, or has a
                        wrong audience / issuer.
        """
        client_ids = settings.google_oauth_client_ids

        def _verify() -> dict:
            request = google_requests.Request()
            last_error: Exception | None = None

            for audience in client_ids or [None]:
                try:
                    idinfo = google_id_token.verify_oauth2_token(
                        token, request, audience=audience,
                        clock_skew_in_seconds=5,
                    )
                except ValueError as exc:
                    last_error = exc
                    continue

                if idinfo.get("iss") not in GOOGLE_ISSUERS:
                    raise ValueError("Invalid token issuer")
                if audience is None:
                    logger.warning(
                        "Google token verified without audience check; "
                        "set GOOGLE_OAUTH_CLIENT_ID in production"
                    )
                return idinfo

            raise last_error or ValueError("Google token verification failed")

        return await asyncio.to_thread(_verify)

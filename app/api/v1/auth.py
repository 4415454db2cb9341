"""
Authentication API Endpoints
============================

Handles user registration, login, logout, token refresh, and Google OAuth.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AuthenticationError, ConflictError, ErrorCodes, ValidationError
from app.core.rate_limit import create_rate_limit_dependency
from app.core.security import create_tokens_for_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    GoogleLoginRequest,
    LogoutResponse,
    RefreshTokenRequest,
    UserLogin,
    UserRegister,
)
from app.schemas.common import ErrorResponse
from app.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("auth"))])


def _user_payload(user: User) -> dict:
    return {
        "user_id": str(user.user_id),
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "role": user.role.value,
    }


def _auth_payload(user: User) -> dict:
    tokens = create_tokens_for_user(
        user_id=user.user_id,
        email=user.email,
        role=user.role.value,
    )
    return {"user": _user_payload(user), "tokens": tokens}


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Email already registered"},
    },
)
async def register(
    user_data: UserRegister,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Register a new account.

    A fisher profile with default reputation is created alongside the user.
    """
    auth_service = AuthService(db)

    if await auth_service.get_user_by_email(user_data.email) is not None:
        raise ConflictError(
            code=ErrorCodes.AUTH_EMAIL_EXISTS,
            message="Email already registered",
        )

    user = await auth_service.create_user(user_data)

    return AuthResponse(
        success=True,
        data=_auth_payload(user),
        message="Account created successfully",
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
    },
)
async def login(
    credentials: UserLogin,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(
        email=credentials.email,
        password=credentials.password,
    )

    if user is None:
        raise AuthenticationError(message="Invalid credentials")

    return AuthResponse(success=True, data=_auth_payload(user))


@router.post(
    "/google/login",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid Google token"},
        400: {"model": ErrorResponse, "description": "Email not verified"},
    },
)
async def google_login(
    request: GoogleLoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Authenticate with a Google ID token from client-side Google Sign-In.

    The token is verified with Google, the user is found or created, and
    the API's own JWT pair is returned.
    """
    auth_service = AuthService(db)

    try:
        idinfo = await auth_service.verify_google_id_token(request.id_token)
    except ValueError as exc:
        logger.warning("Google token verification failed: %s", exc)
        raise AuthenticationError(
            code=ErrorCodes.AUTH_GOOGLE_TOKEN_INVALID,
            message="Invalid or expired Google token",
        )

    if not idinfo.get("email_verified", False):
        raise ValidationError(
            message="Google email is not verified",
            code=ErrorCodes.AUTH_GOOGLE_EMAIL_UNVERIFIED,
        )

    user = await auth_service.create_oauth_user(
        email=idinfo["email"],
        name=idinfo.get("name"),
        google_id=idinfo["sub"],
        image=idinfo.get("picture"),
        role=request.role,
    )

    logger.info("Google OAuth login successful for user %s", user.user_id)

    return AuthResponse(
        success=True,
        data=_auth_payload(user),
        message="Google login successful",
    )


@router.post(
    "/logout",
    response_model=LogoutResponse,
)
async def logout():
    """Stateless logout; the client discards its tokens."""
    return LogoutResponse(success=True, message="Logged out successfully")


@router.post(
    "/refresh",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid refresh token"},
    },
)
async def refresh_token(
    request: RefreshTokenRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    auth_service = AuthService(db)

    tokens = await auth_service.refresh_tokens(request.refresh_token)

    if tokens is None:
        raise AuthenticationError(
            code=ErrorCodes.AUTH_TOKEN_EXPIRED,
            message="Invalid or expired refresh token",
        )

    return AuthResponse(
        success=True,
        data={"tokens": tokens},
        message="Tokens refreshed successfully",
    )

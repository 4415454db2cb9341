"""
Authentication Schemas
======================

Pydantic schemas for authentication endpoints.
"""

from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.user import UserRole

# Roles a user may pick when signing up; admins are provisioned out of band
SIGNUP_ROLES = (UserRole.PARTICIPANT, UserRole.CAPTAIN)


def _check_password_strength(v: str) -> str:
    if not any(c.isupper() for c in v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one number")
    return v


def _check_signup_role(v: UserRole) -> UserRole:
    if v not in SIGNUP_ROLES:
        raise ValueError("Role must be PARTICIPANT or CAPTAIN")
    return v


class UserRegister(BaseModel):
    """Request schema for user registration."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=100)
    name: Optional[str] = Field(None, max_length=255)
    role: UserRole = UserRole.PARTICIPANT

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_strength(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: UserRole) -> UserRole:
        return _check_signup_role(v)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class GoogleLoginRequest(BaseModel):
    """Request schema for Google OAuth login."""

    id_token: str = Field(
        ...,
        min_length=1,
        description="Google ID token obtained from client-side Google Sign-In",
    )
    role: UserRole = Field(
        UserRole.PARTICIPANT,
        description="Role for a first-time sign-in; ignored for existing accounts",
    )

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: UserRole) -> UserRole:
        return _check_signup_role(v)


class AuthResponse(BaseModel):
    """Response schema for authentication endpoints."""

    success: bool = True
    data: dict[str, Any]
    message: Optional[str] = None


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"

"""
Profile Schemas
===============

Pydantic schemas for user profile endpoints.
"""

from datetime import datetime
from typing import Any, Optional
import uuid

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.user import ExperienceLevel


class ProfileUpdate(BaseModel):
    """Request schema for profile updates."""

    name: Optional[str] = Field(None, max_length=255)
    image: Optional[str] = Field(None, max_length=1024)
    bio: Optional[str] = Field(None, max_length=2000)
    experience_level: Optional[ExperienceLevel] = None
    specialties: Optional[list[str]] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)


class FisherProfileInfo(BaseModel):
    """Fisher profile for profile response."""

    model_config = ConfigDict(from_attributes=True)

    experience_level: ExperienceLevel
    specialties: list[str] = []
    bio: Optional[str] = None
    rating: float
    reliability: float
    completed_trips: int
    created_trips: int
    total_reviews: int
    positive_reviews: int
    cancellation_rate: float
    avg_response_time_hours: float
    total_fish_caught: int
    country: Optional[str] = None
    city: Optional[str] = None
    last_active_at: Optional[datetime] = None


class UserInfo(BaseModel):
    """User info for profile response."""

    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    email: EmailStr
    name: Optional[str] = None
    image: Optional[str] = None
    role: str
    created_at: datetime


class ProfileResponse(BaseModel):
    """Response schema for profile endpoint."""

    success: bool = True
    data: dict[str, Any]


class ProfileUpdateResponse(BaseModel):
    """Response schema for profile update."""

    success: bool = True
    data: dict[str, Any]
    message: str = "Profile updated successfully"

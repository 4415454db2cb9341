"""
Trip Schemas
============

Pydantic schemas for group trips and bookings.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field

from app.models.trip import (
    ApprovalMode,
    FishingEventType,
    SkillLevelRequired,
    TimeSlot,
)


class GroupTripCreate(BaseModel):
    """Request schema for creating a group trip."""

    date: datetime
    time_slot: TimeSlot
    max_participants: int = Field(8, ge=1, le=50)
    min_required: int = Field(6, ge=1, le=50)
    price_per_person: float = Field(95.00, gt=0)
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    meeting_point: Optional[str] = Field(None, max_length=255)
    approval_mode: ApprovalMode = ApprovalMode.MANUAL
    skill_level: SkillLevelRequired = SkillLevelRequired.ANY
    event_type: FishingEventType = FishingEventType.COMMERCIAL
    difficulty_rating: int = Field(3, ge=1, le=5)
    target_species: list[str] = Field(default_factory=list)


class BookingCreate(BaseModel):
    """Request schema for booking seats on a trip."""

    participants: int = Field(1, ge=1, le=50)
    contact_name: str = Field(..., min_length=1, max_length=255)
    contact_phone: str = Field(..., min_length=3, max_length=50)
    contact_email: Optional[EmailStr] = None
    special_requests: Optional[str] = Field(None, max_length=2000)


class TripFilters(BaseModel):
    """Query filters for listing trips."""

    status: Optional[str] = None
    time_slot: Optional[TimeSlot] = None
    event_type: Optional[FishingEventType] = None
    skill_level: Optional[SkillLevelRequired] = None
    min_difficulty: Optional[int] = Field(None, ge=1, le=5)
    max_difficulty: Optional[int] = Field(None, ge=1, le=5)
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    include_cancelled: bool = False
    limit: int = Field(10, ge=1, le=100)
    offset: int = Field(0, ge=0)


class TripResponse(BaseModel):
    """Standard envelope for trip endpoints."""

    success: bool = True
    data: dict[str, Any]
    message: Optional[str] = None

"""
Fishing Diary Schemas
=====================

Pydantic schemas for diary entries and their catches.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class FishCatchCreate(BaseModel):
    species: str = Field(..., min_length=1, max_length=100)
    weight: Optional[float] = Field(None, ge=0)
    length: Optional[float] = Field(None, ge=0)
    quantity: int = Field(1, ge=1)
    time_of_catch: Optional[datetime] = None
    depth: Optional[float] = Field(None, ge=0)
    method: Optional[str] = Field(None, max_length=100)
    bait_used: Optional[str] = Field(None, max_length=100)
    was_released: bool = False
    notes: Optional[str] = Field(None, max_length=2000)


class DiaryEntryBase(BaseModel):
    description: Optional[str] = Field(None, max_length=5000)
    location_name: Optional[str] = Field(None, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    weather: Optional[str] = Field(None, max_length=100)
    temperature: Optional[float] = None
    wind_speed: Optional[float] = Field(None, ge=0)
    wind_direction: Optional[str] = Field(None, max_length=20)
    total_weight: Optional[float] = Field(None, ge=0)
    rod_type: Optional[str] = Field(None, max_length=100)
    reel_type: Optional[str] = Field(None, max_length=100)
    line_type: Optional[str] = Field(None, max_length=100)
    lure_color: Optional[str] = Field(None, max_length=50)
    rating: Optional[int] = Field(None, ge=1, le=5)


class DiaryEntryCreate(DiaryEntryBase):
    title: str = Field(..., min_length=1, max_length=255)
    date: datetime
    total_count: int = Field(0, ge=0)
    bait_used: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    is_private: bool = False
    fish_caught: list[FishCatchCreate] = Field(default_factory=list)


class DiaryEntryUpdate(DiaryEntryBase):
    """Partial update; only fields present in the body are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    date: Optional[datetime] = None
    total_count: Optional[int] = Field(None, ge=0)
    bait_used: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    is_private: Optional[bool] = None


class DiaryResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]
    message: Optional[str] = None

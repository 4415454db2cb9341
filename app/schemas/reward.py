"""
Reward Schemas
==============

Pydantic schemas for reward inventory, distribution, badges, and the
competitions and seasons that feed distribution.
"""

from datetime import datetime
from typing import Any, Literal, Optional
import uuid

from pydantic import BaseModel, Field, model_validator

from app.models.reward import BadgeCategory, CompetitionStatus, Rarity, SeasonStatus, SeasonType


class InventoryUpdate(BaseModel):
    """Display settings a user can change on an owned reward."""

    is_displayed: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)
    category: Optional[str] = Field(None, max_length=100)


class AutoDistributeRequest(BaseModel):
    event_type: Literal[
        "COMPETITION_END",
        "SEASON_END",
        "MILESTONE_REACHED",
        "ACHIEVEMENT_UNLOCKED",
    ]
    competition_id: Optional[uuid.UUID] = None
    season_id: Optional[uuid.UUID] = None
    dry_run: bool = False


class BadgeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    icon: str = Field(..., min_length=1, max_length=255)
    category: BadgeCategory
    rarity: Rarity = Rarity.COMMON
    required_value: Optional[int] = Field(None, ge=0)


class BadgeAward(BaseModel):
    user_id: uuid.UUID
    badge_id: uuid.UUID


class _EventWindow(BaseModel):
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class CompetitionCreate(_EventWindow):
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)


class SeasonCreate(_EventWindow):
    name: str = Field(..., min_length=1, max_length=200)
    type: SeasonType


class CompetitionStatusUpdate(BaseModel):
    status: CompetitionStatus


class SeasonStatusUpdate(BaseModel):
    status: SeasonStatus


class ScoreUpdate(BaseModel):
    """Set a competitor's score."""

    user_id: uuid.UUID
    score: float = Field(..., ge=0)


class PointsAward(BaseModel):
    """Add (or with a negative value, remove) season points."""

    user_id: uuid.UUID
    points: int
    reason: Optional[str] = Field(None, max_length=255)


class RewardResponse(BaseModel):
    """Standard envelope for reward and badge endpoints."""

    success: bool = True
    data: dict[str, Any]
    message: Optional[str] = None

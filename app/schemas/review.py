"""
Review Schemas
==============

Pydantic schemas for trip reviews.
"""

from typing import Any, Optional
import uuid

from pydantic import BaseModel, Field


class ReviewCreate(BaseModel):
    """
    Request schema for leaving a review.

    Presence and range of the rating are checked by the service so that
    missing fields surface as a 400 with the standard error body.
    """

    trip_id: Optional[uuid.UUID] = None
    to_user_id: Optional[uuid.UUID] = None
    rating: Optional[int] = None
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewResponse(BaseModel):
    """Standard envelope for review endpoints."""

    success: bool = True
    data: dict[str, Any]
    message: Optional[str] = None

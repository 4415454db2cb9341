"""
Participant Approval Schemas
============================

Pydantic schemas for trip applications and captain decisions.
"""

from typing import Any, Literal, Optional
import uuid

from pydantic import BaseModel, Field


class ApprovalCreate(BaseModel):
    """Request schema for applying to a trip."""

    trip_id: uuid.UUID
    message: Optional[str] = Field(None, max_length=1000)


class ApprovalDecision(BaseModel):
    """Request schema for a captain's decision."""

    status: Literal["APPROVED", "REJECTED"]
    rejected_reason: Optional[str] = Field(None, max_length=1000)


class ApprovalResponse(BaseModel):
    """Standard envelope for approval endpoints."""

    success: bool = True
    data: dict[str, Any]
    message: Optional[str] = None

"""
Leaderboard API Endpoints
=========================

Fishers ranked by a profile metric.
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query

from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import CurrentUser, DBSession
from app.schemas.reward import RewardResponse
from app.services.competition_service import CompetitionService

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("read"))])


@router.get("", response_model=RewardResponse)
async def get_leaderboard(
    current_user: CurrentUser,
    db: DBSession,
    order_by: Literal["rating", "completedTrips", "totalFishCaught", "reliability"] = "rating",
    limit: int = Query(50, ge=1, le=100),
):
    """Top fishers plus the caller's own position."""
    data = await CompetitionService(db).leaderboard(order_by, limit, current_user.user_id)
    return RewardResponse(success=True, data=data)

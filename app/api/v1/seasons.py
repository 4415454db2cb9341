"""
Seasons API Endpoints
=====================

Seasonal points races. Points move only while a season is ACTIVE; closing
a season ranks its participants for ``POST /rewards/auto-distribute``.
"""

from typing import Optional
import uuid

from fastapi import APIRouter, Depends, Query, status

from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import AdminUser, CurrentUser, DBSession
from app.models.reward import SeasonStatus
from app.schemas.common import ErrorResponse
from app.schemas.reward import PointsAward, RewardResponse, SeasonCreate, SeasonStatusUpdate
from app.services.competition_service import CompetitionService, serialize_season

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("read"))])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Season not found"}}


@router.post(
    "",
    response_model=RewardResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}},
)
async def create_season(
    body: SeasonCreate,
    admin: AdminUser,
    db: DBSession,
):
    season = await CompetitionService(db).create_season(body)
    return RewardResponse(
        success=True,
        data={"season": serialize_season(season)},
        message="Season created",
    )


@router.get("", response_model=RewardResponse)
async def list_seasons(
    current_user: CurrentUser,
    db: DBSession,
    status: Optional[SeasonStatus] = None,
    limit: int = Query(20, ge=1, le=100),
):
    seasons = await CompetitionService(db).list_seasons(status, limit)
    return RewardResponse(success=True, data={"seasons": [serialize_season(s) for s in seasons]})


@router.get("/{season_id}", response_model=RewardResponse, responses=_NOT_FOUND)
async def get_season(
    season_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
):
    season = await CompetitionService(db).get_season(season_id)
    return RewardResponse(success=True, data={"season": serialize_season(season, include_standings=True)})


@router.post(
    "/{season_id}/join",
    response_model=RewardResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        **_NOT_FOUND,
        409: {"model": ErrorResponse, "description": "Closed or already enrolled"},
    },
)
async def join_season(
    season_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
):
    participant = await CompetitionService(db).join_season(current_user, season_id)
    return RewardResponse(
        success=True,
        data={
            "seasonId": str(participant.season_id),
            "userId": str(participant.user_id),
            "points": participant.points,
        },
        message="Enrolled in season",
    )


@router.post(
    "/{season_id}/points",
    response_model=RewardResponse,
    responses={
        403: {"model": ErrorResponse},
        **_NOT_FOUND,
        409: {"model": ErrorResponse, "description": "Season not active"},
    },
)
async def award_points(
    season_id: uuid.UUID,
    body: PointsAward,
    admin: AdminUser,
    db: DBSession,
):
    participant = await CompetitionService(db).award_points(
        season_id, body.user_id, body.points, body.reason,
    )
    return RewardResponse(
        success=True,
        data={"userId": str(participant.user_id), "points": participant.points},
        message="Points updated",
    )


@router.patch(
    "/{season_id}/status",
    response_model=RewardResponse,
    responses={
        403: {"model": ErrorResponse},
        **_NOT_FOUND,
        409: {"model": ErrorResponse, "description": "Transition not allowed"},
    },
)
async def update_season_status(
    season_id: uuid.UUID,
    body: SeasonStatusUpdate,
    admin: AdminUser,
    db: DBSession,
):
    """Advance the lifecycle; COMPLETED assigns final ranks."""
    season = await CompetitionService(db).update_season_status(season_id, body.status)
    return RewardResponse(
        success=True,
        data={"season": serialize_season(season, include_standings=True)},
        message=f"Season {season.status.value.lower()}",
    )

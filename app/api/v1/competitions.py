"""
Competitions API Endpoints
==========================

Competition lifecycle: admins create competitions, record scores and close
them; fishers join open ones. A completed competition carries the final
ranks that ``POST /rewards/auto-distribute`` pays out on.
"""

from typing import Optional
import uuid

from fastapi import APIRouter, Depends, Query, status

from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import AdminUser, CurrentUser, DBSession
from app.models.reward import CompetitionStatus
from app.schemas.common import ErrorResponse
from app.schemas.reward import CompetitionCreate, CompetitionStatusUpdate, RewardResponse, ScoreUpdate
from app.services.competition_service import CompetitionService, serialize_competition

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("read"))])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Competition not found"}}


@router.post(
    "",
    response_model=RewardResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}},
)
async def create_competition(
    body: CompetitionCreate,
    admin: AdminUser,
    db: DBSession,
):
    competition = await CompetitionService(db).create_competition(body)
    return RewardResponse(
        success=True,
        data={"competition": serialize_competition(competition)},
        message="Competition created",
    )


@router.get("", response_model=RewardResponse)
async def list_competitions(
    current_user: CurrentUser,
    db: DBSession,
    status: Optional[CompetitionStatus] = None,
    category: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
):
    competitions = await CompetitionService(db).list_competitions(status, category, limit)
    return RewardResponse(
        success=True,
        data={"competitions": [serialize_competition(c) for c in competitions]},
    )


@router.get("/{competition_id}", response_model=RewardResponse, responses=_NOT_FOUND)
async def get_competition(
    competition_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
):
    """A competition with its standings."""
    competition = await CompetitionService(db).get_competition(competition_id)
    return RewardResponse(
        success=True,
        data={"competition": serialize_competition(competition, include_standings=True)},
    )


@router.post(
    "/{competition_id}/join",
    response_model=RewardResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        **_NOT_FOUND,
        409: {"model": ErrorResponse, "description": "Closed or already joined"},
    },
)
async def join_competition(
    competition_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
):
    participant = await CompetitionService(db).join_competition(current_user, competition_id)
    return RewardResponse(
        success=True,
        data={
            "competitionId": str(participant.competition_id),
            "userId": str(participant.user_id),
            "score": participant.score,
        },
        message="Joined competition",
    )


@router.put(
    "/{competition_id}/scores",
    response_model=RewardResponse,
    responses={
        403: {"model": ErrorResponse},
        **_NOT_FOUND,
        409: {"model": ErrorResponse, "description": "Competition closed"},
    },
)
async def set_score(
    competition_id: uuid.UUID,
    body: ScoreUpdate,
    admin: AdminUser,
    db: DBSession,
):
    competition = await CompetitionService(db).set_score(competition_id, body.user_id, body.score)
    return RewardResponse(
        success=True,
        data={"competition": serialize_competition(competition, include_standings=True)},
        message="Score recorded",
    )


@router.patch(
    "/{competition_id}/status",
    response_model=RewardResponse,
    responses={
        403: {"model": ErrorResponse},
        **_NOT_FOUND,
        409: {"model": ErrorResponse, "description": "Transition not allowed"},
    },
)
async def update_competition_status(
    competition_id: uuid.UUID,
    body: CompetitionStatusUpdate,
    admin: AdminUser,
    db: DBSession,
):
    """Advance the lifecycle; COMPLETED assigns final ranks."""
    competition = await CompetitionService(db).update_competition_status(competition_id, body.status)
    return RewardResponse(
        success=True,
        data={"competition": serialize_competition(competition, include_standings=True)},
        message=f"Competition {competition.status.value.lower()}",
    )

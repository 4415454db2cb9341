"""
Badges API Endpoints
====================

Badge definitions (admin), earned badges, and manual awards.
"""

from typing import Optional

from fastapi import APIRouter, status

from app.dependencies import AdminUser, CurrentUser, DBSession, resolve_target_user
from app.models.reward import BadgeCategory
from app.schemas.common import ErrorResponse
from app.schemas.reward import BadgeAward, BadgeCreate, RewardResponse
from app.services.badge_service import BadgeService, serialize_badge, serialize_earned

router = APIRouter()


@router.post(
    "",
    response_model=RewardResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Duplicate badge name"},
    },
)
async def create_badge(
    body: BadgeCreate,
    admin: AdminUser,
    db: DBSession,
):
    badge = await BadgeService(db).create_badge(body)
    return RewardResponse(
        success=True,
        data={"badge": serialize_badge(badge)},
        message="Badge created",
    )


@router.get(
    "",
    response_model=RewardResponse,
    responses={403: {"model": ErrorResponse}},
)
async def get_badges(
    current_user: CurrentUser,
    db: DBSession,
    user_id: Optional[str] = None,
    category: Optional[BadgeCategory] = None,
):
    """Earned badges grouped by category."""
    target = resolve_target_user(current_user, user_id)
    data = await BadgeService(db).get_user_badges(target, category)
    return RewardResponse(success=True, data=data)


@router.post(
    "/award",
    response_model=RewardResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Already earned"},
    },
)
async def award_badge(
    body: BadgeAward,
    admin: AdminUser,
    db: DBSession,
):
    earned = await BadgeService(db).award_badge(body.user_id, body.badge_id)
    return RewardResponse(
        success=True,
        data={"userId": str(body.user_id), "badge": serialize_earned(earned)},
        message="Badge awarded",
    )

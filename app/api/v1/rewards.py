"""
Rewards API Endpoints
=====================

Reward inventory, distribution history and automatic distribution.
"""

from typing import Optional
import uuid

from fastapi import APIRouter, Depends, Query

from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import CurrentUser, DBSession, resolve_target_user
from app.models.reward import RewardTier, RewardType
from app.schemas.common import ErrorResponse
from app.schemas.reward import AutoDistributeRequest, InventoryUpdate, RewardResponse
from app.services.reward_service import RewardService, serialize_inventory_item

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("read"))])


@router.get(
    "/inventory",
    response_model=RewardResponse,
    responses={403: {"model": ErrorResponse}},
)
async def get_inventory(
    current_user: CurrentUser,
    db: DBSession,
    user_id: Optional[str] = None,
    is_active: Optional[bool] = None,
    is_displayed: Optional[bool] = None,
    category: Optional[str] = None,
    reward_type: Optional[RewardType] = None,
    reward_tier: Optional[RewardTier] = None,
    limit: int = Query(50, ge=1, le=100),
):
    """The user's rewards, grouped by category, with quantity-weighted stats."""
    target = resolve_target_user(current_user, user_id)
    data = await RewardService(db).get_inventory(
        target,
        is_active=is_active,
        is_displayed=is_displayed,
        category=category,
        reward_type=reward_type,
        reward_tier=reward_tier,
        limit=limit,
    )
    return RewardResponse(success=True, data=data)


@router.put(
    "/inventory/{inventory_id}",
    response_model=RewardResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def update_inventory_item(
    inventory_id: uuid.UUID,
    body: InventoryUpdate,
    current_user: CurrentUser,
    db: DBSession,
):
    item = await RewardService(db).update_inventory_item(
        current_user,
        inventory_id,
        is_displayed=body.is_displayed,
        display_order=body.display_order,
        category=body.category,
    )
    return RewardResponse(
        success=True,
        data={"item": serialize_inventory_item(item)},
        message="Inventory updated",
    )


@router.get("/history", response_model=RewardResponse)
async def get_history(
    current_user: CurrentUser,
    db: DBSession,
):
    """The caller's reward distributions grouped by source."""
    data = await RewardService(db).get_history(current_user.user_id)
    return RewardResponse(success=True, data=data)


@router.post(
    "/auto-distribute",
    response_model=RewardResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Event not finished"},
        403: {"model": ErrorResponse, "description": "Admin only"},
        404: {"model": ErrorResponse, "description": "Competition or season not found"},
    },
)
async def auto_distribute(
    body: AutoDistributeRequest,
    current_user: CurrentUser,
    db: DBSession,
):
    """Distribute rewards for a finished competition or season (admin)."""
    data = await RewardService(db).auto_distribute(
        current_user,
        body.event_type,
        competition_id=body.competition_id,
        season_id=body.season_id,
        dry_run=body.dry_run,
    )
    return RewardResponse(success=True, data=data)

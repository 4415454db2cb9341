"""
Participant Approvals API Endpoints
===================================

Apply to a trip, list applications, and let captains approve or reject.
"""

from typing import Optional
import uuid

from fastapi import APIRouter, Depends, Query, status

from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import CurrentUser, DBSession
from app.models.trip import ApprovalStatus
from app.schemas.approval import ApprovalCreate, ApprovalDecision, ApprovalResponse
from app.schemas.common import ErrorResponse
from app.services.approval_service import ApprovalService, serialize_approval
from app.services.cache import CacheInvalidator

router = APIRouter()


@router.post(
    "",
    response_model=ApprovalResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Trip not found"},
        409: {"model": ErrorResponse, "description": "Cannot apply to this trip"},
    },
    dependencies=[Depends(create_rate_limit_dependency("create"))],
)
async def apply_to_trip(
    body: ApprovalCreate,
    current_user: CurrentUser,
    db: DBSession,
):
    """Submit an application; AUTO and qualifying HYBRID trips approve at once."""
    data = await ApprovalService(db).apply(current_user, body.trip_id, body.message)
    if data["autoApproved"]:
        await db.commit()
        await CacheInvalidator.on_approval_change(str(current_user.user_id))
    return ApprovalResponse(
        success=True,
        data=data,
        message="Application submitted successfully",
    )


@router.get(
    "",
    response_model=ApprovalResponse,
    dependencies=[Depends(create_rate_limit_dependency("read"))],
)
async def list_approvals(
    current_user: CurrentUser,
    db: DBSession,
    trip_id: Optional[uuid.UUID] = None,
    status_filter: Optional[ApprovalStatus] = Query(None, alias="status"),
    captain_id: Optional[uuid.UUID] = None,
    participant_id: Optional[uuid.UUID] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Applications the caller made or received as captain (admins see all)."""
    data = await ApprovalService(db).list_approvals(
        current_user,
        trip_id=trip_id,
        status=status_filter,
        captain_id=captain_id,
        participant_id=participant_id,
        limit=limit,
        offset=offset,
    )
    return ApprovalResponse(success=True, data=data)


@router.get(
    "/{approval_id}",
    response_model=ApprovalResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_approval(
    approval_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
):
    approval = await ApprovalService(db).get_approval(current_user, approval_id)
    return ApprovalResponse(success=True, data={"approval": serialize_approval(approval)})


@router.patch(
    "/{approval_id}",
    response_model=ApprovalResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not the trip captain"},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Already processed"},
    },
    dependencies=[Depends(create_rate_limit_dependency("create"))],
)
async def process_approval(
    approval_id: uuid.UUID,
    body: ApprovalDecision,
    current_user: CurrentUser,
    db: DBSession,
):
    """Approve (creating a confirmed booking) or reject an application."""
    approval = await ApprovalService(db).process(
        current_user,
        approval_id,
        ApprovalStatus(body.status),
        rejected_reason=body.rejected_reason,
    )
    await db.commit()
    await CacheInvalidator.on_approval_change(str(approval.participant_id))
    return ApprovalResponse(
        success=True,
        data={"approval": serialize_approval(approval)},
        message=f"Application {approval.status.value.lower()}",
    )

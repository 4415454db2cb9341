"""
Reviews API Endpoints
=====================

Peer reviews between participants of completed trips.
"""

from typing import Optional
import uuid

from fastapi import APIRouter, Depends, Query, status

from app.core.errors import AuthenticationError, ErrorCodes
from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import CurrentUser, CurrentUserOptional, DBSession
from app.schemas.common import ErrorResponse
from app.schemas.review import ReviewCreate, ReviewResponse
from app.services.cache import CacheInvalidator
from app.services.review_service import ReviewService, serialize_review

router = APIRouter()


@router.get(
    "",
    response_model=ReviewResponse,
    responses={401: {"model": ErrorResponse}},
    dependencies=[Depends(create_rate_limit_dependency("read"))],
)
async def list_reviews(
    db: DBSession,
    current_user: CurrentUserOptional,
    trip_id: Optional[uuid.UUID] = Query(None, alias="tripId"),
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    from_user_id: Optional[uuid.UUID] = Query(None, alias="fromUserId"),
    pending: bool = False,
):
    """
    List reviews, or with ``pending=true`` the co-participants the caller
    still has to review.
    """
    service = ReviewService(db)

    if pending:
        if current_user is None:
            raise AuthenticationError(
                code=ErrorCodes.UNAUTHORIZED,
                message="Authentication required for pending reviews",
            )
        items = await service.list_pending(current_user)
        return ReviewResponse(
            success=True,
            data={"pendingReviews": items, "count": len(items)},
        )

    reviews = await service.list_reviews(
        trip_id=trip_id,
        to_user_id=user_id,
        from_user_id=from_user_id,
    )
    return ReviewResponse(
        success=True,
        data={"reviews": [serialize_review(r) for r in reviews]},
    )


@router.post(
    "",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    dependencies=[Depends(create_rate_limit_dependency("create"))],
)
async def create_review(
    body: ReviewCreate,
    current_user: CurrentUser,
    db: DBSession,
):
    """Review a co-participant of a completed trip."""
    review = await ReviewService(db).create_review(current_user, body)
    await db.commit()
    await CacheInvalidator.on_review_change(str(review.to_user_id))
    return ReviewResponse(
        success=True,
        data={"review": serialize_review(review)},
        message="Review created",
    )

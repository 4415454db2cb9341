"""
Group Trips API Endpoints
=========================

Browse upcoming trips, create trips (captains) and book seats.
"""

from typing import Optional
import uuid

from fastapi import APIRouter, Depends, Query, status

from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import CurrentUser, DBSession
from app.models.trip import FishingEventType, SkillLevelRequired, TimeSlot
from app.schemas.common import ErrorResponse
from app.schemas.trip import BookingCreate, GroupTripCreate, TripFilters, TripResponse
from app.services.trip_service import TripService, serialize_booking, serialize_trip

router = APIRouter()


@router.get(
    "",
    response_model=TripResponse,
    dependencies=[Depends(create_rate_limit_dependency("read"))],
)
async def list_trips(
    db: DBSession,
    status_filter: Optional[str] = Query(None, alias="status"),
    time_slot: Optional[TimeSlot] = None,
    event_type: Optional[FishingEventType] = None,
    skill_level: Optional[SkillLevelRequired] = None,
    min_difficulty: Optional[int] = Query(None, ge=1, le=5),
    max_difficulty: Optional[int] = Query(None, ge=1, le=5),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    include_cancelled: bool = False,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List upcoming trips with free seats."""
    filters = TripFilters(
        status=status_filter,
        time_slot=time_slot,
        event_type=event_type,
        skill_level=skill_level,
        min_difficulty=min_difficulty,
        max_difficulty=max_difficulty,
        min_price=min_price,
        max_price=max_price,
        include_cancelled=include_cancelled,
        limit=limit,
        offset=offset,
    )
    data = await TripService(db).list_trips(filters)
    return TripResponse(success=True, data=data)


@router.post(
    "",
    response_model=TripResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid trip"},
        403: {"model": ErrorResponse, "description": "Not a captain"},
    },
    dependencies=[Depends(create_rate_limit_dependency("create"))],
)
async def create_trip(
    body: GroupTripCreate,
    current_user: CurrentUser,
    db: DBSession,
):
    """Create a FORMING trip owned by the calling captain."""
    trip = await TripService(db).create_trip(current_user, body)
    return TripResponse(
        success=True,
        data={"trip": serialize_trip(trip)},
        message="Trip created successfully",
    )


@router.post(
    "/{trip_id}/bookings",
    response_model=TripResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Trip not found"},
        409: {"model": ErrorResponse, "description": "Trip closed or full"},
    },
    dependencies=[Depends(create_rate_limit_dependency("create"))],
)
async def create_booking(
    trip_id: uuid.UUID,
    body: BookingCreate,
    current_user: CurrentUser,
    db: DBSession,
):
    """Book seats on a trip; the booking starts PENDING until payment."""
    booking = await TripService(db).create_booking(trip_id, current_user, body)
    return TripResponse(
        success=True,
        data={"booking": serialize_booking(booking)},
        message="Booking created",
    )

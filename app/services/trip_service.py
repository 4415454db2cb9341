"""
Trip Service
============

Listing, creation and booking of group fishing trips.
"""

import logging
from typing import Any
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ConflictError,
    ErrorCodes,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.models.trip import BookingStatus, GroupBooking, GroupTrip, TripStatus
from app.models.user import FisherProfile, User
from app.schemas.common import offset_pagination
from app.schemas.trip import BookingCreate, GroupTripCreate, TripFilters
from app.utils.helpers import ensure_aware, isoformat_or_none, utc_now

logger = logging.getLogger(__name__)

BOOKABLE_STATUSES = (TripStatus.FORMING, TripStatus.CONFIRMED)


def serialize_trip(trip: GroupTrip) -> dict[str, Any]:
    """Trip with seat counts derived from its non-cancelled bookings."""
    current = trip.active_participants()
    return {
        "id": str(trip.trip_id),
        "title": trip.title,
        "date": trip.date.isoformat(),
        "timeSlot": trip.time_slot.value,
        "maxParticipants": trip.max_participants,
        "minRequired": trip.min_required,
        "pricePerPerson": float(trip.price_per_person),
        "status": trip.status.value,
        "captainId": str(trip.captain_id) if trip.captain_id else None,
        "description": trip.description,
        "meetingPoint": trip.meeting_point,
        "approvalMode": trip.approval_mode.value,
        "skillLevel": trip.skill_level.value,
        "eventType": trip.event_type.value,
        "difficultyRating": trip.difficulty_rating,
        "targetSpecies": list(trip.target_species or []),
        "currentParticipants": current,
        "availableSpots": max(0, trip.max_participants - current),
        "createdAt": isoformat_or_none(trip.created_at),
    }


def serialize_booking(booking: GroupBooking) -> dict[str, Any]:
    return {
        "id": str(booking.booking_id),
        "tripId": str(booking.trip_id),
        "userId": str(booking.user_id) if booking.user_id else None,
        "participants": booking.participants,
        "totalPrice": float(booking.total_price),
        "contactName": booking.contact_name,
        "contactPhone": booking.contact_phone,
        "contactEmail": booking.contact_email,
        "status": booking.status.value,
        "paymentStatus": booking.payment_status,
        "specialRequests": booking.special_requests,
        "createdAt": isoformat_or_none(booking.created_at),
    }


class TripService:
    """Group trip operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_trip(self, trip_id: uuid.UUID, lock: bool = False) -> GroupTrip:
        stmt = select(GroupTrip).where(GroupTrip.trip_id == trip_id)
        if lock:
            stmt = stmt.with_for_update(of=GroupTrip)
        result = await self.db.execute(stmt)
        trip = result.scalar_one_or_none()
        if trip is None:
            raise NotFoundError(code=ErrorCodes.TRIP_NOT_FOUND, message="Trip not found")
        return trip

    async def list_trips(self, filters: TripFilters) -> dict[str, Any]:
        """
        Upcoming trips that still have free seats.

        Full trips are dropped after loading, so pagination applies to the
        filtered list.
        """
        if (
            filters.min_difficulty is not None
            and filters.max_difficulty is not None
            and filters.min_difficulty > filters.max_difficulty
        ):
            raise ValidationError(
                message="min_difficulty cannot exceed max_difficulty",
                field="min_difficulty",
            )

        stmt = select(GroupTrip).where(GroupTrip.date > utc_now())

        if filters.status and filters.status.lower() != "any":
            try:
                stmt = stmt.where(GroupTrip.status == TripStatus(filters.status.upper()))
            except ValueError:
                raise ValidationError(message=f"Unknown status: {filters.status}", field="status")
        elif not filters.include_cancelled:
            stmt = stmt.where(GroupTrip.status != TripStatus.CANCELLED)

        if filters.time_slot:
            stmt = stmt.where(GroupTrip.time_slot == filters.time_slot)
        if filters.event_type:
            stmt = stmt.where(GroupTrip.event_type == filters.event_type)
        if filters.skill_level:
            stmt = stmt.where(GroupTrip.skill_level == filters.skill_level)
        if filters.min_difficulty is not None:
            stmt = stmt.where(GroupTrip.difficulty_rating >= filters.min_difficulty)
        if filters.max_difficulty is not None:
            stmt = stmt.where(GroupTrip.difficulty_rating <= filters.max_difficulty)
        if filters.min_price is not None:
            stmt = stmt.where(GroupTrip.price_per_person >= filters.min_price)
        if filters.max_price is not None:
            stmt = stmt.where(GroupTrip.price_per_person <= filters.max_price)

        result = await self.db.execute(stmt.order_by(GroupTrip.date))
        trips = [
            serialize_trip(trip)
            for trip in result.scalars().all()
        ]
        open_trips = [t for t in trips if t["availableSpots"] > 0]
        page = open_trips[filters.offset:filters.offset + filters.limit]

        return {
            "trips": page,
            "pagination": offset_pagination(len(open_trips), filters.limit, filters.offset, len(page)),
        }

    async def create_trip(self, user: User, data: GroupTripCreate) -> GroupTrip:
        if not user.is_captain:
            raise ForbiddenError(message="Only captains can create trips")

        if data.min_required > data.max_participants:
            raise ValidationError(
                message="min_required cannot exceed max_participants",
                field="min_required",
                code=ErrorCodes.TRIP_INVALID,
            )
        if ensure_aware(data.date) <= utc_now():
            raise ValidationError(
                message="Trip date must be in the future",
                field="date",
                code=ErrorCodes.TRIP_INVALID,
            )

        trip = GroupTrip(
            captain_id=user.user_id,
            status=TripStatus.FORMING,
            **data.model_dump(exclude={"date"}),
            date=ensure_aware(data.date),
        )
        self.db.add(trip)

        result = await self.db.execute(
            select(FisherProfile).where(FisherProfile.user_id == user.user_id)
        )
        profile = result.scalar_one_or_none()
        if profile is not None:
            profile.created_trips += 1

        await self.db.flush()
        await self.db.refresh(trip)

        logger.info("Trip %s created by captain %s", trip.trip_id, user.user_id)
        return trip

    async def create_booking(
        self,
        trip_id: uuid.UUID,
        user: User,
        data: BookingCreate,
    ) -> GroupBooking:
        """Book seats; the trip row stays locked until the request commits."""
        trip = await self.get_trip(trip_id, lock=True)

        if trip.status not in BOOKABLE_STATUSES:
            raise ConflictError(
                code=ErrorCodes.TRIP_NOT_OPEN,
                message=f"Trip is {trip.status.value.lower()} and not accepting bookings",
            )

        available = trip.max_participants - trip.active_participants()
        if data.participants > available:
            raise ConflictError(
                code=ErrorCodes.TRIP_FULL,
                message=f"Only {max(0, available)} spots available",
            )

        booking = GroupBooking(
            trip_id=trip.trip_id,
            user_id=user.user_id,
            participants=data.participants,
            total_price=round(data.participants * float(trip.price_per_person), 2),
            contact_name=data.contact_name,
            contact_phone=data.contact_phone,
            contact_email=data.contact_email,
            special_requests=data.special_requests,
            status=BookingStatus.PENDING,
        )
        self.db.add(booking)
        await self.db.flush()
        await self.db.refresh(booking)

        logger.info(
            "Booking %s: %d seat(s) on trip %s for user %s",
            booking.booking_id,
            booking.participants,
            trip.trip_id,
            user.user_id,
        )
        return booking

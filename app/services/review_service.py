"""
Review Service
==============

Listing and creation of peer reviews between trip participants, and the
profile rating that follows from them.
"""

import logging
from typing import Any, Optional
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ConflictError,
    ErrorCodes,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.models.review import Review
from app.models.trip import BookingStatus, GroupBooking, GroupTrip
from app.models.user import FisherProfile, User
from app.schemas.review import ReviewCreate
from app.utils.helpers import isoformat_or_none, utc_now

logger = logging.getLogger(__name__)

POSITIVE_RATING = 4


def _user_summary(user: Optional[User]) -> Optional[dict[str, Any]]:
    if user is None:
        return None
    return {"id": str(user.user_id), "name": user.name, "image": user.image}


def serialize_review(review: Review) -> dict[str, Any]:
    trip = review.trip
    return {
        "id": str(review.review_id),
        "tripId": str(review.trip_id),
        "fromUser": _user_summary(review.from_user),
        "toUser": _user_summary(review.to_user),
        "rating": review.rating,
        "comment": review.comment,
        "verified": review.verified,
        "helpful": review.helpful,
        "trip": {
            "id": str(trip.trip_id),
            "title": trip.title,
            "date": trip.date.isoformat(),
            "timeSlot": trip.time_slot.value,
        } if trip else None,
        "createdAt": isoformat_or_none(review.created_at),
    }


class ReviewService:
    """Peer review operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_reviews(
        self,
        trip_id: Optional[uuid.UUID] = None,
        to_user_id: Optional[uuid.UUID] = None,
        from_user_id: Optional[uuid.UUID] = None,
    ) -> list[Review]:
        stmt = select(Review)
        if trip_id:
            stmt = stmt.where(Review.trip_id == trip_id)
        if to_user_id:
            stmt = stmt.where(Review.to_user_id == to_user_id)
        if from_user_id:
            stmt = stmt.where(Review.from_user_id == from_user_id)

        result = await self.db.execute(stmt.order_by(Review.created_at.desc()))
        return list(result.scalars().all())

    async def list_pending(self, user: User) -> list[dict[str, Any]]:
        """
        Co-participants the user has not reviewed yet.

        Covers past trips on which the user held a CONFIRMED booking.
        """
        result = await self.db.execute(
            select(GroupTrip)
            .join(GroupBooking, GroupBooking.trip_id == GroupTrip.trip_id)
            .where(
                GroupTrip.date < utc_now(),
                GroupBooking.user_id == user.user_id,
                GroupBooking.status == BookingStatus.CONFIRMED,
            )
            .distinct()
            .order_by(GroupTrip.date.desc())
        )
        trips = list(result.scalars().all())
        if not trips:
            return []

        reviewed = await self.db.execute(
            select(Review.trip_id, Review.to_user_id).where(
                Review.from_user_id == user.user_id,
                Review.trip_id.in_([t.trip_id for t in trips]),
            )
        )
        already = {(row.trip_id, row.to_user_id) for row in reviewed.all()}

        other_ids = {
            b.user_id
            for trip in trips
            for b in trip.bookings
            if b.user_id and b.user_id != user.user_id and b.status == BookingStatus.CONFIRMED
        }
        users: dict[uuid.UUID, User] = {}
        if other_ids:
            found = await self.db.execute(select(User).where(User.user_id.in_(other_ids)))
            users = {u.user_id: u for u in found.scalars().all()}

        pending = []
        for trip in trips:
            seen: set[uuid.UUID] = set()
            for booking in trip.bookings:
                other_id = booking.user_id
                if (
                    other_id is None
                    or other_id == user.user_id
                    or booking.status != BookingStatus.CONFIRMED
                    or other_id in seen
                    or (trip.trip_id, other_id) in already
                    or other_id not in users
                ):
                    continue
                seen.add(other_id)
                pending.append({
                    "tripId": str(trip.trip_id),
                    "tripTitle": trip.title or trip.description,
                    "tripDate": trip.date.isoformat(),
                    "timeSlot": trip.time_slot.value,
                    "participant": _user_summary(users[other_id]),
                })
        return pending

    async def create_review(self, user: User, data: ReviewCreate) -> Review:
        if data.trip_id is None or data.to_user_id is None or data.rating is None:
            raise ValidationError(message="Missing required fields: trip_id, to_user_id, rating")
        if not 1 <= data.rating <= 5:
            raise ValidationError(message="Rating must be between 1 and 5", field="rating")
        if data.to_user_id == user.user_id:
            raise ValidationError(message="Cannot review yourself", field="to_user_id")

        result = await self.db.execute(select(GroupTrip).where(GroupTrip.trip_id == data.trip_id))
        trip = result.scalar_one_or_none()
        if trip is None:
            raise NotFoundError(code=ErrorCodes.TRIP_NOT_FOUND, message="Trip not found")

        confirmed = {
            b.user_id for b in trip.bookings if b.status == BookingStatus.CONFIRMED
        }
        if user.user_id not in confirmed or data.to_user_id not in confirmed:
            raise ForbiddenError(
                code=ErrorCodes.REVIEW_NOT_ALLOWED,
                message="Both users must have participated in the trip",
            )

        if trip.date > utc_now():
            raise ValidationError(
                message="Trip has not completed yet",
                code=ErrorCodes.REVIEW_NOT_ALLOWED,
            )

        existing = await self.db.execute(
            select(Review.review_id).where(
                Review.trip_id == data.trip_id,
                Review.from_user_id == user.user_id,
                Review.to_user_id == data.to_user_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(code=ErrorCodes.REVIEW_EXISTS, message="Review already exists")

        review = Review(
            trip_id=data.trip_id,
            from_user_id=user.user_id,
            to_user_id=data.to_user_id,
            rating=data.rating,
            comment=data.comment,
            verified=True,
        )
        self.db.add(review)
        await self.db.flush()

        await self.update_profile_rating(data.to_user_id)
        await self.db.refresh(review)

        logger.info(
            "Review %s: %s -> %s (%d stars)",
            review.review_id,
            user.user_id,
            data.to_user_id,
            data.rating,
        )
        return review

    async def update_profile_rating(self, user_id: uuid.UUID) -> None:
        """Recompute rating, total_reviews and positive_reviews from all reviews."""
        result = await self.db.execute(
            select(
                func.avg(Review.rating),
                func.count(Review.review_id),
                func.count(Review.review_id).filter(Review.rating >= POSITIVE_RATING),
            ).where(Review.to_user_id == user_id)
        )
        average, total, positive = result.one()

        profile_result = await self.db.execute(
            select(FisherProfile).where(FisherProfile.user_id == user_id)
        )
        profile = profile_result.scalar_one_or_none()
        if profile is None:
            logger.warning("No fisher profile for %s; rating not updated", user_id)
            return

        profile.rating = round(float(average), 1) if average is not None else 5.0
        profile.total_reviews = total or 0
        profile.positive_reviews = positive or 0
        await self.db.flush()

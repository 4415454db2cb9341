"""
Participant Approval Service
============================

Trip applications, captain decisions, participant scoring and the
automation rules that let some trips admit applicants without a captain.

Scoring (0-100):
    rating/5 * 40 + reliability/100 * 25 + experience weight
    + min(completed_trips * 2, 15), minus 10 for a cancellation rate over
    20% and minus 5 for an average response time over 24 hours.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ConflictError,
    ErrorCodes,
    ForbiddenError,
    NotFoundError,
)
from app.models.trip import (
    ApprovalMode,
    ApprovalStatus,
    BookingStatus,
    GroupBooking,
    GroupTrip,
    ParticipantApproval,
    TripStatus,
)
from app.models.user import ExperienceLevel, FisherProfile, User
from app.schemas.common import offset_pagination
from app.utils.helpers import isoformat_or_none, utc_now

logger = logging.getLogger(__name__)

EXPERIENCE_WEIGHTS = {
    ExperienceLevel.BEGINNER: 5,
    ExperienceLevel.INTERMEDIATE: 10,
    ExperienceLevel.ADVANCED: 15,
    ExperienceLevel.EXPERT: 20,
}

APPROVAL_RELIABILITY_BONUS = 2
REJECTION_RELIABILITY_PENALTY = 5


@dataclass
class AutomationRule:
    """Thresholds an applicant's profile must all meet for the rule to match."""

    id: str
    name: str
    enabled: bool
    min_rating: float
    min_completed_trips: int
    min_reliability: float
    max_cancellation_rate: float
    auto_approve: bool = False
    prioritize: bool = False


DEFAULT_AUTOMATION_RULES = [
    AutomationRule(
        id="high-score",
        name="High score participants",
        enabled=True,
        min_rating=4.5,
        min_completed_trips=5,
        max_cancellation_rate=10,
        min_reliability=90,
        auto_approve=True,
        prioritize=True,
    ),
    AutomationRule(
        id="experienced-fisher",
        name="Experienced fishers",
        enabled=False,
        min_rating=4.0,
        min_completed_trips=10,
        max_cancellation_rate=15,
        min_reliability=85,
        auto_approve=False,
        prioritize=True,
    ),
]


def calculate_participant_score(profile: Optional[FisherProfile]) -> int:
    if profile is None:
        return 0

    score = float(profile.rating) / 5 * 40
    score += float(profile.reliability) / 100 * 25
    score += EXPERIENCE_WEIGHTS.get(profile.experience_level, 0)
    score += min(profile.completed_trips * 2, 15)

    if profile.cancellation_rate > 20:
        score -= 10
    if profile.avg_response_time_hours > 24:
        score -= 5

    return round(max(0.0, min(100.0, score)))


def score_badge(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def evaluate_automation_rules(
    profile: Optional[FisherProfile],
    rules: Optional[list[AutomationRule]] = None,
) -> dict[str, Any]:
    """
    Check a profile against the enabled rules.

    Returns:
        Dict with eligible (some matching rule auto-approves), prioritize
        and the matched rule ids
    """
    rules = DEFAULT_AUTOMATION_RULES if rules is None else rules
    matched: list[AutomationRule] = []

    if profile is not None:
        for rule in rules:
            if not rule.enabled:
                continue
            if (
                float(profile.rating) >= rule.min_rating
                and profile.completed_trips >= rule.min_completed_trips
                and float(profile.reliability) >= rule.min_reliability
                and float(profile.cancellation_rate) <= rule.max_cancellation_rate
            ):
                matched.append(rule)

    return {
        "eligible": any(rule.auto_approve for rule in matched),
        "prioritize": any(rule.prioritize for rule in matched),
        "matchedRules": [rule.id for rule in matched],
    }


def _trip_summary(trip: GroupTrip) -> dict[str, Any]:
    current = trip.confirmed_participants()
    return {
        "id": str(trip.trip_id),
        "title": trip.title,
        "date": trip.date.isoformat(),
        "timeSlot": trip.time_slot.value,
        "status": trip.status.value,
        "captainId": str(trip.captain_id) if trip.captain_id else None,
        "maxParticipants": trip.max_participants,
        "minRequired": trip.min_required,
        "approvalMode": trip.approval_mode.value,
        "currentParticipants": current,
        "availableSpots": max(0, trip.max_participants - current),
    }


def serialize_approval(approval: ParticipantApproval) -> dict[str, Any]:
    participant = approval.participant
    profile = participant.profile if participant else None
    score = calculate_participant_score(profile)

    return {
        "id": str(approval.approval_id),
        "tripId": str(approval.trip_id),
        "participantId": str(approval.participant_id),
        "participant": {
            "id": str(participant.user_id),
            "name": participant.name,
            "email": participant.email,
            "image": participant.image,
            "profile": {
                "experienceLevel": profile.experience_level.value,
                "rating": float(profile.rating),
                "completedTrips": profile.completed_trips,
                "reliability": float(profile.reliability),
                "specialties": list(profile.specialties or []),
            } if profile else None,
        } if participant else None,
        "message": approval.message,
        "status": approval.status.value,
        "approvedBy": str(approval.approved_by) if approval.approved_by else None,
        "rejectedReason": approval.rejected_reason,
        "processedAt": isoformat_or_none(approval.processed_at),
        "appliedAt": isoformat_or_none(approval.applied_at),
        "trip": _trip_summary(approval.trip) if approval.trip else None,
        "participantScore": {"score": score, "badge": score_badge(score)},
    }


class ApprovalService:
    """Application and decision workflow for trips."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_profile(self, user_id: uuid.UUID) -> Optional[FisherProfile]:
        result = await self.db.execute(
            select(FisherProfile).where(FisherProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _get_trip(self, trip_id: uuid.UUID, lock: bool = False) -> GroupTrip:
        stmt = select(GroupTrip).where(GroupTrip.trip_id == trip_id)
        if lock:
            # Refresh bookings loaded earlier in this transaction before counting seats
            stmt = stmt.with_for_update(of=GroupTrip).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        trip = result.scalar_one_or_none()
        if trip is None:
            raise NotFoundError(code=ErrorCodes.TRIP_NOT_FOUND, message="Trip not found")
        return trip

    async def _get_approval(self, approval_id: uuid.UUID, lock: bool = False) -> ParticipantApproval:
        stmt = select(ParticipantApproval).where(ParticipantApproval.approval_id == approval_id)
        if lock:
            stmt = stmt.with_for_update(of=ParticipantApproval).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        approval = result.scalar_one_or_none()
        if approval is None:
            raise NotFoundError(
                code=ErrorCodes.APPROVAL_NOT_FOUND,
                message="Approval request not found",
            )
        return approval

    async def apply(
        self,
        user: User,
        trip_id: uuid.UUID,
        message: Optional[str] = None,
    ) -> dict[str, Any]:
        trip = await self._get_trip(trip_id, lock=True)

        if trip.status != TripStatus.FORMING:
            raise ConflictError(
                code=ErrorCodes.TRIP_NOT_OPEN,
                message="Trip is not accepting new participants",
            )

        existing = await self.db.execute(
            select(ParticipantApproval).where(
                ParticipantApproval.trip_id == trip_id,
                ParticipantApproval.participant_id == user.user_id,
                ParticipantApproval.status.in_([ApprovalStatus.PENDING, ApprovalStatus.APPROVED]),
            )
        )
        previous = existing.scalars().first()
        if previous is not None:
            raise ConflictError(
                code=ErrorCodes.APPROVAL_EXISTS,
                message=(
                    "Application already pending"
                    if previous.status == ApprovalStatus.PENDING
                    else "Already approved for this trip"
                ),
            )

        if any(
            b.user_id == user.user_id and b.status == BookingStatus.CONFIRMED
            for b in trip.bookings
        ):
            raise ConflictError(
                code=ErrorCodes.APPROVAL_ALREADY_BOOKED,
                message="Already booked for this trip",
            )

        if trip.confirmed_participants() >= trip.max_participants:
            raise ConflictError(code=ErrorCodes.TRIP_FULL, message="Trip is full")

        approval = ParticipantApproval(
            trip_id=trip_id,
            participant_id=user.user_id,
            message=message,
            status=ApprovalStatus.PENDING,
        )
        self.db.add(approval)

        profile = await self._get_profile(user.user_id)
        if profile is not None:
            profile.last_active_at = utc_now()

        await self.db.flush()

        automation = evaluate_automation_rules(profile)
        auto_approve = trip.approval_mode == ApprovalMode.AUTO or (
            trip.approval_mode == ApprovalMode.HYBRID and automation["eligible"]
        )
        if auto_approve:
            await self._decide(approval, trip, ApprovalStatus.APPROVED, trip.captain_id)
            logger.info("Approval %s auto-approved (%s)", approval.approval_id, trip.approval_mode.value)

        await self.db.refresh(approval)
        score = calculate_participant_score(profile)

        logger.info("User %s applied to trip %s", user.user_id, trip_id)
        return {
            "approval": serialize_approval(approval),
            "participantScore": {"score": score, "badge": score_badge(score)},
            "automation": automation,
            "autoApproved": auto_approve,
        }

    async def list_approvals(
        self,
        user: User,
        trip_id: Optional[uuid.UUID] = None,
        status: Optional[ApprovalStatus] = None,
        captain_id: Optional[uuid.UUID] = None,
        participant_id: Optional[uuid.UUID] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        conditions = []
        if trip_id:
            conditions.append(ParticipantApproval.trip_id == trip_id)
        if participant_id:
            conditions.append(ParticipantApproval.participant_id == participant_id)
        if captain_id:
            conditions.append(GroupTrip.captain_id == captain_id)
        if not user.is_admin:
            conditions.append(
                or_(
                    ParticipantApproval.participant_id == user.user_id,
                    GroupTrip.captain_id == user.user_id,
                )
            )

        base = (
            select(ParticipantApproval)
            .join(GroupTrip, GroupTrip.trip_id == ParticipantApproval.trip_id)
            .where(*conditions)
        )

        count_rows = await self.db.execute(
            select(ParticipantApproval.status, func.count())
            .join(GroupTrip, GroupTrip.trip_id == ParticipantApproval.trip_id)
            .where(*conditions)
            .group_by(ParticipantApproval.status)
        )
        by_status = {row[0]: row[1] for row in count_rows.all()}
        stats = {
            "total": sum(by_status.values()),
            "pending": by_status.get(ApprovalStatus.PENDING, 0),
            "approved": by_status.get(ApprovalStatus.APPROVED, 0),
            "rejected": by_status.get(ApprovalStatus.REJECTED, 0),
        }

        stmt = base
        if status:
            stmt = stmt.where(ParticipantApproval.status == status)
        total = stats["total"] if status is None else by_status.get(status, 0)

        result = await self.db.execute(
            stmt.order_by(ParticipantApproval.applied_at.desc()).limit(limit).offset(offset)
        )
        approvals = list(result.scalars().all())

        return {
            "approvals": [serialize_approval(a) for a in approvals],
            "stats": stats,
            "pagination": offset_pagination(total, limit, offset, len(approvals)),
        }

    async def get_approval(self, user: User, approval_id: uuid.UUID) -> ParticipantApproval:
        approval = await self._get_approval(approval_id)
        if not user.is_admin and user.user_id not in (
            approval.participant_id,
            approval.trip.captain_id,
        ):
            raise ForbiddenError(message="Not allowed to view this application")
        return approval

    async def process(
        self,
        user: User,
        approval_id: uuid.UUID,
        status: ApprovalStatus,
        rejected_reason: Optional[str] = None,
    ) -> ParticipantApproval:
        """Captain decision; the approval and trip rows stay locked until commit."""
        approval = await self._get_approval(approval_id, lock=True)
        trip = await self._get_trip(approval.trip_id, lock=True)

        if trip.captain_id != user.user_id and not user.is_admin:
            raise ForbiddenError(message="Only the trip captain can process applications")
        if approval.status != ApprovalStatus.PENDING:
            raise ConflictError(
                code=ErrorCodes.APPROVAL_ALREADY_PROCESSED,
                message=f"Application already {approval.status.value.lower()}",
            )

        await self._decide(approval, trip, status, user.user_id, rejected_reason)
        await self.db.refresh(approval)
        return approval

    async def _decide(
        self,
        approval: ParticipantApproval,
        trip: GroupTrip,
        status: ApprovalStatus,
        processor_id: Optional[uuid.UUID],
        rejected_reason: Optional[str] = None,
    ) -> None:
        approval.status = status
        approval.approved_by = processor_id
        approval.processed_at = utc_now()

        profile = await self._get_profile(approval.participant_id)

        if status == ApprovalStatus.APPROVED:
            if trip.confirmed_participants() >= trip.max_participants:
                raise ConflictError(code=ErrorCodes.TRIP_FULL, message="Trip is full")

            participant = await self.db.get(User, approval.participant_id)
            booking = GroupBooking(
                trip_id=trip.trip_id,
                user_id=approval.participant_id,
                participants=1,
                total_price=float(trip.price_per_person),
                contact_name=(participant.name or participant.email) if participant else "",
                contact_phone="",
                contact_email=participant.email if participant else None,
                status=BookingStatus.CONFIRMED,
            )
            self.db.add(booking)
            trip.bookings.append(booking)

            if (
                trip.status == TripStatus.FORMING
                and trip.confirmed_participants() >= trip.min_required
            ):
                trip.status = TripStatus.CONFIRMED
                logger.info("Trip %s reached its minimum and is confirmed", trip.trip_id)

            if profile is not None:
                reliability = float(profile.reliability)
                profile.reliability = reliability + min(APPROVAL_RELIABILITY_BONUS, 100 - reliability)
        else:
            approval.rejected_reason = rejected_reason
            if profile is not None:
                reliability = float(profile.reliability)
                profile.reliability = reliability - min(REJECTION_RELIABILITY_PENALTY, reliability)

        await self.db.flush()
        logger.info(
            "Approval %s %s by %s",
            approval.approval_id,
            status.value,
            processor_id,
        )


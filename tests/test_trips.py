"""
Trip and Approval Tests
=======================

Booking rules, participant scoring and the approval workflow, run against a
mocked session.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.core.errors import ConflictError, ErrorCodes, ForbiddenError, ValidationError
from app.models.trip import (
    ApprovalMode,
    ApprovalStatus,
    BookingStatus,
    FishingEventType,
    GroupBooking,
    GroupTrip,
    ParticipantApproval,
    SkillLevelRequired,
    TimeSlot,
    TripStatus,
)
from app.models.user import ExperienceLevel, FisherProfile
from app.schemas.trip import BookingCreate, GroupTripCreate, TripFilters
from app.services.approval_service import (
    ApprovalService,
    calculate_participant_score,
    evaluate_automation_rules,
    score_badge,
)
from app.services.trip_service import TripService


def one(item):
    result = MagicMock()
    result.scalar_one_or_none.return_value = item
    result.scalars.return_value.first.return_value = item
    result.scalars.return_value.all.return_value = [] if item is None else [item]
    return result


def make_trip(captain_id=None, status=TripStatus.FORMING, max_participants=8, min_required=2,
              confirmed=0, approval_mode=ApprovalMode.MANUAL):
    return GroupTrip(
        trip_id=uuid.uuid4(),
        captain_id=captain_id or uuid.uuid4(),
        date=datetime.now(timezone.utc) + timedelta(days=7),
        time_slot=TimeSlot.MORNING_9AM,
        max_participants=max_participants,
        min_required=min_required,
        price_per_person=95.0,
        status=status,
        approval_mode=approval_mode,
        skill_level=SkillLevelRequired.ANY,
        event_type=FishingEventType.COMMERCIAL,
        difficulty_rating=3,
        target_species=[],
        bookings=[
            GroupBooking(participants=1, total_price=95.0, contact_name="x", status=BookingStatus.CONFIRMED)
            for _ in range(confirmed)
        ],
    )


def make_profile(user_id=None, **overrides):
    values = dict(
        user_id=user_id or uuid.uuid4(),
        experience_level=ExperienceLevel.EXPERT,
        rating=4.8,
        reliability=95.0,
        completed_trips=10,
        cancellation_rate=5.0,
        avg_response_time_hours=2.0,
        created_trips=0,
    )
    values.update(overrides)
    return FisherProfile(**values)


class TestParticipantScoring:
    def test_strong_profile(self):
        score = calculate_participant_score(make_profile())
        assert score == 97
        assert score_badge(score) == "excellent"

    def test_penalties(self):
        profile = make_profile(
            experience_level=ExperienceLevel.BEGINNER,
            rating=0,
            reliability=100,
            completed_trips=0,
            cancellation_rate=30,
            avg_response_time_hours=48,
        )
        assert calculate_participant_score(profile) == 15
        assert score_badge(15) == "poor"

    def test_no_profile_scores_zero(self):
        assert calculate_participant_score(None) == 0

    def test_badges(self):
        assert score_badge(80) == "excellent"
        assert score_badge(60) == "good"
        assert score_badge(40) == "fair"


class TestAutomationRules:
    def test_high_score_rule_matches(self):
        result = evaluate_automation_rules(make_profile())
        assert result == {"eligible": True, "prioritize": True, "matchedRules": ["high-score"]}

    def test_disabled_rules_are_skipped(self):
        result = evaluate_automation_rules(make_profile(rating=4.2, completed_trips=20, reliability=88))
        assert result["matchedRules"] == []
        assert result["eligible"] is False

    def test_missing_profile(self):
        assert evaluate_automation_rules(None)["eligible"] is False


class TestTripService:
    @pytest.mark.asyncio
    async def test_participants_cannot_create_trips(self, mock_db, participant):
        data = GroupTripCreate(
            date=datetime.now(timezone.utc) + timedelta(days=3),
            time_slot=TimeSlot.MORNING_9AM,
        )
        with pytest.raises(ForbiddenError):
            await TripService(mock_db).create_trip(participant, data)

    @pytest.mark.asyncio
    async def test_min_cannot_exceed_max(self, mock_db, captain):
        data = GroupTripCreate(
            date=datetime.now(timezone.utc) + timedelta(days=3),
            time_slot=TimeSlot.AFTERNOON_2PM,
            max_participants=4,
            min_required=6,
        )
        with pytest.raises(ValidationError) as exc_info:
            await TripService(mock_db).create_trip(captain, data)
        assert exc_info.value.detail["code"] == ErrorCodes.TRIP_INVALID

    @pytest.mark.asyncio
    async def test_past_date_rejected(self, mock_db, captain):
        data = GroupTripCreate(date=datetime(2020, 1, 1, tzinfo=timezone.utc), time_slot=TimeSlot.MORNING_9AM)
        with pytest.raises(ValidationError):
            await TripService(mock_db).create_trip(captain, data)

    @pytest.mark.asyncio
    async def test_create_counts_captain_trip(self, mock_db, captain):
        profile = make_profile(captain.user_id, created_trips=2)
        mock_db.execute.return_value = one(profile)
        data = GroupTripCreate(
            date=datetime.now(timezone.utc) + timedelta(days=3),
            time_slot=TimeSlot.MORNING_9AM,
            title="Sea bass at dawn",
        )

        trip = await TripService(mock_db).create_trip(captain, data)

        assert trip.captain_id == captain.user_id
        assert trip.status == TripStatus.FORMING
        assert profile.created_trips == 3

    @pytest.mark.asyncio
    async def test_booking_more_seats_than_available(self, mock_db, participant):
        trip = make_trip(max_participants=3, confirmed=2)
        mock_db.execute.return_value = one(trip)

        with pytest.raises(ConflictError) as exc_info:
            await TripService(mock_db).create_booking(
                trip.trip_id, participant, BookingCreate(participants=2, contact_name="A", contact_phone="123"),
            )
        assert exc_info.value.detail["code"] == ErrorCodes.TRIP_FULL

    @pytest.mark.asyncio
    async def test_booking_cancelled_trip(self, mock_db, participant):
        mock_db.execute.return_value = one(make_trip(status=TripStatus.CANCELLED))
        with pytest.raises(ConflictError) as exc_info:
            await TripService(mock_db).create_booking(
                uuid.uuid4(), participant, BookingCreate(contact_name="A", contact_phone="123"),
            )
        assert exc_info.value.detail["code"] == ErrorCodes.TRIP_NOT_OPEN

    @pytest.mark.asyncio
    async def test_booking_prices_seats(self, mock_db, participant):
        trip = make_trip()
        mock_db.execute.return_value = one(trip)

        booking = await TripService(mock_db).create_booking(
            trip.trip_id, participant, BookingCreate(participants=3, contact_name="A", contact_phone="123"),
        )

        assert booking.total_price == 285.0
        assert booking.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_list_hides_full_trips(self, mock_db):
        result = MagicMock()
        result.scalars.return_value.all.return_value = [
            make_trip(max_participants=2, confirmed=2),
            make_trip(max_participants=4, confirmed=1),
        ]
        mock_db.execute.return_value = result

        listing = await TripService(mock_db).list_trips(TripFilters())

        assert len(listing["trips"]) == 1
        assert listing["trips"][0]["availableSpots"] == 3
        assert listing["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_list_rejects_inverted_difficulty(self, mock_db):
        with pytest.raises(ValidationError):
            await TripService(mock_db).list_trips(TripFilters(min_difficulty=4, max_difficulty=2))


class TestApprovalWorkflow:
    @pytest.mark.asyncio
    async def test_apply_to_closed_trip(self, mock_db, participant):
        mock_db.execute.return_value = one(make_trip(status=TripStatus.CONFIRMED))
        with pytest.raises(ConflictError) as exc_info:
            await ApprovalService(mock_db).apply(participant, uuid.uuid4())
        assert exc_info.value.detail["code"] == ErrorCodes.TRIP_NOT_OPEN

    @pytest.mark.asyncio
    async def test_duplicate_application(self, mock_db, participant):
        existing = ParticipantApproval(status=ApprovalStatus.PENDING)
        mock_db.execute.side_effect = [one(make_trip()), one(existing)]
        with pytest.raises(ConflictError) as exc_info:
            await ApprovalService(mock_db).apply(participant, uuid.uuid4())
        assert exc_info.value.detail["code"] == ErrorCodes.APPROVAL_EXISTS

    @pytest.mark.asyncio
    async def test_manual_trip_stays_pending(self, mock_db, participant):
        trip = make_trip()
        mock_db.execute.side_effect = [one(trip), one(None), one(make_profile(participant.user_id))]

        result = await ApprovalService(mock_db).apply(participant, trip.trip_id, "Keen angler")

        assert result["autoApproved"] is False
        assert result["approval"]["status"] == "PENDING"
        assert result["automation"]["eligible"] is True

    @pytest.mark.asyncio
    async def test_hybrid_trip_auto_approves_high_scorers(self, mock_db, participant):
        trip = make_trip(approval_mode=ApprovalMode.HYBRID, min_required=1)
        profile = make_profile(participant.user_id, reliability=99.0)
        mock_db.execute.side_effect = [one(trip), one(None), one(profile), one(profile)]
        mock_db.get.return_value = participant

        result = await ApprovalService(mock_db).apply(participant, trip.trip_id)

        assert result["autoApproved"] is True
        assert result["approval"]["status"] == "APPROVED"
        assert trip.confirmed_participants() == 1
        assert trip.status == TripStatus.CONFIRMED
        assert profile.reliability == 100.0

    @pytest.mark.asyncio
    async def test_only_captain_processes(self, mock_db, participant):
        approval = ParticipantApproval(
            approval_id=uuid.uuid4(),
            trip_id=uuid.uuid4(),
            participant_id=uuid.uuid4(),
            status=ApprovalStatus.PENDING,
        )
        mock_db.execute.side_effect = [one(approval), one(make_trip())]
        with pytest.raises(ForbiddenError):
            await ApprovalService(mock_db).process(participant, approval.approval_id, ApprovalStatus.APPROVED)

    @pytest.mark.asyncio
    async def test_rejection_lowers_reliability(self, mock_db, captain):
        approval = ParticipantApproval(
            approval_id=uuid.uuid4(),
            trip_id=uuid.uuid4(),
            participant_id=uuid.uuid4(),
            status=ApprovalStatus.PENDING,
        )
        profile = make_profile(approval.participant_id, reliability=3.0)
        mock_db.execute.side_effect = [one(approval), one(make_trip(captain.user_id)), one(profile)]

        await ApprovalService(mock_db).process(
            captain, approval.approval_id, ApprovalStatus.REJECTED, "Trip is for experts",
        )

        assert approval.status == ApprovalStatus.REJECTED
        assert approval.rejected_reason == "Trip is for experts"
        assert approval.approved_by == captain.user_id
        assert profile.reliability == 0.0

    @pytest.mark.asyncio
    async def test_already_processed(self, mock_db, captain):
        approval = ParticipantApproval(
            approval_id=uuid.uuid4(),
            trip_id=uuid.uuid4(),
            participant_id=uuid.uuid4(),
            status=ApprovalStatus.APPROVED,
        )
        mock_db.execute.side_effect = [one(approval), one(make_trip(captain.user_id))]
        with pytest.raises(ConflictError) as exc_info:
            await ApprovalService(mock_db).process(captain, approval.approval_id, ApprovalStatus.REJECTED)
        assert exc_info.value.detail["code"] == ErrorCodes.APPROVAL_ALREADY_PROCESSED

    @pytest.mark.asyncio
    async def test_locked_trip_is_reloaded_before_counting_seats(self, mock_db, captain):
        approval = ParticipantApproval(
            approval_id=uuid.uuid4(),
            trip_id=uuid.uuid4(),
            participant_id=uuid.uuid4(),
            status=ApprovalStatus.PENDING,
        )
        full_trip = make_trip(captain.user_id, max_participants=8, confirmed=8)
        mock_db.execute.side_effect = [one(approval), one(full_trip), one(None)]

        with pytest.raises(ConflictError) as exc_info:
            await ApprovalService(mock_db).process(captain, approval.approval_id, ApprovalStatus.APPROVED)

        assert exc_info.value.detail["code"] == ErrorCodes.TRIP_FULL
        trip_stmt = mock_db.execute.await_args_list[1].args[0]
        assert trip_stmt.get_execution_options()["populate_existing"] is True
        assert trip_stmt._for_update_arg is not None
        mock_db.add.assert_not_called()

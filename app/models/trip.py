"""
Trip Models
===========

SQLAlchemy models for group fishing trips, their bookings and the
participant approval queue.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
import uuid

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.user import User


class TripStatus(str, Enum):
    """Group trip lifecycle."""
    FORMING = "FORMING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class TimeSlot(str, Enum):
    MORNING_9AM = "MORNING_9AM"
    AFTERNOON_2PM = "AFTERNOON_2PM"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class ApprovalMode(str, Enum):
    """How a captain admits participants to a trip."""
    AUTO = "AUTO"
    MANUAL = "MANUAL"
    SKILL_BASED = "SKILL_BASED"
    HYBRID = "HYBRID"


class SkillLevelRequired(str, Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"
    ANY = "ANY"


class FishingEventType(str, Enum):
    COMMERCIAL = "COMMERCIAL"
    COMMUNITY = "COMMUNITY"
    TOURNAMENT = "TOURNAMENT"
    LEARNING = "LEARNING"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class GroupTrip(Base, TimestampMixin):
    """
    A scheduled group trip run by a captain.
    """

    __tablename__ = "group_trips"

    trip_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    captain_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    time_slot: Mapped[TimeSlot] = mapped_column(SQLEnum(TimeSlot), nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, default=8, nullable=False)
    min_required: Mapped[int] = mapped_column(Integer, default=6, nullable=False)
    price_per_person: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False),
        default=95.00,
        nullable=False,
    )
    status: Mapped[TripStatus] = mapped_column(
        SQLEnum(TripStatus),
        default=TripStatus.FORMING,
        nullable=False,
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meeting_point: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    approval_mode: Mapped[ApprovalMode] = mapped_column(
        SQLEnum(ApprovalMode),
        default=ApprovalMode.MANUAL,
        nullable=False,
    )
    skill_level: Mapped[SkillLevelRequired] = mapped_column(
        SQLEnum(SkillLevelRequired),
        default=SkillLevelRequired.ANY,
        nullable=False,
    )
    event_type: Mapped[FishingEventType] = mapped_column(
        SQLEnum(FishingEventType),
        default=FishingEventType.COMMERCIAL,
        nullable=False,
    )
    difficulty_rating: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    target_species: Mapped[list[str]] = mapped_column(
        ARRAY(String(50)),
        default=list,
        nullable=False,
    )

    # Relationships
    captain: Mapped[Optional["User"]] = relationship("User", lazy="selectin")
    bookings: Mapped[list["GroupBooking"]] = relationship(
        "GroupBooking",
        back_populates="trip",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_group_trip_status_date", "status", "date"),
    )

    def confirmed_participants(self) -> int:
        """Seats taken by confirmed bookings."""
        return sum(
            b.participants for b in self.bookings
            if b.status == BookingStatus.CONFIRMED
        )

    def active_participants(self) -> int:
        """Seats taken by any non-cancelled booking."""
        return sum(
            b.participants for b in self.bookings
            if b.status != BookingStatus.CANCELLED
        )

    def __repr__(self) -> str:
        return f"<GroupTrip(trip_id={self.trip_id}, date={self.date}, status={self.status})>"


class GroupBooking(Base, TimestampMixin):
    """A booking of one or more seats on a group trip."""

    __tablename__ = "group_bookings"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    trip_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("group_trips.trip_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    participants: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    total_price: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False),
        nullable=False,
    )
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    payment_status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    trip: Mapped["GroupTrip"] = relationship("GroupTrip", back_populates="bookings")

    __table_args__ = (
        Index("idx_group_booking_trip_status", "trip_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<GroupBooking(booking_id={self.booking_id}, status={self.status})>"


class ParticipantApproval(Base):
    """A participant's application to join a trip."""

    __tablename__ = "participant_approvals"

    approval_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    trip_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("group_trips.trip_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ApprovalStatus] = mapped_column(
        SQLEnum(ApprovalStatus),
        default=ApprovalStatus.PENDING,
        nullable=False,
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
    )
    rejected_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    trip: Mapped["GroupTrip"] = relationship("GroupTrip", lazy="selectin")
    participant: Mapped["User"] = relationship(
        "User",
        foreign_keys=[participant_id],
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_participant_approval_trip_status", "trip_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<ParticipantApproval(approval_id={self.approval_id}, status={self.status})>"

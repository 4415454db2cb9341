"""
Review Model
============

Peer reviews left between participants of a completed trip.
"""

from typing import TYPE_CHECKING, Optional
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.trip import GroupTrip
    from app.models.user import User


class Review(Base, TimestampMixin):
    """A 1-5 star review from one trip participant to another."""

    __tablename__ = "reviews"

    review_id: Mapped[uuid.UUID] = mapped_column(
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
    from_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    to_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    helpful: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    trip: Mapped["GroupTrip"] = relationship("GroupTrip", lazy="selectin")
    from_user: Mapped["User"] = relationship(
        "User",
        foreign_keys=[from_user_id],
        lazy="selectin",
    )
    to_user: Mapped["User"] = relationship(
        "User",
        foreign_keys=[to_user_id],
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("trip_id", "from_user_id", "to_user_id", name="uq_review_trip_from_to"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="rating_range"),
        Index("idx_review_to_user_created", "to_user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Review(review_id={self.review_id}, rating={self.rating})>"

"""
Payment Model
=============

Local record of a payment gateway intent. Amounts are integer minor
units (cents).
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
import uuid

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.subscription import Subscription
    from app.models.trip import GroupTrip
    from app.models.user import User


class PaymentType(str, Enum):
    SUBSCRIPTION = "SUBSCRIPTION"
    TOUR_BOOKING = "TOUR_BOOKING"
    COURSE_PURCHASE = "COURSE_PURCHASE"
    ADVERTISING = "ADVERTISING"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class Payment(Base, TimestampMixin):
    """
    Payment model.

    ``stripe_payment_id`` holds the payment intent id; ``metadata`` keeps the
    audit trail of status checks, cancellations and retries.
    """

    __tablename__ = "payments"

    payment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    subscription_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("subscriptions.subscription_id", ondelete="SET NULL"),
        nullable=True,
    )
    trip_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("group_trips.trip_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    stripe_payment_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        index=True,
    )
    stripe_invoice_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )

    type: Mapped[PaymentType] = mapped_column(SQLEnum(PaymentType), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    commission_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    commission_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
        default=dict,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    user: Mapped[Optional["User"]] = relationship("User", lazy="selectin")
    subscription: Mapped[Optional["Subscription"]] = relationship(
        "Subscription",
        lazy="selectin",
    )
    trip: Mapped[Optional["GroupTrip"]] = relationship("GroupTrip", lazy="selectin")

    __table_args__ = (
        Index("idx_payment_user_created", "user_id", "created_at"),
        Index("idx_payment_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(payment_id={self.payment_id}, amount={self.amount}, "
            f"status={self.status})>"
        )

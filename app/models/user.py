"""
User Models
===========

SQLAlchemy models for user accounts and fisher profiles.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
import uuid

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
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
    from app.models.subscription import Subscription


class UserRole(str, Enum):
    """Marketplace roles."""
    PARTICIPANT = "PARTICIPANT"
    CAPTAIN = "CAPTAIN"
    ADMIN = "ADMIN"


class ExperienceLevel(str, Enum):
    """Self-declared fishing experience."""
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"


class User(Base, TimestampMixin):
    """
    User account model.

    Stores account, role and payment-gateway customer information.
    """

    __tablename__ = "users"

    # Primary Key
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Account fields
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,  # Nullable for OAuth users
    )
    name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    image: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        default=UserRole.PARTICIPANT,
        nullable=False,
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # OAuth fields
    google_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )

    # Stripe customer (intents are owned by this customer)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        index=True,
    )

    # Relationships
    profile: Mapped[Optional["FisherProfile"]] = relationship(
        "FisherProfile",
        back_populates="user",
        uselist=False,
        lazy="selectin",
    )
    subscription: Mapped[Optional["Subscription"]] = relationship(
        "Subscription",
        back_populates="user",
        uselist=False,
        lazy="selectin",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_captain(self) -> bool:
        return self.role in (UserRole.CAPTAIN, UserRole.ADMIN)

    def __repr__(self) -> str:
        return f"<User(user_id={self.user_id}, email={self.email}, role={self.role})>"


class FisherProfile(Base, TimestampMixin):
    """
    Fishing reputation profile (one per user).

    Rating, reliability and trip counters feed participant scoring.
    """

    __tablename__ = "fisher_profiles"

    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    experience_level: Mapped[ExperienceLevel] = mapped_column(
        SQLEnum(ExperienceLevel),
        default=ExperienceLevel.BEGINNER,
        nullable=False,
    )
    specialties: Mapped[list[str]] = mapped_column(
        ARRAY(String(50)),
        default=list,
        nullable=False,
    )
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Reputation
    rating: Mapped[float] = mapped_column(
        Numeric(2, 1, asdecimal=False),
        default=5.0,
        nullable=False,
    )
    reliability: Mapped[float] = mapped_column(
        Numeric(5, 2, asdecimal=False),
        default=100.0,
        nullable=False,
    )
    completed_trips: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_trips: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    positive_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancellation_rate: Mapped[float] = mapped_column(
        Numeric(5, 2, asdecimal=False),
        default=0.0,
        nullable=False,
    )
    avg_response_time_hours: Mapped[float] = mapped_column(
        Numeric(6, 2, asdecimal=False),
        default=0.0,
        nullable=False,
    )
    total_fish_caught: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Location
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    last_active_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="profile")

    def __repr__(self) -> str:
        return f"<FisherProfile(user_id={self.user_id}, rating={self.rating})>"

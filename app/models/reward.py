"""
Reward Models
=============

SQLAlchemy models for the reward catalogue, user inventories, distribution
audit log, badges, and the competitions/seasons that award them.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.user import User


class RewardType(str, Enum):
    TROPHY = "TROPHY"
    BADGE = "BADGE"
    TITLE = "TITLE"
    DECORATION = "DECORATION"
    FEATURE = "FEATURE"
    VIRTUAL_ITEM = "VIRTUAL_ITEM"


class RewardTier(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"
    DIAMOND = "DIAMOND"
    LEGENDARY = "LEGENDARY"


class Rarity(str, Enum):
    COMMON = "COMMON"
    UNCOMMON = "UNCOMMON"
    RARE = "RARE"
    EPIC = "EPIC"
    LEGENDARY = "LEGENDARY"
    MYTHIC = "MYTHIC"


class RewardSourceType(str, Enum):
    COMPETITION = "COMPETITION"
    SEASON = "SEASON"
    MILESTONE = "MILESTONE"
    ACHIEVEMENT = "ACHIEVEMENT"
    MANUAL = "MANUAL"


class DistributionStatus(str, Enum):
    PENDING = "PENDING"
    DISTRIBUTED = "DISTRIBUTED"
    FAILED = "FAILED"


class BadgeCategory(str, Enum):
    ACHIEVEMENT = "ACHIEVEMENT"
    MILESTONE = "MILESTONE"
    SPECIAL = "SPECIAL"
    SEASONAL = "SEASONAL"


class CompetitionStatus(str, Enum):
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SeasonType(str, Enum):
    SPRING = "SPRING"
    SUMMER = "SUMMER"
    AUTUMN = "AUTUMN"
    WINTER = "WINTER"
    SPECIAL = "SPECIAL"


class SeasonStatus(str, Enum):
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


# =============================================================================
# Rewards
# =============================================================================

class Reward(Base, TimestampMixin):
    """Catalogue entry for something a user can own."""

    __tablename__ = "rewards"

    reward_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[RewardType] = mapped_column(SQLEnum(RewardType), nullable=False)
    tier: Mapped[RewardTier] = mapped_column(SQLEnum(RewardTier), nullable=False)
    rarity: Mapped[Rarity] = mapped_column(
        SQLEnum(Rarity),
        default=Rarity.COMMON,
        nullable=False,
    )
    icon: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Reward(name={self.name}, tier={self.tier}, type={self.type})>"


class RewardInventory(Base):
    """A user's holding of a reward."""

    __tablename__ = "reward_inventory"

    inventory_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reward_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rewards.reward_id", ondelete="CASCADE"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_displayed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    first_obtained_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    last_obtained_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    reward: Mapped["Reward"] = relationship("Reward", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "reward_id", name="uq_reward_inventory_user_reward"),
    )

    def __repr__(self) -> str:
        return f"<RewardInventory(user_id={self.user_id}, reward_id={self.reward_id}, qty={self.quantity})>"


class RewardDistribution(Base):
    """Audit record of a reward being granted."""

    __tablename__ = "reward_distributions"

    distribution_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    reward_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rewards.reward_id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_type: Mapped[RewardSourceType] = mapped_column(
        SQLEnum(RewardSourceType),
        nullable=False,
    )
    source_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[DistributionStatus] = mapped_column(
        SQLEnum(DistributionStatus),
        default=DistributionStatus.PENDING,
        nullable=False,
    )
    distributed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    reward: Mapped["Reward"] = relationship("Reward", lazy="selectin")

    __table_args__ = (
        Index("idx_reward_distribution_source", "source_type", "source_id"),
    )


# =============================================================================
# Badges
# =============================================================================

class BadgeDefinition(Base, TimestampMixin):
    """An admin-defined badge users can earn."""

    __tablename__ = "badge_definitions"

    badge_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    icon: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[BadgeCategory] = mapped_column(
        SQLEnum(BadgeCategory),
        default=BadgeCategory.ACHIEVEMENT,
        nullable=False,
    )
    rarity: Mapped[Rarity] = mapped_column(
        SQLEnum(Rarity),
        default=Rarity.COMMON,
        nullable=False,
    )
    required_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<BadgeDefinition(name={self.name}, category={self.category})>"


class FisherBadge(Base):
    """A badge earned by a user."""

    __tablename__ = "fisher_badges"

    fisher_badge_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    badge_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("badge_definitions.badge_id", ondelete="CASCADE"),
        nullable=False,
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    badge: Mapped["BadgeDefinition"] = relationship("BadgeDefinition", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_fisher_badge_user_badge"),
    )


# =============================================================================
# Competitions and seasons
# =============================================================================

class Competition(Base, TimestampMixin):
    __tablename__ = "competitions"

    competition_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[CompetitionStatus] = mapped_column(
        SQLEnum(CompetitionStatus),
        default=CompetitionStatus.UPCOMING,
        nullable=False,
    )
    starts_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    participants: Mapped[list["CompetitionParticipant"]] = relationship(
        "CompetitionParticipant",
        back_populates="competition",
        lazy="selectin",
    )


class CompetitionParticipant(Base):
    __tablename__ = "competition_participants"

    competition_participant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    competition_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("competitions.competition_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    competition: Mapped["Competition"] = relationship("Competition", back_populates="participants")
    user: Mapped["User"] = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("competition_id", "user_id", name="uq_competition_participant"),
    )


class Season(Base, TimestampMixin):
    __tablename__ = "seasons"

    season_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[SeasonType] = mapped_column(SQLEnum(SeasonType), nullable=False)
    status: Mapped[SeasonStatus] = mapped_column(
        SQLEnum(SeasonStatus),
        default=SeasonStatus.UPCOMING,
        nullable=False,
    )
    starts_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    participants: Mapped[list["SeasonParticipant"]] = relationship(
        "SeasonParticipant",
        back_populates="season",
        lazy="selectin",
    )


class SeasonParticipant(Base):
    __tablename__ = "season_participants"

    season_participant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    season_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("seasons.season_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    season: Mapped["Season"] = relationship("Season", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("season_id", "user_id", name="uq_season_participant"),
    )

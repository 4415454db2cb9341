"""
Database Models
===============

SQLAlchemy ORM models for all database entities.

All models are imported here to ensure they are registered
with SQLAlchemy's metadata for migrations and relationships.
"""

from app.models.user import User, FisherProfile, UserRole, ExperienceLevel
from app.models.subscription import (
    Subscription,
    SubscriptionTier,
    SubscriptionStatus,
)
from app.models.trip import (
    GroupTrip,
    GroupBooking,
    ParticipantApproval,
    TripStatus,
    TimeSlot,
    BookingStatus,
    ApprovalMode,
    ApprovalStatus,
    SkillLevelRequired,
    FishingEventType,
)
from app.models.payment import Payment, PaymentStatus, PaymentType
from app.models.review import Review
from app.models.reward import (
    Reward,
    RewardInventory,
    RewardDistribution,
    BadgeDefinition,
    FisherBadge,
    Competition,
    CompetitionParticipant,
    Season,
    SeasonParticipant,
    RewardType,
    RewardTier,
    Rarity,
    RewardSourceType,
    DistributionStatus,
    BadgeCategory,
    CompetitionStatus,
    SeasonType,
    SeasonStatus,
)
from app.models.report import (
    ExportHistory,
    ScheduledReport,
    ExportFormat,
    ExportStatus,
    ReportFrequency,
)
from app.models.diary import FishingDiaryEntry, DiaryFishCatch, DiaryMedia, MediaType

__all__ = [
    # User
    "User",
    "FisherProfile",
    "UserRole",
    "ExperienceLevel",
    # Subscription
    "Subscription",
    "SubscriptionTier",
    "SubscriptionStatus",
    # Trips
    "GroupTrip",
    "GroupBooking",
    "ParticipantApproval",
    "TripStatus",
    "TimeSlot",
    "BookingStatus",
    "ApprovalMode",
    "ApprovalStatus",
    "SkillLevelRequired",
    "FishingEventType",
    # Payments
    "Payment",
    "PaymentStatus",
    "PaymentType",
    # Reviews
    "Review",
    # Rewards
    "Reward",
    "RewardInventory",
    "RewardDistribution",
    "BadgeDefinition",
    "FisherBadge",
    "Competition",
    "CompetitionParticipant",
    "Season",
    "SeasonParticipant",
    "RewardType",
    "RewardTier",
    "Rarity",
    "RewardSourceType",
    "DistributionStatus",
    "BadgeCategory",
    "CompetitionStatus",
    "SeasonType",
    "SeasonStatus",
    # Reporting
    "ExportHistory",
    "ScheduledReport",
    "ExportFormat",
    "ExportStatus",
    "ReportFrequency",
    # Diary
    "FishingDiaryEntry",
    "DiaryFishCatch",
    "DiaryMedia",
    "MediaType",
]

"""
Fishing Diary Models
====================

Personal diary entries, the fish caught on each outing, and attached media.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin


class MediaType(str, Enum):
    PHOTO = "PHOTO"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"


class FishingDiaryEntry(Base, TimestampMixin):
    """One fishing outing recorded by a user."""

    __tablename__ = "fishing_diary_entries"

    entry_id: Mapped[uuid.UUID] = mapped_column(
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

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Location
    location_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Conditions
    weather: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    temperature: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_speed: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_direction: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Totals
    total_weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Tackle
    rod_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reel_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    line_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bait_used: Mapped[list[str]] = mapped_column(ARRAY(String(100)), default=list, nullable=False)
    lure_color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    tags: Mapped[list[str]] = mapped_column(ARRAY(String(50)), default=list, nullable=False)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    fish_caught: Mapped[list["DiaryFishCatch"]] = relationship(
        "DiaryFishCatch",
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    media: Mapped[list["DiaryMedia"]] = relationship(
        "DiaryMedia",
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_diary_entry_user_date", "user_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<FishingDiaryEntry(entry_id={self.entry_id}, date={self.date})>"


class DiaryFishCatch(Base):
    __tablename__ = "diary_fish_catches"

    catch_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("fishing_diary_entries.entry_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    species: Mapped[str] = mapped_column(String(100), nullable=False)
    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    length: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    time_of_catch: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    depth: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    method: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bait_used: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    was_released: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    entry: Mapped["FishingDiaryEntry"] = relationship(
        "FishingDiaryEntry",
        back_populates="fish_caught",
    )


class DiaryMedia(Base, TimestampMixin):
    __tablename__ = "diary_media"

    media_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("fishing_diary_entries.entry_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    blob_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    media_type: Mapped[MediaType] = mapped_column(SQLEnum(MediaType), nullable=False)
    gps_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    gps_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    capture_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    entry: Mapped["FishingDiaryEntry"] = relationship(
        "FishingDiaryEntry",
        back_populates="media",
    )

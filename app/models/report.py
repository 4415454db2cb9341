"""
Reporting Models
================

Export history and scheduled report definitions.
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
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class ExportFormat(str, Enum):
    CSV = "csv"
    PDF = "pdf"
    EXCEL = "excel"


class ExportStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


class ReportFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class ExportHistory(Base, TimestampMixin):
    """One generated (or attempted) export file."""

    __tablename__ = "export_history"

    export_id: Mapped[uuid.UUID] = mapped_column(
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
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    format: Mapped[ExportFormat] = mapped_column(
        SQLEnum(ExportFormat, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    data_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[ExportStatus] = mapped_column(
        SQLEnum(ExportStatus, values_callable=lambda e: [m.value for m in e]),
        default=ExportStatus.PENDING,
        nullable=False,
    )
    file_size: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    record_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    download_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    parameters: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True, default=dict)

    __table_args__ = (
        Index("idx_export_history_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ExportHistory(filename={self.filename}, status={self.status})>"


class ScheduledReport(Base, TimestampMixin):
    """A recurring export delivered to a list of recipients."""

    __tablename__ = "scheduled_reports"

    report_id: Mapped[uuid.UUID] = mapped_column(
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
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    frequency: Mapped[ReportFrequency] = mapped_column(
        SQLEnum(ReportFrequency, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    format: Mapped[ExportFormat] = mapped_column(
        SQLEnum(ExportFormat, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    data_type: Mapped[str] = mapped_column(String(50), nullable=False)
    recipients: Mapped[list[str]] = mapped_column(
        ARRAY(String(255)),
        default=list,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    next_run: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_run: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    options: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True, default=dict)

    __table_args__ = (
        Index("idx_scheduled_report_active_next_run", "is_active", "next_run"),
    )

    def __repr__(self) -> str:
        return f"<ScheduledReport(name={self.name}, frequency={self.frequency})>"

"""
Export Schemas
==============

Pydantic schemas for data exports, export history and scheduled reports.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from app.models.report import ExportFormat, ExportStatus, ReportFrequency

ExportDataType = Literal[
    "payments",
    "earnings",
    "commissions",
    "all",
    "transactions",
    "summary",
    "detailed",
]

ReportDataType = Literal["payments", "earnings", "commissions", "all"]


class DateRange(BaseModel):
    start: datetime
    end: datetime


class ExportFilters(BaseModel):
    """Optional payment filters; amounts are in major units."""

    status: Optional[list[str]] = None
    min_amount: Optional[float] = Field(None, ge=0)
    max_amount: Optional[float] = Field(None, ge=0)
    search: Optional[str] = Field(None, max_length=255)


class ExportRequest(BaseModel):
    format: ExportFormat
    data_type: ExportDataType
    date_range: DateRange
    include_details: bool = False
    group_by: Literal["day", "week", "month"] = "day"
    export_scope: Literal["all", "selected"] = "all"
    selected_transaction_ids: Optional[list[str]] = None
    filters: Optional[ExportFilters] = None

    @model_validator(mode="after")
    def check_selection(self) -> "ExportRequest":
        if self.export_scope == "selected" and not self.selected_transaction_ids:
            raise ValueError("selected_transaction_ids is required when export_scope is 'selected'")
        return self


class ExportHistoryCreate(BaseModel):
    format: ExportFormat
    data_type: str = Field(..., min_length=1, max_length=50)
    status: ExportStatus = ExportStatus.COMPLETED
    file_size: int = Field(0, ge=0)
    record_count: int = Field(0, ge=0)
    download_url: Optional[str] = Field(None, max_length=1000)
    error_message: Optional[str] = None
    parameters: Optional[dict[str, Any]] = None


class ScheduledReportCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    frequency: ReportFrequency
    format: ExportFormat
    data_type: ReportDataType
    recipients: list[EmailStr] = Field(..., min_length=1)
    is_active: bool = True
    options: Optional[dict[str, Any]] = None


class ScheduledReportUpdate(BaseModel):
    """All fields optional; a frequency change reschedules the next run."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    frequency: Optional[ReportFrequency] = None
    format: Optional[ExportFormat] = None
    data_type: Optional[ReportDataType] = None
    recipients: Optional[list[EmailStr]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    options: Optional[dict[str, Any]] = None


class ExportResponse(BaseModel):
    """Standard envelope for export history and report endpoints."""

    success: bool = True
    data: dict[str, Any]
    message: Optional[str] = None

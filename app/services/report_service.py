"""
Scheduled Report Service
========================

Owner-scoped CRUD for recurring exports.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ErrorCodes, NotFoundError
from app.models.report import ReportFrequency, ScheduledReport
from app.schemas.export import ScheduledReportCreate, ScheduledReportUpdate
from app.utils.helpers import add_months, isoformat_or_none, utc_now

logger = logging.getLogger(__name__)

# Reporting window each frequency covers, as used for ``period_start``
FREQUENCY_PERIODS = {
    ReportFrequency.DAILY: "day",
    ReportFrequency.WEEKLY: "week",
    ReportFrequency.MONTHLY: "month",
    ReportFrequency.QUARTERLY: "quarter",
}


def calculate_next_run(frequency: ReportFrequency, from_time: Optional[datetime] = None) -> datetime:
    base = from_time or utc_now()
    if frequency == ReportFrequency.DAILY:
        return base + timedelta(days=1)
    if frequency == ReportFrequency.WEEKLY:
        return base + timedelta(weeks=1)
    if frequency == ReportFrequency.MONTHLY:
        return add_months(base, 1)
    return add_months(base, 3)


def report_window(frequency: ReportFrequency, end: datetime) -> tuple[datetime, datetime]:
    """The period a report run covers, ending at ``end``."""
    if frequency == ReportFrequency.DAILY:
        return end - timedelta(days=1), end
    if frequency == ReportFrequency.WEEKLY:
        return end - timedelta(weeks=1), end
    if frequency == ReportFrequency.MONTHLY:
        return add_months(end, -1), end
    return add_months(end, -3), end


def serialize_report(report: ScheduledReport) -> dict[str, Any]:
    return {
        "id": str(report.report_id),
        "name": report.name,
        "description": report.description,
        "frequency": report.frequency.value,
        "format": report.format.value,
        "dataType": report.data_type,
        "recipients": list(report.recipients or []),
        "isActive": report.is_active,
        "nextRun": isoformat_or_none(report.next_run),
        "lastRun": isoformat_or_none(report.last_run),
        "options": report.options or {},
        "createdAt": isoformat_or_none(report.created_at),
    }


class ReportService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_owned(self, user_id: uuid.UUID, report_id: uuid.UUID) -> ScheduledReport:
        report = await self.db.get(ScheduledReport, report_id)
        if report is None or report.user_id != user_id:
            raise NotFoundError(
                code=ErrorCodes.REPORT_NOT_FOUND,
                message="Scheduled report not found",
            )
        return report

    async def list_reports(self, user_id: uuid.UUID) -> list[ScheduledReport]:
        result = await self.db.execute(
            select(ScheduledReport)
            .where(ScheduledReport.user_id == user_id)
            .order_by(ScheduledReport.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_report(self, user_id: uuid.UUID, data: ScheduledReportCreate) -> ScheduledReport:
        report = ScheduledReport(
            user_id=user_id,
            name=data.name,
            description=data.description,
            frequency=data.frequency,
            format=data.format,
            data_type=data.data_type,
            recipients=[str(r) for r in data.recipients],
            is_active=data.is_active,
            next_run=calculate_next_run(data.frequency),
            options=data.options or {},
        )
        self.db.add(report)
        await self.db.flush()
        await self.db.refresh(report)

        logger.info("Scheduled report %s (%s) created for user %s", report.report_id, report.frequency.value, user_id)
        return report

    async def update_report(
        self,
        user_id: uuid.UUID,
        report_id: uuid.UUID,
        data: ScheduledReportUpdate,
    ) -> ScheduledReport:
        report = await self._get_owned(user_id, report_id)
        updates = data.model_dump(exclude_unset=True)

        if "recipients" in updates and updates["recipients"] is not None:
            updates["recipients"] = [str(r) for r in updates["recipients"]]

        frequency = updates.get("frequency")
        if frequency is not None and frequency != report.frequency:
            report.next_run = calculate_next_run(frequency)

        for field, value in updates.items():
            if value is not None:
                setattr(report, field, value)

        await self.db.flush()
        await self.db.refresh(report)
        return report

    async def delete_report(self, user_id: uuid.UUID, report_id: uuid.UUID) -> None:
        report = await self._get_owned(user_id, report_id)
        await self.db.delete(report)
        await self.db.flush()
        logger.info("Scheduled report %s deleted", report_id)

    async def due_reports(self, now: Optional[datetime] = None) -> list[ScheduledReport]:
        result = await self.db.execute(
            select(ScheduledReport).where(
                ScheduledReport.is_active.is_(True),
                ScheduledReport.next_run <= (now or utc_now()),
            )
        )
        return list(result.scalars().all())

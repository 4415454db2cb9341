"""
Scheduled Job Tests
===================

Maintenance jobs and the scheduled report service they drive.
"""

import uuid
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.errors import ErrorCodes, NotFoundError
from app.models.payment import Payment, PaymentStatus, PaymentType
from app.models.report import ExportFormat, ReportFrequency
from app.schemas.export import ScheduledReportUpdate
from app.services.report_service import ReportService
from app.services.scheduled_jobs import ScheduledJobService
from app.utils.helpers import utc_now


def all_result(items):
    result = MagicMock()
    result.scalars.return_value.all.return_value = items
    return result


def scheduled(frequency=ReportFrequency.DAILY, **overrides):
    values = dict(
        report_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        frequency=frequency,
        format=ExportFormat.CSV,
        data_type="payments",
        recipients=["ops@example.com"],
        options={"group_by": "week"},
        last_run=None,
        next_run=utc_now() - timedelta(minutes=5),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestStalePayments:
    @pytest.mark.asyncio
    async def test_marks_stale_payments_failed(self, mock_db):
        stale = Payment(
            user_id=uuid.uuid4(),
            amount=5000,
            currency="eur",
            type=PaymentType.TOUR_BOOKING,
            status=PaymentStatus.PENDING,
            metadata_={"tripId": "abc"},
        )
        mock_db.execute.return_value = all_result([stale])

        summary = await ScheduledJobService(mock_db).expire_stale_pending_payments()

        assert summary["processed"] == 1
        assert stale.status == PaymentStatus.FAILED
        assert stale.metadata_["expired"] is True
        assert stale.metadata_["tripId"] == "abc"
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_to_expire(self, mock_db):
        mock_db.execute.return_value = all_result([])

        summary = await ScheduledJobService(mock_db).expire_stale_pending_payments()

        assert summary["processed"] == 0
        mock_db.flush.assert_not_awaited()


class TestDueReports:
    @pytest.mark.asyncio
    async def test_generates_and_reschedules(self, mock_db):
        report = scheduled(ReportFrequency.WEEKLY)
        mock_db.execute.return_value = all_result([report])
        generate = AsyncMock(return_value=SimpleNamespace(filename="payments_2025.csv"))

        with patch("app.services.scheduled_jobs.ExportService.generate", generate):
            summary = await ScheduledJobService(mock_db).run_due_reports()

        assert summary["processed"] == 1
        assert summary["errors"] == []
        args, kwargs = generate.await_args
        assert args[0] == report.user_id
        assert args[3] == args[4] - timedelta(weeks=1)
        assert kwargs["group_by"] == "week"
        assert report.last_run is not None
        assert report.next_run == report.last_run + timedelta(weeks=1)

    @pytest.mark.asyncio
    async def test_failures_are_collected(self, mock_db):
        broken, healthy = scheduled(), scheduled()
        mock_db.execute.return_value = all_result([broken, healthy])
        generate = AsyncMock(side_effect=[RuntimeError("disk full"), SimpleNamespace(filename="ok.csv")])

        with patch("app.services.scheduled_jobs.ExportService.generate", generate):
            summary = await ScheduledJobService(mock_db).run_due_reports()

        assert summary["processed"] == 1
        assert summary["errors"] == [{"report_id": str(broken.report_id), "error": "disk full"}]
        assert broken.next_run > broken.last_run

    @pytest.mark.asyncio
    async def test_failing_report_rolls_back_its_savepoint_only(self, mock_db):
        first, broken, last = scheduled(), scheduled(), scheduled()
        mock_db.execute.return_value = all_result([first, broken, last])
        generate = AsyncMock(side_effect=[
            SimpleNamespace(filename="a.csv"),
            RuntimeError("deadlock detected"),
            SimpleNamespace(filename="c.csv"),
        ])

        with patch("app.services.scheduled_jobs.ExportService.generate", generate):
            summary = await ScheduledJobService(mock_db).run_due_reports()

        assert summary["processed"] == 2
        assert [e["report_id"] for e in summary["errors"]] == [str(broken.report_id)]
        assert mock_db.begin_nested.call_count == 3
        exits = mock_db.begin_nested.return_value.__aexit__.await_args_list
        assert [call.args[0] for call in exits] == [None, RuntimeError, None]
        assert all(r.last_run is not None for r in (first, broken, last))
        mock_db.rollback.assert_not_awaited()
        mock_db.flush.assert_awaited_once()


class TestReportService:
    @pytest.mark.asyncio
    async def test_other_users_report_is_not_found(self, mock_db):
        mock_db.get.return_value = scheduled()
        with pytest.raises(NotFoundError) as exc_info:
            await ReportService(mock_db).delete_report(uuid.uuid4(), uuid.uuid4())
        assert exc_info.value.detail["code"] == ErrorCodes.REPORT_NOT_FOUND
        mock_db.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_frequency_change_reschedules(self, mock_db):
        report = scheduled(ReportFrequency.DAILY, name="Daily payments")
        old_next_run = report.next_run
        mock_db.get.return_value = report

        await ReportService(mock_db).update_report(
            report.user_id, report.report_id, ScheduledReportUpdate(frequency=ReportFrequency.MONTHLY),
        )

        assert report.frequency == ReportFrequency.MONTHLY
        assert report.next_run > old_next_run + timedelta(days=27)
        assert report.name == "Daily payments"

    @pytest.mark.asyncio
    async def test_same_frequency_keeps_schedule(self, mock_db):
        report = scheduled(ReportFrequency.WEEKLY, name="Weekly")
        next_run = report.next_run
        mock_db.get.return_value = report

        await ReportService(mock_db).update_report(
            report.user_id, report.report_id,
            ScheduledReportUpdate(frequency=ReportFrequency.WEEKLY, recipients=["a@example.com"]),
        )

        assert report.next_run == next_run
        assert report.recipients == ["a@example.com"]

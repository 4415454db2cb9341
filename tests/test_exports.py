"""
Data Export Tests
=================

Tests for export rendering, export history and scheduled report scheduling.
"""

import io
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openpyxl import load_workbook

from app.core.errors import AppException, ErrorCodes, ValidationError
from app.models.payment import PaymentStatus, PaymentType
from app.models.report import ExportFormat, ExportHistory, ExportStatus, ReportFrequency
from app.services.export_service import (
    ExportService,
    build_commission_rows,
    build_dataset,
    build_earnings_rows,
    commission_cents,
    estimate_fees_cents,
    export_filename,
    render_csv,
    render_export,
)
from app.services.report_service import calculate_next_run, report_window

START = datetime(2025, 3, 1, tzinfo=timezone.utc)


def make_payment(amount=10000, created_at=None, captain_name="Ivan", commission_amount=None, **overrides):
    captain_id = overrides.pop("captain_id", uuid.uuid4())
    values = {
        "payment_id": uuid.uuid4(),
        "stripe_payment_id": None,
        "stripe_invoice_id": None,
        "subscription_id": None,
        "trip_id": uuid.uuid4(),
        "trip": SimpleNamespace(
            captain_id=captain_id,
            captain=SimpleNamespace(name=captain_name, email="captain@example.com"),
        ),
        "amount": amount,
        "currency": "EUR",
        "status": PaymentStatus.SUCCEEDED,
        "type": PaymentType.TOUR_BOOKING,
        "description": "Trip booking",
        "commission_amount": commission_amount,
        "commission_rate": None,
        "metadata_": {},
        "created_at": created_at or START + timedelta(hours=10),
        "updated_at": None,
        "paid_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def scalars_result(items):
    result = MagicMock()
    result.scalars.return_value.all.return_value = items
    return result


class TestExportCalculations:
    """Fee, commission and filename helpers."""

    def test_fee_estimate(self):
        assert estimate_fees_cents(10000) == pytest.approx(320)

    def test_commission_defaults_to_fifteen_percent(self):
        assert commission_cents(make_payment(amount=10000)) == pytest.approx(1500)
        assert commission_cents(make_payment(amount=10000, commission_amount=800)) == 800

    def test_filename(self):
        now = datetime(2025, 3, 5, 14, 7, 9, tzinfo=timezone.utc)
        assert export_filename("payments", "csv", now) == "payments-export-2025-03-05-140709.csv"

    def test_commission_rows_grouped_per_captain_and_day(self):
        captain_id = uuid.uuid4()
        payments = [
            make_payment(captain_id=captain_id),
            make_payment(captain_id=captain_id, amount=5000),
            make_payment(captain_id=captain_id, created_at=START + timedelta(days=1)),
        ]
        rows = build_commission_rows(payments)

        assert [r["date"] for r in rows] == ["2025-03-02", "2025-03-01"]
        assert rows[1]["transactionCount"] == 2
        assert rows[1]["totalAmount"] == 150.0
        assert rows[1]["commissionAmount"] == 22.5

    def test_earnings_rows_cover_every_day(self):
        payments = [make_payment(), make_payment(created_at=START + timedelta(days=2, hours=1))]
        rows = build_earnings_rows(payments, START, START + timedelta(days=2))

        assert [r["date"] for r in rows] == ["2025-03-01", "2025-03-02", "2025-03-03"]
        assert rows[0]["totalRevenue"] == 100.0
        assert rows[0]["fees"] == 3.2
        assert rows[0]["netEarnings"] == 96.8
        assert rows[1]["transactionCount"] == 0


class TestExportRendering:
    """CSV sections and JSON documents."""

    def test_all_has_three_sections(self):
        dataset = build_dataset([make_payment()], "all", START, START + timedelta(days=1))
        body = render_csv(dataset, "all")

        assert body.startswith("TRANSACTION DATA\nid,transactionId,date,time,amount")
        assert "\n\nEARNINGS DATA\n" in body
        assert "\n\nCOMMISSIONS DATA\n" in body
        assert "SUMMARY" not in body
        assert body.endswith("\n")

    def test_detailed_adds_summary_and_detail_columns(self):
        dataset = build_dataset([make_payment()], "detailed", START, START + timedelta(days=1), include_details=True)
        body = render_csv(dataset, "detailed", include_details=True)

        assert "stripePaymentId" in body.splitlines()[1]
        assert "SUMMARY\ntotalRecords,totalAmount,averageAmount,totalFees,totalCommission\n1,100.0" in body

    def test_empty_export_still_has_headers(self):
        dataset = build_dataset([], "payments", START, START + timedelta(days=1))
        assert render_csv(dataset, "payments") == "TRANSACTION DATA\n" + ",".join([
            "id", "transactionId", "date", "time", "amount", "currency", "status", "type", "captainName",
        ]) + "\n"

    def test_excel_workbook_has_sheets(self):
        dataset = build_dataset([make_payment()], "all", START, START + timedelta(days=1))
        body = render_export(dataset, "all", ExportFormat.EXCEL)

        assert body.startswith(b"PK")
        workbook = load_workbook(io.BytesIO(body))
        assert workbook.sheetnames == ["Summary", "Payments", "Earnings", "Commissions"]
        payments = workbook["Payments"]
        assert payments["A1"].value == "date"
        assert payments["C2"].value == 100.0

    def test_pdf_is_a_pdf(self):
        dataset = build_dataset([make_payment()], "summary", START, START + timedelta(days=1))
        body = render_export(dataset, "summary", ExportFormat.PDF)
        assert body.startswith(b"%PDF")

    def test_csv_is_utf8(self):
        dataset = build_dataset([make_payment(captain_name="Ante Šimić")], "payments", START, START + timedelta(days=1))
        assert "Ante Šimić".encode("utf-8") in render_export(dataset, "payments", ExportFormat.CSV)


class TestExportService:
    """Export generation and history against a mocked session."""

    @pytest.mark.asyncio
    async def test_range_too_long_is_rejected(self, mock_db):
        with pytest.raises(ValidationError) as exc_info:
            await ExportService(mock_db).generate(
                uuid.uuid4(), ExportFormat.CSV, "payments", START, START + timedelta(days=731),
            )
        assert exc_info.value.detail["code"] == ErrorCodes.EXPORT_INVALID_RANGE
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_generate_records_completed_export(self, mock_db):
        mock_db.execute.return_value = scalars_result([make_payment()])

        export = await ExportService(mock_db).generate(
            uuid.uuid4(), ExportFormat.CSV, "payments", START, START + timedelta(days=7),
        )

        assert export.content_type == "text/csv"
        assert export.record_count == 1
        assert export.filename.endswith(".csv")
        entry = mock_db.add.call_args.args[0]
        assert isinstance(entry, ExportHistory)
        assert entry.status == ExportStatus.COMPLETED
        assert entry.file_size == export.size
        assert entry.expires_at is not None

    @pytest.mark.asyncio
    async def test_generate_failure_is_committed_separately(self, mock_db):
        mock_db.execute.side_effect = RuntimeError("connection lost")
        failure_db = AsyncMock()
        failure_db.add = MagicMock()
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = failure_db

        with pytest.raises(AppException) as exc_info:
            await ExportService(mock_db, session_factory=factory).generate(
                uuid.uuid4(), ExportFormat.PDF, "summary", START, START + timedelta(days=7),
            )

        assert exc_info.value.status_code == 503
        assert exc_info.value.detail["code"] == ErrorCodes.EXPORT_FAILED
        mock_db.add.assert_not_called()
        failure_db.commit.assert_awaited_once()
        entry = failure_db.add.call_args.args[0]
        assert entry.status == ExportStatus.FAILED
        assert entry.error_message == "connection lost"
        assert entry.download_url is None
        assert entry.expires_at is None

    @pytest.mark.asyncio
    async def test_expire_completed_clears_download_url(self, mock_db):
        stale = ExportHistory(
            status=ExportStatus.COMPLETED,
            download_url="https://files.example.com/x.csv",
            expires_at=START,
        )
        mock_db.execute.return_value = scalars_result([stale])

        assert await ExportService(mock_db).expire_completed() == 1
        assert stale.status == ExportStatus.EXPIRED
        assert stale.download_url is None

    @pytest.mark.asyncio
    async def test_delete_history_reports_deleted_items(self, mock_db):
        entry = ExportHistory(
            export_id=uuid.uuid4(),
            filename="payments-export.csv",
            format=ExportFormat.CSV,
            data_type="payments",
            status=ExportStatus.FAILED,
            file_size=0,
            record_count=0,
        )
        mock_db.execute.side_effect = [scalars_result([entry]), MagicMock()]

        result = await ExportService(mock_db).delete_history(uuid.uuid4())

        assert result["deletedCount"] == 1
        assert result["deletedItems"][0]["id"] == str(entry.export_id)
        assert mock_db.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_delete_history_nothing_to_delete(self, mock_db):
        mock_db.execute.return_value = scalars_result([])

        result = await ExportService(mock_db).delete_history(uuid.uuid4(), delete_all=True)

        assert result == {"deletedCount": 0, "deletedItems": []}
        assert mock_db.execute.await_count == 1


class TestReportScheduling:
    def test_next_run_per_frequency(self):
        base = datetime(2025, 1, 31, 8, tzinfo=timezone.utc)
        assert calculate_next_run(ReportFrequency.DAILY, base) == base + timedelta(days=1)
        assert calculate_next_run(ReportFrequency.WEEKLY, base) == base + timedelta(weeks=1)
        assert calculate_next_run(ReportFrequency.MONTHLY, base) == datetime(2025, 2, 28, 8, tzinfo=timezone.utc)
        assert calculate_next_run(ReportFrequency.QUARTERLY, base) == datetime(2025, 4, 30, 8, tzinfo=timezone.utc)

    def test_report_window_ends_at_run_time(self):
        end = datetime(2025, 6, 15, tzinfo=timezone.utc)
        assert report_window(ReportFrequency.MONTHLY, end) == (datetime(2025, 5, 15, tzinfo=timezone.utc), end)


class TestExportAPI:
    @pytest.mark.asyncio
    async def test_export_streams_csv(self, client, login, participant, mock_db):
        login(participant)
        mock_db.execute.return_value = scalars_result([make_payment()])

        response = await client.post(
            "/api/v1/data-export/export",
            json={
                "format": "csv",
                "data_type": "payments",
                "date_range": {"start": "2025-03-01T00:00:00Z", "end": "2025-03-31T00:00:00Z"},
            },
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["x-export-records"] == "1"
        assert 'filename="payments-export-' in response.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_selected_scope_requires_ids(self, client, login, participant):
        login(participant)

        response = await client.post(
            "/api/v1/data-export/export",
            json={
                "format": "csv",
                "data_type": "payments",
                "date_range": {"start": "2025-03-01T00:00:00Z", "end": "2025-03-31T00:00:00Z"},
                "export_scope": "selected",
            },
        )

        assert response.status_code == 400

"""
Export Service
==============

Builds payment, earnings and commission datasets for a user and renders them
as CSV, PDF or XLSX. Every export attempt is recorded in ``export_history``;
a failed attempt is written through its own session so that it survives the
rollback of the request transaction.
"""

import csv
import io
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional
import uuid

from sqlalchemy import String, cast, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import AppException, ErrorCodes, ServiceUnavailableError
from app.db.session import get_session_factory
from app.models.payment import Payment, PaymentStatus
from app.models.report import ExportFormat, ExportHistory, ExportStatus
from app.schemas.common import offset_pagination
from app.schemas.export import ExportFilters, ExportHistoryCreate
from app.services.export_documents import render_pdf, render_xlsx
from app.utils.helpers import add_months, ensure_aware, isoformat_or_none, start_of_day, utc_now
from app.utils.stats import round2
from app.utils.validators import validate_date_range

logger = logging.getLogger(__name__)

MAX_EXPORT_DAYS = 730
MAX_EXPORT_ROWS = 10000
EXPORT_RETENTION_DAYS = 7

# Card processing estimate: 2.9% + 30 cents
STRIPE_FEE_RATE = 0.029
STRIPE_FEE_FIXED_CENTS = 30
DEFAULT_COMMISSION_SHARE = 0.15

PAYMENT_DATA_TYPES = {"payments", "transactions", "detailed", "all"}
EARNINGS_DATA_TYPES = {"earnings", "all"}
COMMISSION_DATA_TYPES = {"commissions", "all"}
SUMMARY_DATA_TYPES = {"summary", "detailed"}

PAYMENT_HEADERS = [
    "id",
    "transactionId",
    "date",
    "time",
    "amount",
    "currency",
    "status",
    "type",
    "captainName",
]
PAYMENT_DETAIL_HEADERS = PAYMENT_HEADERS + [
    "stripePaymentId",
    "captainEmail",
    "fees",
    "netAmount",
    "commissionAmount",
    "commissionRate",
    "createdAt",
    "paidAt",
]
EARNINGS_HEADERS = ["date", "totalRevenue", "commission", "fees", "netEarnings", "transactionCount"]
COMMISSION_HEADERS = ["date", "captainName", "totalAmount", "commissionAmount", "transactionCount"]
SUMMARY_HEADERS = ["totalRecords", "totalAmount", "averageAmount", "totalFees", "totalCommission"]

CONTENT_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.PDF: "application/pdf",
    ExportFormat.EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
FILE_EXTENSIONS = {
    ExportFormat.CSV: "csv",
    ExportFormat.PDF: "pdf",
    ExportFormat.EXCEL: "xlsx",
}


@dataclass
class ExportFile:
    """A rendered export ready to be streamed back."""

    filename: str
    content: bytes
    content_type: str
    record_count: int

    @property
    def size(self) -> int:
        return len(self.content)


def estimate_fees_cents(amount_cents: int) -> float:
    return amount_cents * STRIPE_FEE_RATE + STRIPE_FEE_FIXED_CENTS


def commission_cents(payment: Payment) -> float:
    if payment.commission_amount is not None:
        return payment.commission_amount
    return (payment.amount or 0) * DEFAULT_COMMISSION_SHARE


def _captain(payment: Payment):
    return payment.trip.captain if payment.trip is not None else None


def export_filename(data_type: str, extension: str, now: Optional[datetime] = None) -> str:
    timestamp = (now or utc_now()).strftime("%Y-%m-%d-%H%M%S")
    return f"{data_type}-export-{timestamp}.{extension}"


def build_payment_rows(payments: Iterable[Payment], include_details: bool = False) -> list[dict[str, Any]]:
    rows = []
    for payment in payments:
        amount_cents = payment.amount or 0
        fees_cents = estimate_fees_cents(amount_cents)
        captain = _captain(payment)
        row = {
            "id": str(payment.payment_id),
            "transactionId": payment.stripe_payment_id or str(payment.payment_id),
            "date": payment.created_at.strftime("%Y-%m-%d"),
            "time": payment.created_at.strftime("%H:%M:%S"),
            "amount": amount_cents / 100,
            "currency": payment.currency or "EUR",
            "status": payment.status.value,
            "type": payment.type.value,
            "description": payment.description or "",
            "tripId": str(payment.trip_id) if payment.trip_id else None,
            "captainName": captain.name if captain and captain.name else "N/A",
            "captainEmail": captain.email if captain else "N/A",
            "fees": round2(fees_cents / 100),
            "netAmount": round2((amount_cents - fees_cents) / 100),
            "commissionAmount": round2(commission_cents(payment) / 100),
            "commissionRate": payment.commission_rate or 0,
        }
        if include_details:
            row.update({
                "stripePaymentId": payment.stripe_payment_id,
                "stripeInvoiceId": payment.stripe_invoice_id,
                "subscriptionId": str(payment.subscription_id) if payment.subscription_id else None,
                "metadata": payment.metadata_ or {},
                "createdAt": isoformat_or_none(payment.created_at),
                "updatedAt": isoformat_or_none(payment.updated_at),
                "paidAt": isoformat_or_none(payment.paid_at),
            })
        rows.append(row)
    return rows


def _earnings_periods(start: datetime, end: datetime, group_by: str) -> list[tuple[datetime, datetime, str]]:
    """``[from, to)`` windows labelled the way the rows are keyed."""
    periods = []
    if group_by == "month":
        cursor = start_of_day(start.replace(day=1))
        while cursor <= end:
            following = add_months(cursor, 1)
            periods.append((cursor, following, cursor.strftime("%Y-%m")))
            cursor = following
        return periods

    step = timedelta(days=7 if group_by == "week" else 1)
    cursor = start_of_day(start)
    while cursor <= end:
        periods.append((cursor, cursor + step, cursor.strftime("%Y-%m-%d")))
        cursor += step
    return periods


def build_earnings_rows(
    payments: list[Payment],
    start: datetime,
    end: datetime,
    group_by: str = "day",
) -> list[dict[str, Any]]:
    rows = []
    for lo, hi, label in _earnings_periods(start, end, group_by):
        in_period = [p for p in payments if lo <= p.created_at < hi]
        gross = sum(p.amount or 0 for p in in_period) / 100
        fees = sum(estimate_fees_cents(p.amount or 0) for p in in_period) / 100
        commission = sum(commission_cents(p) for p in in_period) / 100
        rows.append({
            "date": label,
            "totalRevenue": round2(gross),
            "commission": round2(commission),
            "fees": round2(fees),
            "netEarnings": round2(gross - fees),
            "transactionCount": len(in_period),
            "averageTransaction": round2(gross / len(in_period)) if in_period else 0,
        })
    return rows


def build_commission_rows(payments: Iterable[Payment]) -> list[dict[str, Any]]:
    """Commission totals per (captain, day), newest day first."""
    grouped: "OrderedDict[tuple[str, str], dict[str, Any]]" = OrderedDict()
    for payment in payments:
        captain = _captain(payment)
        captain_id = str(payment.trip.captain_id) if payment.trip and payment.trip.captain_id else "unknown"
        day = payment.created_at.strftime("%Y-%m-%d")

        entry = grouped.get((captain_id, day))
        if entry is None:
            entry = grouped[(captain_id, day)] = {
                "date": day,
                "captainId": captain_id,
                "captainName": captain.name if captain and captain.name else "Unknown",
                "totalAmount": 0.0,
                "commissionAmount": 0.0,
                "transactionCount": 0,
                "averageCommissionRate": payment.commission_rate or DEFAULT_COMMISSION_SHARE * 100,
            }
        entry["totalAmount"] += (payment.amount or 0) / 100
        entry["commissionAmount"] += commission_cents(payment) / 100
        entry["transactionCount"] += 1

    rows = list(grouped.values())
    for row in rows:
        row["totalAmount"] = round2(row["totalAmount"])
        row["commissionAmount"] = round2(row["commissionAmount"])
    rows.sort(key=lambda r: r["date"], reverse=True)
    return rows


def build_summary(payments: list[Payment], start: datetime, end: datetime) -> dict[str, Any]:
    total = sum(p.amount or 0 for p in payments) / 100
    return {
        "totalRecords": len(payments),
        "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
        "totalAmount": round2(total),
        "averageAmount": round2(total / len(payments)) if payments else 0,
        "totalFees": round2(sum(estimate_fees_cents(p.amount or 0) for p in payments) / 100),
        "totalCommission": round2(sum(commission_cents(p) for p in payments) / 100),
    }


def build_dataset(
    payments: list[Payment],
    data_type: str,
    start: datetime,
    end: datetime,
    group_by: str = "day",
    include_details: bool = False,
) -> dict[str, Any]:
    """Sections requested by ``data_type``; the summary is always present."""
    dataset: dict[str, Any] = {"summary": build_summary(payments, start, end)}
    if data_type in PAYMENT_DATA_TYPES:
        dataset["payments"] = build_payment_rows(payments, include_details)
    if data_type in EARNINGS_DATA_TYPES:
        dataset["earnings"] = build_earnings_rows(payments, start, end, group_by)
    if data_type in COMMISSION_DATA_TYPES:
        dataset["commissions"] = build_commission_rows(payments)
    return dataset


def rows_to_csv(rows: list[dict[str, Any]], headers: list[str]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=headers, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


def render_csv(dataset: dict[str, Any], data_type: str, include_details: bool = False) -> str:
    sections = []
    if "payments" in dataset:
        headers = PAYMENT_DETAIL_HEADERS if include_details else PAYMENT_HEADERS
        sections.append("TRANSACTION DATA\n" + rows_to_csv(dataset["payments"], headers))
    if "earnings" in dataset:
        sections.append("EARNINGS DATA\n" + rows_to_csv(dataset["earnings"], EARNINGS_HEADERS))
    if "commissions" in dataset:
        sections.append("COMMISSIONS DATA\n" + rows_to_csv(dataset["commissions"], COMMISSION_HEADERS))
    if data_type in SUMMARY_DATA_TYPES:
        sections.append("SUMMARY\n" + rows_to_csv([dataset["summary"]], SUMMARY_HEADERS))
    return "\n\n".join(sections) + "\n"


def render_export(dataset: dict[str, Any], data_type: str, fmt: ExportFormat, include_details: bool = False) -> bytes:
    if fmt == ExportFormat.PDF:
        return render_pdf(dataset, data_type)
    if fmt == ExportFormat.EXCEL:
        return render_xlsx(dataset)
    return render_csv(dataset, data_type, include_details).encode("utf-8")


def history_entry(
    user_id: uuid.UUID,
    filename: str,
    fmt: ExportFormat,
    data_type: str,
    status: ExportStatus = ExportStatus.COMPLETED,
    file_size: int = 0,
    record_count: int = 0,
    download_url: Optional[str] = None,
    error_message: Optional[str] = None,
    parameters: Optional[dict[str, Any]] = None,
) -> ExportHistory:
    failed = status == ExportStatus.FAILED
    return ExportHistory(
        user_id=user_id,
        filename=filename,
        format=fmt,
        data_type=data_type,
        status=status,
        file_size=file_size,
        record_count=record_count,
        download_url=None if failed else download_url,
        error_message=error_message,
        expires_at=None if failed else utc_now() + timedelta(days=EXPORT_RETENTION_DAYS),
        parameters=parameters or {},
    )


def serialize_export(entry: ExportHistory) -> dict[str, Any]:
    return {
        "id": str(entry.export_id),
        "filename": entry.filename,
        "format": entry.format.value,
        "dataType": entry.data_type,
        "status": entry.status.value,
        "fileSize": entry.file_size,
        "recordCount": entry.record_count,
        "downloadUrl": entry.download_url,
        "error": entry.error_message,
        "expiresAt": isoformat_or_none(entry.expires_at),
        "exportedAt": isoformat_or_none(entry.created_at),
    }


class ExportService:
    """Generates exports and manages the user's export history."""

    def __init__(self, db: AsyncSession, session_factory: Optional[async_sessionmaker] = None):
        self.db = db
        self.session_factory = session_factory

    async def fetch_payments(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        filters: Optional[ExportFilters] = None,
        selected_ids: Optional[list[str]] = None,
    ) -> list[Payment]:
        stmt = select(Payment).where(
            Payment.user_id == user_id,
            Payment.created_at >= start_of_day(start),
            Payment.created_at < start_of_day(end) + timedelta(days=1),
        )

        statuses = [PaymentStatus.SUCCEEDED]
        if filters and filters.status:
            statuses = [PaymentStatus(s.upper()) for s in filters.status if s.upper() in PaymentStatus.__members__]
        stmt = stmt.where(Payment.status.in_(statuses))

        if selected_ids:
            stmt = stmt.where(cast(Payment.payment_id, String).in_(selected_ids))

        if filters:
            if filters.min_amount is not None:
                stmt = stmt.where(Payment.amount >= filters.min_amount * 100)
            if filters.max_amount is not None:
                stmt = stmt.where(Payment.amount <= filters.max_amount * 100)
            if filters.search:
                pattern = f"%{filters.search}%"
                stmt = stmt.where(
                    or_(
                        cast(Payment.payment_id, String).ilike(pattern),
                        Payment.stripe_payment_id.ilike(pattern),
                    )
                )

        result = await self.db.execute(
            stmt.order_by(Payment.created_at.desc()).limit(MAX_EXPORT_ROWS)
        )
        return list(result.scalars().all())

    async def generate(
        self,
        user_id: uuid.UUID,
        fmt: ExportFormat,
        data_type: str,
        start: datetime,
        end: datetime,
        group_by: str = "day",
        include_details: bool = False,
        filters: Optional[ExportFilters] = None,
        selected_ids: Optional[list[str]] = None,
    ) -> ExportFile:
        """
        Render an export and record it in the history.

        A failure is committed as a failed history entry in a separate session
        and re-raised as a 503 ``EXPORT_FAILED`` unless it is already an
        application error.
        """
        start, end = ensure_aware(start), ensure_aware(end)
        validate_date_range(
            start,
            end,
            MAX_EXPORT_DAYS,
            field_name="date_range",
            code=ErrorCodes.EXPORT_INVALID_RANGE,
        )

        filename = export_filename(data_type, FILE_EXTENSIONS[fmt])
        parameters = {
            "dataType": data_type,
            "groupBy": group_by,
            "includeDetails": include_details,
            "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
            "filters": filters.model_dump(exclude_none=True) if filters else None,
            "selectedTransactionIds": selected_ids,
        }

        try:
            payments = await self.fetch_payments(user_id, start, end, filters, selected_ids)
            dataset = build_dataset(payments, data_type, start, end, group_by, include_details)
            body = render_export(dataset, data_type, fmt, include_details)
        except AppException:
            raise
        except Exception as e:
            logger.error("Export %s failed for user %s: %s", filename, user_id, e)
            await self.record_failure(user_id, filename, fmt, data_type, str(e), parameters)
            raise ServiceUnavailableError(
                code=ErrorCodes.EXPORT_FAILED,
                message="Export failed",
            ) from e

        export = ExportFile(
            filename=filename,
            content=body,
            content_type=CONTENT_TYPES[fmt],
            record_count=len(payments),
        )
        await self.record(
            user_id,
            filename,
            fmt,
            data_type,
            status=ExportStatus.COMPLETED,
            file_size=export.size,
            record_count=export.record_count,
            parameters=parameters,
        )
        logger.info(
            "Export %s generated for user %s (%d records, %d bytes)",
            filename, user_id, export.record_count, export.size,
        )
        return export

    async def record(
        self,
        user_id: uuid.UUID,
        filename: str,
        fmt: ExportFormat,
        data_type: str,
        status: ExportStatus = ExportStatus.COMPLETED,
        file_size: int = 0,
        record_count: int = 0,
        download_url: Optional[str] = None,
        error_message: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> ExportHistory:
        entry = history_entry(
            user_id, filename, fmt, data_type, status, file_size, record_count,
            download_url, error_message, parameters,
        )
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)
        return entry

    async def record_failure(
        self,
        user_id: uuid.UUID,
        filename: str,
        fmt: ExportFormat,
        data_type: str,
        error_message: str,
        parameters: dict[str, Any],
    ) -> None:
        """Commit a FAILED entry outside the request transaction."""
        entry = history_entry(
            user_id, filename, fmt, data_type, ExportStatus.FAILED,
            error_message=error_message, parameters=parameters,
        )
        factory = self.session_factory or get_session_factory()
        try:
            async with factory() as session:
                session.add(entry)
                await session.commit()
        except Exception as e:
            logger.error("Could not record failed export %s: %s", filename, e)

    async def add_history(self, user_id: uuid.UUID, data: ExportHistoryCreate) -> ExportHistory:
        return await self.record(
            user_id,
            export_filename(data.data_type, data.format.value),
            data.format,
            data.data_type,
            status=data.status,
            file_size=data.file_size,
            record_count=data.record_count,
            download_url=data.download_url,
            error_message=data.error_message,
            parameters=data.parameters,
        )

    async def expire_completed(self, user_id: Optional[uuid.UUID] = None) -> int:
        """Mark completed exports past their expiry as expired. Returns the count."""
        stmt = select(ExportHistory).where(
            ExportHistory.status == ExportStatus.COMPLETED,
            ExportHistory.expires_at.is_not(None),
            ExportHistory.expires_at < utc_now(),
        )
        if user_id is not None:
            stmt = stmt.where(ExportHistory.user_id == user_id)

        result = await self.db.execute(stmt)
        expired = list(result.scalars().all())
        for entry in expired:
            entry.status = ExportStatus.EXPIRED
            entry.download_url = None
        if expired:
            await self.db.flush()
        return len(expired)

    async def get_history(
        self,
        user_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
        status: Optional[ExportStatus] = None,
        fmt: Optional[ExportFormat] = None,
    ) -> dict[str, Any]:
        await self.expire_completed(user_id)

        stmt = select(ExportHistory).where(ExportHistory.user_id == user_id)
        if status:
            stmt = stmt.where(ExportHistory.status == status)
        if fmt:
            stmt = stmt.where(ExportHistory.format == fmt)
        result = await self.db.execute(stmt.order_by(ExportHistory.created_at.desc()))
        entries = list(result.scalars().all())

        summary: dict[str, Any] = {"total": len(entries)}
        for value in ExportStatus:
            summary[value.value] = sum(1 for e in entries if e.status == value)
        summary["totalSize"] = sum(e.file_size for e in entries)
        summary["totalRecords"] = sum(e.record_count for e in entries)

        return {
            "exports": [serialize_export(e) for e in entries[offset:offset + limit]],
            "summary": summary,
            "pagination": offset_pagination(
                len(entries), limit, offset, len(entries[offset:offset + limit])
            ),
        }

    async def delete_history(
        self,
        user_id: uuid.UUID,
        delete_all: bool = False,
        older_than: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Delete history entries.

        With neither ``delete_all`` nor ``older_than``, expired and failed
        entries are removed.
        """
        condition = ExportHistory.user_id == user_id
        stmt = select(ExportHistory).where(condition)
        if not delete_all:
            if older_than is not None:
                stmt = stmt.where(ExportHistory.created_at < older_than)
            else:
                stmt = stmt.where(
                    ExportHistory.status.in_([ExportStatus.EXPIRED, ExportStatus.FAILED])
                )

        result = await self.db.execute(stmt)
        entries = list(result.scalars().all())
        deleted = [serialize_export(e) for e in entries]

        if entries:
            await self.db.execute(
                delete(ExportHistory).where(
                    ExportHistory.export_id.in_([e.export_id for e in entries])
                )
            )
            await self.db.flush()

        logger.info("Deleted %d export history entries for user %s", len(entries), user_id)
        return {"deletedCount": len(deleted), "deletedItems": deleted}

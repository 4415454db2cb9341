"""
Helper Functions
================

Date and time-window helpers used by analytics, exports and scheduling.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

# Bucket widths in days for analytics time series
BUCKET_DAYS = {
    "day": 1,
    "week": 7,
    "month": 30,
    "quarter": 90,
}


def utc_now() -> datetime:
    """Get current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(date_str: str) -> datetime:
    """Parse an ISO 8601 date or datetime string (``Z`` allowed) as UTC-aware."""
    return ensure_aware(datetime.fromisoformat(date_str.replace("Z", "+00:00")))


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def add_months(dt: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1

    next_month = datetime(year + (month // 12), month % 12 + 1, 1, tzinfo=dt.tzinfo)
    last_day = (next_month - timedelta(days=1)).day
    return dt.replace(year=year, month=month, day=min(dt.day, last_day))


def period_start(period: str, end: datetime) -> datetime:
    """
    Start of a reporting period ending at ``end``.

    week is a rolling 7 days; month, quarter and year are calendar-aligned.
    """
    if period == "week":
        return end - timedelta(days=7)
    if period == "quarter":
        quarter_month = 3 * ((end.month - 1) // 3) + 1
        return start_of_day(end.replace(month=quarter_month, day=1))
    if period == "year":
        return start_of_day(end.replace(month=1, day=1))
    return start_of_day(end.replace(day=1))


def iter_buckets(
    start: datetime,
    end: datetime,
    days: int,
) -> list[tuple[datetime, datetime]]:
    """Consecutive ``[from, to)`` windows of ``days`` days covering start..end."""
    buckets = []
    step = timedelta(days=days)
    cursor = start
    while cursor < end:
        buckets.append((cursor, min(cursor + step, end)))
        cursor += step
    return buckets


def isoformat_or_none(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None

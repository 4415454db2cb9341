"""
Earnings Analytics Service
==========================

Earnings over daily, weekly or monthly intervals with year-over-year
monthly comparisons, revenue streams, summary and short-term trends.

All values are reported in major units rounded to 2 decimals.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.payment import Payment, PaymentStatus
from app.models.subscription import Subscription
from app.utils.helpers import add_months, iter_buckets, start_of_day
from app.utils.stats import percent_growth, round2

logger = logging.getLogger(__name__)

GRANULARITY_DAYS = {"daily": 1, "weekly": 7}
REFUND_STATUSES = (PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED)
OTHER_REVENUE_SHARE = 0.05


def build_intervals(
    start: datetime,
    end: datetime,
    granularity: str,
) -> list[tuple[datetime, datetime]]:
    """Daily and weekly intervals are fixed width; monthly follow the calendar."""
    if granularity != "monthly":
        return iter_buckets(start, end, GRANULARITY_DAYS.get(granularity, 1))

    intervals = []
    cursor = start
    while cursor < end:
        month_start = start_of_day(cursor.replace(day=1))
        next_cursor = add_months(month_start, 1)
        intervals.append((cursor, min(next_cursor, end)))
        cursor = next_cursor
    return intervals


def summarize_interval(
    payments: list[Payment],
    subscriptions: list[Subscription],
    interval_start: datetime,
    interval_end: datetime,
    include_refunds: bool = True,
) -> dict[str, Any]:
    in_range = [p for p in payments if interval_start <= p.created_at < interval_end]
    succeeded = [p for p in in_range if p.status == PaymentStatus.SUCCEEDED]

    earnings = sum(p.amount for p in succeeded) / 100
    refunds = (
        sum(p.amount for p in in_range if p.status in REFUND_STATUSES) / 100
        if include_refunds else 0.0
    )
    new_subscriptions = sum(
        1 for s in subscriptions if interval_start <= s.created_at < interval_end
    )
    commission = earnings * settings.PLATFORM_COMMISSION_RATE
    bookings = len(succeeded)

    return {
        "date": interval_start.date().isoformat(),
        "totalEarnings": round2(earnings),
        "directBookings": round2(earnings - commission),
        "commission": round2(commission),
        "recurringRevenue": round2(settings.CAPTAIN_SUBSCRIPTION_PRICE * new_subscriptions),
        "refunds": round2(refunds),
        "netEarnings": round2(earnings - refunds),
        "bookingsCount": bookings,
        "averageBookingValue": round2(earnings / bookings) if bookings else 0.0,
    }


def build_monthly_comparisons(
    payments: list[Payment],
    year: int,
) -> list[dict[str, Any]]:
    """Each month of ``year`` against the same month of ``year - 1``."""
    totals: dict[tuple[int, int], float] = {}
    for p in payments:
        if p.status != PaymentStatus.SUCCEEDED:
            continue
        key = (p.created_at.year, p.created_at.month)
        totals[key] = totals.get(key, 0.0) + p.amount / 100

    comparisons = []
    for month in range(1, 13):
        current = totals.get((year, month), 0.0)
        previous = totals.get((year - 1, month), 0.0)
        comparisons.append({
            "month": f"{year}-{month:02d}",
            "currentYear": round2(current),
            "previousYear": round2(previous),
            "growth": round2(current - previous),
            "growthRate": round2(percent_growth(current, previous)),
        })
    return comparisons


def build_revenue_streams(intervals: list[dict[str, Any]]) -> list[dict[str, Any]]:
    direct = sum(i["directBookings"] for i in intervals)
    commission = sum(i["commission"] for i in intervals)
    subscriptions = sum(i["recurringRevenue"] for i in intervals)
    other = sum(i["totalEarnings"] for i in intervals) * OTHER_REVENUE_SHARE

    streams = [
        ("Direct Bookings", direct),
        ("Platform Commission", commission),
        ("Subscriptions", subscriptions),
        ("Other", other),
    ]
    total = sum(amount for _, amount in streams)
    return [
        {
            "source": name,
            "amount": round2(amount),
            "percentage": round2(amount / total * 100) if total else 0.0,
        }
        for name, amount in streams
    ]


def build_summary(intervals: list[dict[str, Any]], days: int) -> dict[str, Any]:
    total_earnings = sum(i["totalEarnings"] for i in intervals)
    recurring = sum(i["recurringRevenue"] for i in intervals)
    bookings = sum(i["bookingsCount"] for i in intervals)

    highest = max(intervals, key=lambda i: i["totalEarnings"], default=None)
    lowest = min(intervals, key=lambda i: i["totalEarnings"], default=None)

    half = len(intervals) // 2
    first_half = sum(i["totalEarnings"] for i in intervals[:half])
    second_half = sum(i["totalEarnings"] for i in intervals[half:])

    return {
        "totalRevenue": round2(total_earnings + recurring),
        "totalEarnings": round2(total_earnings),
        "totalCommissions": round2(sum(i["commission"] for i in intervals)),
        "avgDailyEarnings": round2(total_earnings / max(1, days)),
        "highestEarningDay": (
            {"date": highest["date"], "amount": highest["totalEarnings"]} if highest else None
        ),
        "lowestEarningDay": (
            {"date": lowest["date"], "amount": lowest["totalEarnings"]} if lowest else None
        ),
        "growthRate": round2(percent_growth(second_half, first_half)),
        "totalBookings": bookings,
        "avgBookingValue": round2(total_earnings / bookings) if bookings else 0.0,
    }


def build_trends(intervals: list[dict[str, Any]]) -> dict[str, Any]:
    """Last 7 intervals against the 7 before them."""
    recent = sum(i["totalEarnings"] for i in intervals[-7:])
    previous = sum(i["totalEarnings"] for i in intervals[-14:-7])
    change = percent_growth(recent, previous)

    if abs(change) < 5:
        direction = "stable"
    elif change > 0:
        direction = "up"
    else:
        direction = "down"

    return {
        "recentPeriod": round2(recent),
        "previousPeriod": round2(previous),
        "change": round2(change),
        "direction": direction,
    }


class EarningsAnalyticsService:
    """Earnings dashboard for a captain (or any user with payments)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _payments(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> list[Payment]:
        result = await self.db.execute(
            select(Payment).where(
                Payment.user_id == user_id,
                Payment.created_at >= start,
                Payment.created_at < end,
            )
        )
        return list(result.scalars().all())

    async def _subscriptions(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> list[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(
                Subscription.user_id == user_id,
                Subscription.created_at >= start,
                Subscription.created_at < end,
            )
        )
        return list(result.scalars().all())

    async def get_earnings(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        granularity: str = "daily",
        include_refunds: bool = True,
    ) -> dict[str, Any]:
        payments = await self._payments(user_id, start, end)
        subscriptions = await self._subscriptions(user_id, start, end)

        intervals = [
            summarize_interval(payments, subscriptions, lo, hi, include_refunds)
            for lo, hi in build_intervals(start, end, granularity)
        ]

        year = end.year
        year_payments = await self._payments(
            user_id,
            datetime(year - 1, 1, 1, tzinfo=timezone.utc),
            datetime(year + 1, 1, 1, tzinfo=timezone.utc),
        )

        days = max(1, (end - start) // timedelta(days=1))

        logger.info(
            "Earnings analytics for %s: %d intervals (%s)",
            user_id,
            len(intervals),
            granularity,
        )

        return {
            "period": {
                "start": start.isoformat(),
                "end": end.isoformat(),
                "granularity": granularity,
            },
            "earnings": intervals,
            "monthlyComparisons": build_monthly_comparisons(year_payments, year),
            "revenueStreams": build_revenue_streams(intervals),
            "summary": build_summary(intervals, days),
            "trends": build_trends(intervals),
        }

"""
Payment Analytics Service
=========================

Dashboard aggregation over a user's payments: overview, bucketed time
series, breakdowns, commission analysis, revenue projections and trends.

Amounts stay in minor units (cents) throughout.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment, PaymentStatus
from app.services.payment_service import serialize_payment
from app.utils.helpers import BUCKET_DAYS, iter_buckets
from app.utils.stats import clamp, linear_regression, mean, percent_growth, round2

logger = logging.getLogger(__name__)


def _commission(payment: Payment) -> int:
    return payment.commission_amount or 0


def _succeeded(payments: list[Payment]) -> list[Payment]:
    return [p for p in payments if p.status == PaymentStatus.SUCCEEDED]


def build_time_series(
    payments: list[Payment],
    start: datetime,
    end: datetime,
    group_by: str,
) -> list[dict[str, Any]]:
    """One entry per ``group_by`` bucket from ``start``; empty buckets included."""
    series = []
    for bucket_start, bucket_end in iter_buckets(start, end, BUCKET_DAYS.get(group_by, 1)):
        in_bucket = [p for p in payments if bucket_start <= p.created_at < bucket_end]
        ok = _succeeded(in_bucket)
        revenue = sum(p.amount for p in ok)
        commissions = sum(_commission(p) for p in ok)
        series.append({
            "date": bucket_start.date().isoformat(),
            "revenue": revenue,
            "commissions": commissions,
            "netRevenue": revenue - commissions,
            "paymentCount": len(in_bucket),
            "successfulPayments": len(ok),
        })
    return series


def build_projections(
    time_series: list[dict[str, Any]],
    failure_rate: float,
) -> Optional[dict[str, Any]]:
    """Linear projection of the next bucket; None with fewer than 3 buckets."""
    if len(time_series) < 3:
        return None

    revenues = [point["revenue"] for point in time_series]
    slope, intercept = linear_regression(revenues)
    n = len(revenues)

    if slope > 0:
        trend = "increasing"
    elif slope < 0:
        trend = "decreasing"
    else:
        trend = "stable"

    recommendations = []
    if slope < -100:
        recommendations.append(
            "Revenue is declining; review pricing and run retention campaigns for past participants"
        )
    if slope > 100:
        recommendations.append(
            "Revenue is growing; consider adding trip slots or captains to scale capacity"
        )
    if failure_rate > 0.1:
        recommendations.append(
            "More than 10% of payments fail; review the checkout and payment method flow"
        )

    return {
        "nextPeriodRevenue": round2(max(0.0, slope * n + intercept)),
        "trend": trend,
        "slope": round2(slope),
        "confidence": round2(clamp(100 - abs(slope) * 10, 0, 100)),
        "recommendations": recommendations,
    }


def build_commission_analysis(payments: list[Payment]) -> dict[str, Any]:
    ok = _succeeded(payments)
    rates = [p.commission_rate for p in payments if p.commission_rate is not None]

    by_tier: dict[str, int] = defaultdict(int)
    trend: dict[str, int] = defaultdict(int)
    for p in ok:
        tier = p.subscription.tier.value if p.subscription else "FREE"
        by_tier[tier] += _commission(p)
        trend[p.created_at.date().isoformat()] += _commission(p)

    return {
        "totalCommissions": sum(_commission(p) for p in ok),
        "averageCommissionRate": round2(mean(rates)),
        "commissionsByTier": dict(by_tier),
        "commissionTrend": [
            {"date": day, "commissions": amount}
            for day, amount in sorted(trend.items())
        ],
    }


def build_breakdowns(payments: list[Payment]) -> dict[str, Any]:
    by_type: dict[str, dict[str, int]] = defaultdict(
        lambda: {"count": 0, "revenue": 0, "commissions": 0}
    )
    by_status: dict[str, int] = defaultdict(int)

    for p in payments:
        entry = by_type[p.type.value]
        entry["count"] += 1
        if p.status == PaymentStatus.SUCCEEDED:
            entry["revenue"] += p.amount
            entry["commissions"] += _commission(p)
        by_status[p.status.value] += 1

    return {"byType": dict(by_type), "byStatus": dict(by_status)}


class PaymentAnalyticsService:
    """Payment dashboard for a single user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _payments(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> list[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.user_id == user_id,
                Payment.created_at >= start,
                Payment.created_at <= end,
            )
            .order_by(Payment.created_at)
        )
        return list(result.scalars().all())

    async def get_analytics(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        group_by: str = "day",
        include_projections: bool = True,
        include_commissions: bool = True,
        include_breakdowns: bool = True,
    ) -> dict[str, Any]:
        payments = await self._payments(user_id, start, end)
        previous = await self._payments(user_id, start - (end - start), start)

        ok = _succeeded(payments)
        total_revenue = sum(p.amount for p in ok)
        total_commissions = sum(_commission(p) for p in ok)
        previous_revenue = sum(p.amount for p in _succeeded(previous))
        failed = sum(1 for p in payments if p.status == PaymentStatus.FAILED)

        overview = {
            "totalRevenue": total_revenue,
            "totalCommissions": total_commissions,
            "netRevenue": total_revenue - total_commissions,
            "totalPayments": len(payments),
            "successfulPayments": len(ok),
            "averagePaymentAmount": round2(mean([p.amount for p in ok])),
            "revenueGrowth": round2(percent_growth(total_revenue, previous_revenue)),
            "conversionRate": round2(len(ok) / len(payments) * 100) if payments else 0.0,
        }

        time_series = build_time_series(payments, start, end, group_by)

        days = max(1, (end - start).days)
        peak = max(time_series, key=lambda point: point["revenue"], default=None)

        data: dict[str, Any] = {
            "period": {
                "start": start.isoformat(),
                "end": end.isoformat(),
                "groupBy": group_by,
            },
            "overview": overview,
            "timeSeries": time_series,
            "recentPayments": [
                serialize_payment(p)
                for p in sorted(payments, key=lambda p: p.created_at, reverse=True)[:10]
            ],
            "trends": {
                "dailyAverage": round2(total_revenue / days),
                "peakDay": (
                    {"date": peak["date"], "revenue": peak["revenue"]}
                    if peak and peak["revenue"] > 0 else None
                ),
            },
        }

        if include_breakdowns:
            data["breakdowns"] = build_breakdowns(payments)
        if include_commissions:
            data["commissionAnalysis"] = build_commission_analysis(payments)
        if include_projections:
            failure_rate = failed / len(payments) if payments else 0.0
            data["projections"] = build_projections(time_series, failure_rate)

        logger.info(
            "Payment analytics for %s: %d payments, revenue %d",
            user_id,
            len(payments),
            total_revenue,
        )
        return data

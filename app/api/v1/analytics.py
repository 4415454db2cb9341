"""
Analytics API Endpoints
=======================

Payment, earnings and review dashboards. Results are cached in Redis for
five minutes per user and parameter set.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional
import uuid

from fastapi import APIRouter, Depends, Query

from app.core.errors import ValidationError
from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import CurrentUser, DBSession, resolve_target_user
from app.schemas.common import BaseResponse, ErrorResponse
from app.services.cache import CacheKeys, CacheManager
from app.services.earnings_analytics import EarningsAnalyticsService
from app.services.payment_analytics import PaymentAnalyticsService
from app.services.review_analytics import ReviewAnalyticsService
from app.utils.helpers import parse_date, period_start, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("read"))])

AnalyticsResponse = BaseResponse[dict[str, Any]]

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid query parameters"},
    403: {"model": ErrorResponse, "description": "Analytics of another user requested"},
}

ALL_TIME_START = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _parse_optional_date(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError(message=f"Invalid date: {value}", field=field)


def resolve_range(
    period: str,
    start_date: Optional[str],
    end_date: Optional[str],
) -> tuple[datetime, datetime]:
    end = _parse_optional_date(end_date, "endDate") or utc_now()
    start = _parse_optional_date(start_date, "startDate")
    if start is None:
        start = ALL_TIME_START if period == "all" else period_start(period, end)
    if start >= end:
        raise ValidationError(message="startDate must be before endDate", field="startDate")
    return start, end


async def _cached(kind: str, user_id: uuid.UUID, params: dict[str, Any], build) -> dict[str, Any]:
    key = CacheKeys.analytics(kind, str(user_id), params)
    cached = await CacheManager.get(key)
    if cached is not None:
        logger.debug("Analytics cache hit: %s", key)
        return cached

    data = await build()
    await CacheManager.set(key, data, ttl=CacheManager.TTL_SHORT)
    return data


@router.get("/payments", response_model=AnalyticsResponse, responses=_ERRORS)
async def get_payment_analytics(
    current_user: CurrentUser,
    db: DBSession,
    period: Literal["week", "month", "quarter", "year"] = "month",
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user_id: Optional[str] = Query(None, alias="userId"),
    group_by: Literal["day", "week", "month", "quarter"] = Query("day", alias="groupBy"),
    include_projections: bool = Query(True, alias="includeProjections"),
    include_commissions: bool = Query(True, alias="includeCommissions"),
    include_breakdowns: bool = Query(True, alias="includeBreakdowns"),
):
    """Revenue overview, time series, breakdowns, commissions and projections."""
    target = resolve_target_user(current_user, user_id)
    start, end = resolve_range(period, start_date, end_date)

    params = {
        "period": period,
        "start": start.isoformat() if start_date else None,
        "end": end.isoformat() if end_date else None,
        "groupBy": group_by,
        "projections": include_projections,
        "commissions": include_commissions,
        "breakdowns": include_breakdowns,
    }

    async def build():
        return await PaymentAnalyticsService(db).get_analytics(
            target,
            start,
            end,
            group_by=group_by,
            include_projections=include_projections,
            include_commissions=include_commissions,
            include_breakdowns=include_breakdowns,
        )

    data = await _cached("payments", target, params, build)
    return AnalyticsResponse(success=True, data=data)


@router.get("/earnings", response_model=AnalyticsResponse, responses=_ERRORS)
async def get_earnings_analytics(
    current_user: CurrentUser,
    db: DBSession,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    granularity: Literal["daily", "weekly", "monthly"] = "daily",
    include_refunds: bool = Query(True, alias="includeRefunds"),
    user_id: Optional[str] = Query(None, alias="userId"),
):
    """Earnings per interval with year-over-year comparisons."""
    target = resolve_target_user(current_user, user_id)

    end = _parse_optional_date(end_date, "endDate") or utc_now()
    start = _parse_optional_date(start_date, "startDate") or end - timedelta(days=90)
    if start >= end:
        raise ValidationError(message="startDate must be before endDate", field="startDate")

    params = {
        "start": start.isoformat() if start_date else None,
        "end": end.isoformat() if end_date else None,
        "granularity": granularity,
        "refunds": include_refunds,
    }

    async def build():
        return await EarningsAnalyticsService(db).get_earnings(
            target,
            start,
            end,
            granularity=granularity,
            include_refunds=include_refunds,
        )

    data = await _cached("earnings", target, params, build)
    return AnalyticsResponse(success=True, data=data)


@router.get("/reviews", response_model=AnalyticsResponse, responses=_ERRORS)
async def get_review_analytics(
    current_user: CurrentUser,
    db: DBSession,
    period: Literal["week", "month", "quarter", "year", "all"] = "month",
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    group_by: Literal["day", "week", "month"] = Query("month", alias="groupBy"),
    include_sentiment: bool = Query(True, alias="includeSentiment"),
    include_impact: bool = Query(True, alias="includeImpact"),
    user_id: Optional[str] = Query(None, alias="userId"),
):
    """Ratings, sentiment, trends, quality and booking impact of received reviews."""
    target = resolve_target_user(current_user, user_id)
    start, end = resolve_range(period, start_date, end_date)

    params = {
        "period": period,
        "start": start.isoformat() if start_date else None,
        "end": end.isoformat() if end_date else None,
        "groupBy": group_by,
        "sentiment": include_sentiment,
        "impact": include_impact,
        "compare": user_id is not None,
    }

    async def build():
        return await ReviewAnalyticsService(db).get_analytics(
            target,
            start,
            end,
            group_by=group_by,
            include_sentiment=include_sentiment,
            include_impact=include_impact,
            include_comparative=user_id is not None,
        )

    data = await _cached("reviews", target, params, build)
    return AnalyticsResponse(success=True, data=data)

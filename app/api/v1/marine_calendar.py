"""
Marine Calendar API Endpoints
=============================

Lunar phases and combined fishing conditions.
"""

from datetime import timedelta
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query

from app.core.errors import ValidationError
from app.core.rate_limit import create_rate_limit_dependency
from app.schemas.common import BaseResponse, ErrorResponse
from app.services.lunar_service import (
    best_fishing_hours,
    calculate_lunar_influence,
    calculate_lunar_phase,
    overall_fishing_score,
    phases_for_period,
    upcoming_events,
)
from app.services.weather_service import WeatherService, get_weather_service
from app.utils.helpers import parse_date, start_of_day, utc_now

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("read"))])

MarineResponse = BaseResponse[dict[str, Any]]

MAX_LUNAR_RANGE_DAYS = 90


def _parse(value: str, field: str):
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError(message=f"Invalid date: {value}", field=field)


@router.get(
    "/lunar",
    response_model=MarineResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid or too long range"}},
)
async def get_lunar_calendar(
    start: Optional[str] = None,
    end: Optional[str] = None,
):
    """Daily lunar phases with their fishing influence (at most 90 days)."""
    start_dt = start_of_day(_parse(start, "start")) if start else start_of_day(utc_now())
    end_dt = _parse(end, "end") if end else start_dt + timedelta(days=29)

    if end_dt < start_dt:
        raise ValidationError(message="end must not be before start", field="end")
    if end_dt - start_dt > timedelta(days=MAX_LUNAR_RANGE_DAYS):
        raise ValidationError(
            message=f"Range cannot exceed {MAX_LUNAR_RANGE_DAYS} days",
            field="end",
        )

    phases = [
        {**phase, "influence": calculate_lunar_influence(phase)}
        for phase in phases_for_period(start_dt, end_dt)
    ]
    return MarineResponse(
        success=True,
        data={
            "period": {"start": start_dt.isoformat(), "end": end_dt.isoformat()},
            "phases": phases,
        },
    )


@router.get(
    "/fishing-conditions",
    response_model=MarineResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_fishing_conditions(
    weather_service: Annotated[WeatherService, Depends(get_weather_service)],
    date: Optional[str] = None,
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
):
    """
    Fishing outlook for a day.

    Weather is only fetched when both coordinates are given; an unavailable
    upstream leaves it null and scores on the moon alone.
    """
    day = _parse(date, "date") if date else utc_now()

    phase = calculate_lunar_phase(day)
    influence = calculate_lunar_influence(phase)

    conditions = None
    if latitude is not None and longitude is not None:
        conditions = await weather_service.get_conditions(latitude, longitude)

    wind_speed = conditions["weather"].get("windSpeed") if conditions else None
    marine = conditions.get("marine") if conditions else None
    wave_height = marine.get("waveHeight") if marine else None

    return MarineResponse(
        success=True,
        data={
            "date": day.isoformat(),
            "lunarPhase": phase,
            "lunarInfluence": influence,
            "bestHours": best_fishing_hours(day, phase),
            "upcomingEvents": upcoming_events(day),
            "weather": conditions,
            "overallScore": overall_fishing_score(influence["strength"], wind_speed, wave_height),
        },
    )

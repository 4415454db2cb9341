"""
Weather API Endpoints
=====================
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from app.core.errors import ErrorCodes, ServiceUnavailableError
from app.core.rate_limit import create_rate_limit_dependency
from app.schemas.common import BaseResponse, ErrorResponse
from app.services.weather_service import WeatherService, get_weather_service

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("read"))])


@router.get(
    "/combined",
    response_model=BaseResponse[dict[str, Any]],
    responses={503: {"model": ErrorResponse, "description": "Weather provider unavailable"}},
)
async def get_combined_weather(
    weather_service: Annotated[WeatherService, Depends(get_weather_service)],
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
):
    """Current weather plus the marine summary for a coordinate."""
    conditions = await weather_service.get_conditions(latitude, longitude)
    if conditions is None:
        raise ServiceUnavailableError(
            code=ErrorCodes.WEATHER_UNAVAILABLE,
            message="Weather data is currently unavailable",
        )
    return BaseResponse[dict[str, Any]](success=True, data=conditions)

"""
Weather Service
===============

Current weather and sea state from the Open-Meteo forecast and marine APIs.

Both endpoints are free and keyless. Combined conditions are cached in Redis
for 15 minutes per rounded coordinate pair.
"""

import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.services.cache import CacheKeys, CacheManager
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

FORECAST_FIELDS = [
    "temperature_2m",
    "relative_humidity_2m",
    "pressure_msl",
    "wind_speed_10m",
    "wind_direction_10m",
    "weather_code",
]
MARINE_FIELDS = [
    "wave_height",
    "wave_direction",
    "wave_period",
    "sea_surface_temperature",
]

# WMO weather interpretation codes (subset)
WEATHER_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Drizzle",
    55: "Dense drizzle",
    61: "Light rain",
    63: "Rain",
    65: "Heavy rain",
    71: "Light snow",
    73: "Snow",
    75: "Heavy snow",
    80: "Rain showers",
    81: "Heavy rain showers",
    82: "Violent rain showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
    99: "Thunderstorm with heavy hail",
}


def describe_weather_code(code: Optional[int]) -> str:
    if code is None:
        return "Unknown"
    return WEATHER_CODES.get(code, "Unknown")


def parse_current_weather(body: dict[str, Any]) -> dict[str, Any]:
    current = body.get("current") or {}
    code = current.get("weather_code")
    return {
        "temperature": current.get("temperature_2m"),
        "humidity": current.get("relative_humidity_2m"),
        "pressure": current.get("pressure_msl"),
        "windSpeed": current.get("wind_speed_10m"),
        "windDirection": current.get("wind_direction_10m"),
        "weatherCode": code,
        "description": describe_weather_code(code),
        "observedAt": current.get("time"),
    }


def parse_marine(body: dict[str, Any]) -> dict[str, Any]:
    current = body.get("current") or {}
    return {
        "waveHeight": current.get("wave_height"),
        "waveDirection": current.get("wave_direction"),
        "wavePeriod": current.get("wave_period"),
        "seaTemperature": current.get("sea_surface_temperature"),
    }


def sea_state(wave_height: Optional[float]) -> str:
    if wave_height is None:
        return "unknown"
    if wave_height < 0.5:
        return "calm"
    if wave_height < 1.25:
        return "slight"
    if wave_height < 2.5:
        return "moderate"
    return "rough"


class WeatherService:
    """Open-Meteo client."""

    TIMEOUT_SECONDS = 10.0

    def __init__(
        self,
        weather_base_url: Optional[str] = None,
        marine_base_url: Optional[str] = None,
        timeout: float = TIMEOUT_SECONDS,
    ):
        self.weather_base_url = (weather_base_url or settings.WEATHER_API_BASE_URL).rstrip("/")
        self.marine_base_url = (marine_base_url or settings.MARINE_API_BASE_URL).rstrip("/")
        self.timeout = timeout

    async def _get_json(self, url: str, params: dict[str, Any]) -> Optional[dict[str, Any]]:
        """GET ``url``; any transport, status or decoding failure yields None."""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as e:
                logger.warning("Open-Meteo request failed: %s: %s", url, e)
                return None
            except ValueError:
                logger.warning("Open-Meteo returned a non-JSON body: %s", url)
                return None

    async def get_current_weather(self, latitude: float, longitude: float) -> Optional[dict[str, Any]]:
        body = await self._get_json(
            f"{self.weather_base_url}/forecast",
            {
                "latitude": latitude,
                "longitude": longitude,
                "current": ",".join(FORECAST_FIELDS),
                "wind_speed_unit": "ms",
                "timezone": "UTC",
            },
        )
        return parse_current_weather(body) if body else None

    async def get_marine(self, latitude: float, longitude: float) -> Optional[dict[str, Any]]:
        body = await self._get_json(
            f"{self.marine_base_url}/marine",
            {
                "latitude": latitude,
                "longitude": longitude,
                "current": ",".join(MARINE_FIELDS),
                "timezone": "UTC",
            },
        )
        return parse_marine(body) if body else None

    async def get_conditions(self, latitude: float, longitude: float) -> Optional[dict[str, Any]]:
        """
        Current weather merged with the marine summary.

        Returns None when the forecast endpoint is unavailable. Marine data is
        optional (inland coordinates have none) and is null in that case.
        """
        key = CacheKeys.weather(latitude, longitude)
        cached = await CacheManager.get(key)
        if cached is not None:
            return cached

        weather = await self.get_current_weather(latitude, longitude)
        if weather is None:
            return None

        marine = await self.get_marine(latitude, longitude)
        conditions = {
            "location": {"latitude": latitude, "longitude": longitude},
            "weather": weather,
            "marine": (
                {**marine, "seaState": sea_state(marine.get("waveHeight"))}
                if marine
                else None
            ),
            "sources": {
                "weather": "Open-Meteo",
                "marine": "Open-Meteo Marine" if marine else None,
            },
            "fetchedAt": utc_now().isoformat(),
        }

        await CacheManager.set(key, conditions, ttl=CacheManager.TTL_MEDIUM)
        return conditions


def get_weather_service() -> WeatherService:
    """FastAPI dependency; overridable in tests."""
    return WeatherService()

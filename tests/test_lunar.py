"""
Tests for lunar phase calculation and the marine calendar endpoints.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.main import app
from app.services.lunar_service import (
    REFERENCE_NEW_MOON,
    SYNODIC_MONTH_DAYS,
    FishActivityLevel,
    LunarPhaseType,
    best_fishing_hours,
    calculate_lunar_influence,
    calculate_lunar_phase,
    fish_activity_for_strength,
    overall_fishing_score,
    phase_type_for_angle,
    phases_for_period,
    upcoming_events,
)
from app.services.weather_service import get_weather_service


class TestLunarPhase:
    def test_reference_date_is_new_moon(self):
        phase = calculate_lunar_phase(REFERENCE_NEW_MOON)
        assert phase["type"] == LunarPhaseType.NEW_MOON.value
        assert phase["illumination"] == 0
        assert phase["nameEn"] == "New Moon"

    def test_half_cycle_is_full_moon(self):
        phase = calculate_lunar_phase(REFERENCE_NEW_MOON + timedelta(days=SYNODIC_MONTH_DAYS / 2))
        assert phase["type"] == LunarPhaseType.FULL_MOON.value
        assert phase["illumination"] == pytest.approx(100, abs=0.1)

    def test_sector_boundaries(self):
        assert phase_type_for_angle(350) == LunarPhaseType.NEW_MOON
        assert phase_type_for_angle(22.4) == LunarPhaseType.NEW_MOON
        assert phase_type_for_angle(22.5) == LunarPhaseType.WAXING_CRESCENT
        assert phase_type_for_angle(90) == LunarPhaseType.FIRST_QUARTER
        assert phase_type_for_angle(270) == LunarPhaseType.LAST_QUARTER

    def test_phases_for_period_is_inclusive(self):
        phases = phases_for_period(REFERENCE_NEW_MOON, REFERENCE_NEW_MOON + timedelta(days=6))
        assert len(phases) == 7


class TestLunarInfluence:
    def test_new_moon_boost(self):
        influence = calculate_lunar_influence(calculate_lunar_phase(REFERENCE_NEW_MOON))
        assert influence["strength"] == pytest.approx(9.35, abs=0.06)
        assert influence["fishActivity"] == FishActivityLevel.VERY_HIGH.value
        assert "Bright lures" in influence["recommendedTackle"]

    def test_activity_thresholds(self):
        assert fish_activity_for_strength(8.5) == FishActivityLevel.VERY_HIGH
        assert fish_activity_for_strength(7.0) == FishActivityLevel.HIGH
        assert fish_activity_for_strength(5.5) == FishActivityLevel.MODERATE
        assert fish_activity_for_strength(4.0) == FishActivityLevel.LOW
        assert fish_activity_for_strength(3.9) == FishActivityLevel.VERY_LOW

    def test_best_hours_add_night_window_at_new_moon(self):
        phase = calculate_lunar_phase(REFERENCE_NEW_MOON)
        hours = best_fishing_hours(REFERENCE_NEW_MOON, phase)
        assert len(hours) == 3
        assert hours[0]["rating"] == 10
        assert [h["rating"] for h in hours] == sorted((h["rating"] for h in hours), reverse=True)

    def test_best_hours_without_night_window(self):
        day = REFERENCE_NEW_MOON + timedelta(days=7)
        hours = best_fishing_hours(day, calculate_lunar_phase(day))
        assert len(hours) == 2

    def test_upcoming_events_from_reference(self):
        events = upcoming_events(REFERENCE_NEW_MOON, days=30)
        assert events["newMoons"][0] == "2025-01-29"
        assert events["fullMoons"] == ["2025-02-11"]
        assert len(events["quarters"]) == 2

    def test_overall_score_penalties_and_clamp(self):
        assert overall_fishing_score(9.0) == 9.0
        assert overall_fishing_score(9.0, wind_speed=8, wave_height=1.5) == 7.0
        assert overall_fishing_score(9.0, wind_speed=12, wave_height=3) == 5.0
        assert overall_fishing_score(2.0, wind_speed=12, wave_height=3) == 1.0


class TestMarineCalendarAPI:
    @pytest.mark.asyncio
    async def test_lunar_default_window(self, client):
        response = await client.get("/api/v1/marine-calendar/lunar")
        assert response.status_code == 200
        assert len(response.json()["data"]["phases"]) == 30

    @pytest.mark.asyncio
    async def test_lunar_range_too_long(self, client):
        response = await client.get(
            "/api/v1/marine-calendar/lunar",
            params={"start": "2025-01-01", "end": "2025-06-01"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_lunar_invalid_date(self, client):
        response = await client.get("/api/v1/marine-calendar/lunar", params={"start": "yesterday"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_conditions_score_on_moon_without_weather(self, client):
        weather = AsyncMock()
        weather.get_conditions.return_value = None
        app.dependency_overrides[get_weather_service] = lambda: weather

        response = await client.get(
            "/api/v1/marine-calendar/fishing-conditions",
            params={"date": "2025-01-29", "latitude": 55.7, "longitude": 37.6},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["weather"] is None
        assert data["lunarPhase"]["type"] == "NEW_MOON"
        assert data["overallScore"] == data["lunarInfluence"]["strength"]
        weather.get_conditions.assert_awaited_once_with(55.7, 37.6)

"""
Lunar Service
=============

Approximate moon phase calculation and its influence on fish activity.

Phases come from a fixed synodic month counted from a known new moon, which
is accurate to within about a day. No external ephemeris is used.
"""

import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from app.utils.helpers import ensure_aware, start_of_day
from app.utils.stats import clamp

SYNODIC_MONTH_DAYS = 29.53058867
REFERENCE_NEW_MOON = datetime(2025, 1, 29, tzinfo=timezone.utc)


class LunarPhaseType(str, Enum):
    NEW_MOON = "NEW_MOON"
    WAXING_CRESCENT = "WAXING_CRESCENT"
    FIRST_QUARTER = "FIRST_QUARTER"
    WAXING_GIBBOUS = "WAXING_GIBBOUS"
    FULL_MOON = "FULL_MOON"
    WANING_GIBBOUS = "WANING_GIBBOUS"
    LAST_QUARTER = "LAST_QUARTER"
    WANING_CRESCENT = "WANING_CRESCENT"


class FishActivityLevel(str, Enum):
    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


# Phase order around the cycle; each covers a 45 degree sector centred on i * 45
PHASE_SEQUENCE = list(LunarPhaseType)

PHASE_NAMES = {
    LunarPhaseType.NEW_MOON: ("New Moon", "Новолуние"),
    LunarPhaseType.WAXING_CRESCENT: ("Waxing Crescent", "Растущий месяц"),
    LunarPhaseType.FIRST_QUARTER: ("First Quarter", "Первая четверть"),
    LunarPhaseType.WAXING_GIBBOUS: ("Waxing Gibbous", "Растущая луна"),
    LunarPhaseType.FULL_MOON: ("Full Moon", "Полнолуние"),
    LunarPhaseType.WANING_GIBBOUS: ("Waning Gibbous", "Убывающая луна"),
    LunarPhaseType.LAST_QUARTER: ("Last Quarter", "Последняя четверть"),
    LunarPhaseType.WANING_CRESCENT: ("Waning Crescent", "Убывающий месяц"),
}

PHASE_STRENGTH = {
    LunarPhaseType.NEW_MOON: 8.5,
    LunarPhaseType.WAXING_CRESCENT: 6.0,
    LunarPhaseType.FIRST_QUARTER: 7.5,
    LunarPhaseType.WAXING_GIBBOUS: 6.5,
    LunarPhaseType.FULL_MOON: 9.0,
    LunarPhaseType.WANING_GIBBOUS: 7.0,
    LunarPhaseType.LAST_QUARTER: 7.5,
    LunarPhaseType.WANING_CRESCENT: 5.5,
}

PHASE_DESCRIPTIONS = {
    LunarPhaseType.NEW_MOON: "New moon gives excellent conditions. Low light makes fish active.",
    LunarPhaseType.WAXING_CRESCENT: "A waxing crescent raises fish activity.",
    LunarPhaseType.FIRST_QUARTER: "First quarter is a good time to fish.",
    LunarPhaseType.WAXING_GIBBOUS: "A waxing moon brings favourable conditions.",
    LunarPhaseType.FULL_MOON: "Full moon has the strongest influence on fish behaviour.",
    LunarPhaseType.WANING_GIBBOUS: "Fish stay fairly active after the full moon.",
    LunarPhaseType.LAST_QUARTER: "Last quarter gives steady results.",
    LunarPhaseType.WANING_CRESCENT: "A waning crescent calls for patience.",
}

ACTIVITY_DESCRIPTIONS = {
    FishActivityLevel.VERY_HIGH: "Fish are very active!",
    FishActivityLevel.HIGH: "High fish activity.",
    FishActivityLevel.MODERATE: "Moderate activity.",
    FishActivityLevel.LOW: "Low activity, be patient.",
    FishActivityLevel.VERY_LOW: "Low activity, be patient.",
}

BASE_TACKLE = ["Spinning rod", "Bottom rig", "Float rod"]

# Hour-window ratings per phase: (dawn, dusk, midnight)
WINDOW_RATINGS = {
    LunarPhaseType.NEW_MOON: (8, 9, 10),
    LunarPhaseType.WAXING_CRESCENT: (6, 7, 5),
    LunarPhaseType.FIRST_QUARTER: (7, 8, 6),
    LunarPhaseType.WAXING_GIBBOUS: (6, 7, 7),
    LunarPhaseType.FULL_MOON: (7, 8, 10),
    LunarPhaseType.WANING_GIBBOUS: (7, 8, 7),
    LunarPhaseType.LAST_QUARTER: (8, 7, 6),
    LunarPhaseType.WANING_CRESCENT: (6, 6, 4),
}


def phase_type_for_angle(angle: float) -> LunarPhaseType:
    normalized = angle % 360
    return PHASE_SEQUENCE[int(((normalized + 22.5) % 360) // 45)]


def calculate_lunar_phase(dt: datetime) -> dict[str, Any]:
    dt = ensure_aware(dt)
    days = (dt - REFERENCE_NEW_MOON).total_seconds() / 86400
    position = days % SYNODIC_MONTH_DAYS

    angle = position / SYNODIC_MONTH_DAYS * 360
    phase_type = phase_type_for_angle(angle)
    illumination = 50 * (1 - math.cos(math.radians(angle)))
    name_en, name_ru = PHASE_NAMES[phase_type]

    return {
        "type": phase_type.value,
        "nameEn": name_en,
        "nameRu": name_ru,
        "angle": round(angle, 1),
        "illumination": round(illumination, 1),
        "dateTime": dt.isoformat(),
    }


def fish_activity_for_strength(strength: float) -> FishActivityLevel:
    if strength >= 8.5:
        return FishActivityLevel.VERY_HIGH
    if strength >= 7.0:
        return FishActivityLevel.HIGH
    if strength >= 5.5:
        return FishActivityLevel.MODERATE
    if strength >= 4.0:
        return FishActivityLevel.LOW
    return FishActivityLevel.VERY_LOW


def recommended_tackle(phase_type: LunarPhaseType, activity: FishActivityLevel) -> list[str]:
    if phase_type == LunarPhaseType.FULL_MOON:
        return BASE_TACKLE + ["Night fishing", "Glow lures"]
    if phase_type == LunarPhaseType.NEW_MOON:
        return BASE_TACKLE + ["Bright lures", "Rattling wobblers"]
    if activity == FishActivityLevel.VERY_HIGH:
        return BASE_TACKLE + ["Fast retrieve", "Active lures"]
    return list(BASE_TACKLE)


def calculate_lunar_influence(phase: dict[str, Any]) -> dict[str, Any]:
    phase_type = LunarPhaseType(phase["type"])
    strength = PHASE_STRENGTH[phase_type]
    if phase["illumination"] < 10 or phase["illumination"] > 90:
        strength *= 1.1

    activity = fish_activity_for_strength(strength)
    return {
        "strength": round(strength, 1),
        "fishActivity": activity.value,
        "recommendedTackle": recommended_tackle(phase_type, activity),
        "description": f"{PHASE_DESCRIPTIONS[phase_type]} {ACTIVITY_DESCRIPTIONS[activity]}",
    }


def best_fishing_hours(date: datetime, phase: dict[str, Any]) -> list[dict[str, Any]]:
    """Dawn and dusk windows, plus a midnight window around full and new moon."""
    phase_type = LunarPhaseType(phase["type"])
    dawn_rating, dusk_rating, midnight_rating = WINDOW_RATINGS[phase_type]
    day = start_of_day(ensure_aware(date))

    def window(hour: int, length: int, description: str, rating: int) -> dict[str, Any]:
        start = day + timedelta(hours=hour)
        return {
            "start": start.isoformat(),
            "end": (start + timedelta(hours=length)).isoformat(),
            "description": description,
            "rating": rating,
        }

    hours = [
        window(6, 2, "Dawn activity", dawn_rating),
        window(19, 2, "Evening activity", dusk_rating),
    ]
    if phase_type in (LunarPhaseType.FULL_MOON, LunarPhaseType.NEW_MOON):
        label = "full moon" if phase_type == LunarPhaseType.FULL_MOON else "new moon"
        hours.append(window(23, 3, f"Night activity ({label})", midnight_rating))

    return sorted(hours, key=lambda h: h["rating"], reverse=True)


def phases_for_period(start: datetime, end: datetime) -> list[dict[str, Any]]:
    """One phase per day from ``start`` to ``end`` inclusive."""
    phases = []
    cursor = ensure_aware(start)
    end = ensure_aware(end)
    while cursor <= end:
        phases.append(calculate_lunar_phase(cursor))
        cursor += timedelta(days=1)
    return phases


def upcoming_events(from_date: datetime, days: int = 30) -> dict[str, list[str]]:
    """First day of each new moon, full moon and quarter run in the next ``days`` days."""
    events: dict[str, list[str]] = {"newMoons": [], "fullMoons": [], "quarters": []}
    buckets = {
        LunarPhaseType.NEW_MOON: "newMoons",
        LunarPhaseType.FULL_MOON: "fullMoons",
        LunarPhaseType.FIRST_QUARTER: "quarters",
        LunarPhaseType.LAST_QUARTER: "quarters",
    }

    start = ensure_aware(from_date)
    previous = None
    for offset in range(days):
        day = start + timedelta(days=offset)
        phase_type = LunarPhaseType(calculate_lunar_phase(day)["type"])
        if phase_type != previous and phase_type in buckets:
            events[buckets[phase_type]].append(day.date().isoformat())
        previous = phase_type
    return events


def overall_fishing_score(
    lunar_strength: float,
    wind_speed: Optional[float] = None,
    wave_height: Optional[float] = None,
) -> float:
    """Lunar strength less wind and wave penalties, clamped to 1-10."""
    score = lunar_strength
    if wind_speed is not None:
        if wind_speed > 10:
            score -= 2
        elif wind_speed > 6:
            score -= 1
    if wave_height is not None:
        if wave_height > 2:
            score -= 2
        elif wave_height > 1:
            score -= 1
    return round(clamp(score, 1, 10), 1)

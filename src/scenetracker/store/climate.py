"""Climate derived from forecasts, narrative time and location.

Nothing here is stored.  ``compute_climate`` is evaluated on every
projection so that moving indoors, or time passing, is reflected without
any weather event being emitted.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Optional

from scenetracker.models.common import LocationState
from scenetracker.models.weather import (
    Climate,
    DailyForecast,
    DaylightPhase,
    HourlyWeather,
    LocationForecast,
)

# Detected from the place/position text when the location type alone is not specific.
_BUILDING_PATTERNS = [
    ("underground", re.compile(
        r"\b(cave|basement|cellar|mine|tunnel|bunker|crypt|catacomb|sewer|subway|metro|underground)\b",
        re.I)),
    ("tent", re.compile(r"\b(tent|campsite|bivouac|yurt|pavilion|camping|campground)\b", re.I)),
    ("vehicle", re.compile(r"\b(car|truck|van|bus|train|carriage|wagon|cab|taxi|cockpit)\b", re.I)),
]


def building_type(location: LocationState) -> Optional[str]:
    """Building type for indoor temperature, or None when outdoors."""
    text = f"{location.place} {location.position}"
    for kind, pattern in _BUILDING_PATTERNS:
        if pattern.search(text):
            return kind
    if location.location_type == "outdoor":
        return None
    return location.location_type


def indoor_temperature(outdoor: float, building: str, hour: int) -> float:
    if building == "modern":
        if outdoor > 95:
            return 75 + (outdoor - 95) * 0.1
        if outdoor < 14:
            return 65 - (14 - outdoor) * 0.05
        return 70.0
    if building == "heated":
        target = 65 if 6 <= hour <= 22 else 57
        return target + (outdoor - target) * 0.3
    if building == "unheated":
        shelter = 5 if outdoor < 50 else -4 if outdoor > 77 else 0
        return outdoor * 0.7 + 70 * 0.3 + shelter
    if building == "underground":
        return 55.0
    if building == "tent":
        return outdoor + (9 if 10 <= hour <= 16 else 2)
    if building == "vehicle":
        return outdoor + (15 if 10 <= hour <= 16 else 4)
    return outdoor


def daylight_phase(hour: int, sunrise: int, sunset: int) -> DaylightPhase:
    if hour == sunrise:
        return "dawn"
    if hour == sunset:
        return "dusk"
    if sunrise < hour < sunset:
        return "day"
    return "night"


def hourly_at(day: DailyForecast, hour: int) -> HourlyWeather:
    """Hourly weather for a day, interpolated from high/low when hours are missing."""
    for entry in day.hourly:
        if entry.hour == hour:
            return entry
    # Coldest just before sunrise, warmest mid-afternoon.
    distance = min(abs(hour - 15), 24 - abs(hour - 15))
    fraction = 1 - distance / 12
    temperature = day.low + (day.high - day.low) * fraction
    return HourlyWeather(hour=hour, temperature=round(temperature, 1), conditions=day.conditions)


def compute_climate(
    forecasts: Dict[str, LocationForecast],
    time: Optional[datetime],
    location: Optional[LocationState],
) -> Optional[Climate]:
    """Weather at ``time`` in ``location``; None when any input is missing."""
    if time is None or location is None or not location.area:
        return None
    forecast = forecasts.get(location.area)
    if forecast is None:
        return None
    day = forecast.day_for(time.date())
    if day is None:
        return None

    hourly = hourly_at(day, time.hour)
    building = building_type(location)
    indoor = indoor_temperature(hourly.temperature, building, time.hour) if building else None
    effective = indoor if indoor is not None else hourly.temperature
    return Climate(
        temperature=round(effective),
        outdoor_temperature=hourly.temperature,
        indoor_temperature=round(indoor, 1) if indoor is not None else None,
        humidity=hourly.humidity,
        precipitation=hourly.precipitation,
        wind_speed=hourly.wind_speed,
        conditions=hourly.conditions,
        daylight=daylight_phase(time.hour, day.sunrise, day.sunset),
        is_indoors=building is not None,
        building_type=building,
    )

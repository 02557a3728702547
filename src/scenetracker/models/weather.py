"""Forecast and climate models.

Forecasts are stored per area as events; climate is never stored, it is
computed from the forecast, the narrative time and the location.
Temperatures are degrees Fahrenheit.
"""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ConditionType = Literal[
    "clear", "partly_cloudy", "overcast", "foggy", "drizzle", "rain",
    "heavy_rain", "thunderstorm", "sleet", "snow", "heavy_snow", "blizzard",
    "windy", "hot", "cold",
]

DaylightPhase = Literal["dawn", "day", "dusk", "night"]


class HourlyWeather(BaseModel):
    hour: int = Field(ge=0, le=23)
    temperature: float
    humidity: float = 50.0
    precipitation: float = 0.0
    cloud_cover: float = 0.0
    wind_speed: float = 0.0
    wind_direction: float = 0.0
    conditions: ConditionType = "clear"


class DailyForecast(BaseModel):
    date: date
    high: float
    low: float
    conditions: ConditionType = "clear"
    sunrise: int = Field(default=6, ge=0, le=23)
    sunset: int = Field(default=19, ge=0, le=23)
    hourly: List[HourlyWeather] = Field(default_factory=list)


class LocationForecast(BaseModel):
    area_name: str
    start_date: date
    days: List[DailyForecast] = Field(default_factory=list)

    def day_for(self, when: date) -> Optional[DailyForecast]:
        for day in self.days:
            if day.date == when:
                return day
        return None

    def covers(self, when: date) -> bool:
        return self.day_for(when) is not None


class Climate(BaseModel):
    """Weather at the current time and place, as experienced by the characters."""

    temperature: int
    outdoor_temperature: float
    indoor_temperature: Optional[float] = None
    humidity: float
    precipitation: float
    wind_speed: float
    conditions: ConditionType
    daylight: DaylightPhase
    is_indoors: bool
    building_type: Optional[str] = None

"""Core scene facts: time, location, forecast, topic/tone and tension."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, Field

from scenetracker.extractors.base import (
    EventExtractor,
    ExtractorRun,
    format_location,
    format_time,
)
from scenetracker.extractors.strategies import Custom
from scenetracker.models.common import (
    LocationType,
    TensionDirection,
    TensionLevel,
    TensionType,
    TimeDelta,
)
from scenetracker.models.events import (
    BaseEvent,
    ForecastGeneratedEvent,
    LocationMovedEvent,
    TensionEvent,
    TimeDeltaEvent,
    TopicToneEvent,
)
from scenetracker.models.weather import ConditionType, DailyForecast, LocationForecast

log = logging.getLogger(__name__)


# ── Time ────────────────────────────────────────────────────────────────


class TimeChangeAnswer(BaseModel):
    reasoning: str = ""
    time_passed: bool = False
    days: int = Field(default=0, ge=0)
    hours: int = Field(default=0, ge=0)
    minutes: int = Field(default=0, ge=0)


class TimeChangeExtractor(EventExtractor):
    name = "time_change"
    display_name = "time"
    category = "time"
    prompt_name = "time_change"
    default_temperature = 0.3

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        if state.time is None:
            return []
        answer = await self.ask(run, TimeChangeAnswer, current_time=format_time(state))
        delta = TimeDelta(days=answer.days, hours=answer.hours, minutes=answer.minutes)
        if not answer.time_passed or delta.is_zero():
            return []
        return [TimeDeltaEvent(delta=delta, **self.at(run))]


# ── Location ────────────────────────────────────────────────────────────


class LocationChangeAnswer(BaseModel):
    reasoning: str = ""
    moved: bool = False
    area: str = ""
    place: str = ""
    position: str = ""
    location_type: Optional[LocationType] = None


class LocationChangeExtractor(EventExtractor):
    name = "location_change"
    display_name = "location"
    category = "location"
    prompt_name = "location_change"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        answer = await self.ask(run, LocationChangeAnswer, current_location=format_location(state))
        if not answer.moved:
            return []
        current = state.location
        same = current is not None and (
            (answer.area or current.area) == current.area
            and (answer.place or current.place) == current.place
            and (answer.position or current.position) == current.position
        )
        if same:
            return []
        return [LocationMovedEvent(
            new_area=answer.area,
            new_place=answer.place,
            new_position=answer.position,
            new_location_type=answer.location_type,
            previous_area=current.area if current else None,
            previous_place=current.place if current else None,
            previous_position=current.position if current else None,
            **self.at(run),
        )]


# ── Forecast ────────────────────────────────────────────────────────────


class ForecastDayAnswer(BaseModel):
    high: float
    low: float
    conditions: ConditionType = "clear"
    sunrise: int = Field(default=6, ge=0, le=23)
    sunset: int = Field(default=19, ge=0, le=23)


class ForecastAnswer(BaseModel):
    reasoning: str = ""
    days: List[ForecastDayAnswer] = Field(default_factory=list)


def _needs_forecast(run: ExtractorRun) -> bool:
    state = run.projection()
    if state.time is None or state.location is None or not state.location.area:
        return False
    forecast = state.forecasts.get(state.location.area)
    return forecast is None or not forecast.covers(state.time.date())


class ForecastExtractor(EventExtractor):
    """Generates a week of weather whenever the scene reaches an area or date
    no stored forecast covers."""

    name = "forecast"
    display_name = "weather"
    category = "climate"
    prompt_name = "forecast"
    default_temperature = 0.6
    run_strategy = Custom(_needs_forecast)

    FORECAST_DAYS = 7

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        if state.time is None or state.location is None:
            return []
        start = state.time.date()
        answer = await self.ask(
            run,
            ForecastAnswer,
            area=state.location.area,
            start_date=start.isoformat(),
            day_count=str(self.FORECAST_DAYS),
        )
        if not answer.days:
            return []
        days = [
            DailyForecast(
                date=start + timedelta(days=i),
                high=max(d.high, d.low),
                low=min(d.high, d.low),
                conditions=d.conditions,
                sunrise=d.sunrise,
                sunset=d.sunset,
            )
            for i, d in enumerate(answer.days[: self.FORECAST_DAYS])
        ]
        forecast = LocationForecast(area_name=state.location.area, start_date=start, days=days)
        return [ForecastGeneratedEvent(
            area_name=forecast.area_name, start_date=start, forecast=forecast, **self.at(run)
        )]


# ── Topic & tone ────────────────────────────────────────────────────────


class TopicToneAnswer(BaseModel):
    reasoning: str = ""
    changed: bool = False
    topic: str = ""
    tone: str = ""


class TopicToneExtractor(EventExtractor):
    name = "topic_tone_change"
    display_name = "topic"
    category = "scene"
    prompt_name = "topic_tone_change"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        scene = state.scene
        answer = await self.ask(
            run,
            TopicToneAnswer,
            current_topic=scene.topic if scene and scene.topic else "Unknown",
            current_tone=scene.tone if scene and scene.tone else "Unknown",
        )
        if not answer.changed or not answer.topic:
            return []
        if scene is not None and (scene.topic, scene.tone) == (answer.topic, answer.tone):
            return []
        return [TopicToneEvent(topic=answer.topic, tone=answer.tone or (scene.tone if scene else ""),
                               **self.at(run))]


# ── Tension ─────────────────────────────────────────────────────────────


class TensionAnswer(BaseModel):
    reasoning: str = ""
    level: TensionLevel
    type: TensionType
    direction: TensionDirection = "stable"


class TensionExtractor(EventExtractor):
    name = "tension_change"
    display_name = "tension"
    category = "scene"
    prompt_name = "tension_change"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        current = state.scene.tension if state.scene else None
        answer = await self.ask(
            run,
            TensionAnswer,
            current_tension=(
                f"{current.level} ({current.type}, {current.direction})" if current else "Unknown"
            ),
        )
        if current is not None and (current.level, current.type, current.direction) == (
            answer.level, answer.type, answer.direction
        ):
            return []
        return [TensionEvent(
            level=answer.level, type=answer.type, direction=answer.direction, **self.at(run)
        )]

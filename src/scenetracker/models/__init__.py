from scenetracker.models.common import (
    CharacterOutfit,
    CharacterProfile,
    LocationState,
    MessageAndSwipe,
    Pair,
    SceneState,
    Tension,
    TimeDelta,
    pair_key,
    sort_pair,
)
from scenetracker.models.context import (
    ChatMessage,
    ExtractionContext,
    ExtractionSettings,
    PromptOverride,
    SwipeContext,
    TrackSettings,
)
from scenetracker.models.events import (
    BaseEvent,
    Event,
    EVENT_CLASSES,
    parse_event,
)
from scenetracker.models.state import (
    ChapterInfo,
    CharacterState,
    MilestoneInfo,
    NarrativeEvent,
    Projection,
    RelationshipAttitude,
    RelationshipState,
    Snapshot,
)
from scenetracker.models.weather import Climate, DailyForecast, HourlyWeather, LocationForecast

__all__ = [
    "CharacterOutfit",
    "CharacterProfile",
    "LocationState",
    "MessageAndSwipe",
    "Pair",
    "SceneState",
    "Tension",
    "TimeDelta",
    "pair_key",
    "sort_pair",
    "ChatMessage",
    "ExtractionContext",
    "ExtractionSettings",
    "PromptOverride",
    "SwipeContext",
    "TrackSettings",
    "BaseEvent",
    "Event",
    "EVENT_CLASSES",
    "parse_event",
    "ChapterInfo",
    "CharacterState",
    "MilestoneInfo",
    "NarrativeEvent",
    "Projection",
    "RelationshipAttitude",
    "RelationshipState",
    "Snapshot",
    "Climate",
    "DailyForecast",
    "HourlyWeather",
    "LocationForecast",
]

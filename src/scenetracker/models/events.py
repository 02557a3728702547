"""Event models: immutable facts anchored to a branch coordinate.

Every event has a ``kind`` and a ``subkind``; together they select the
concrete class when a document is loaded (``parse_event`` / ``EVENT_LIST``).
Events are frozen.  The only sanctioned change after creation is a whole
copy made with ``model_copy(update=...)``: setting ``deleted`` inside the
event log, or correcting a relationship subject inside the staging buffer
before the turn is committed.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
)

from scenetracker.models.common import (
    CharacterProfile,
    LocationType,
    MessageAndSwipe,
    OutfitSlot,
    Pair,
    RelationshipStatus,
    TensionDirection,
    TensionLevel,
    TensionType,
    TimeDelta,
    sort_pair,
)
from scenetracker.models.weather import LocationForecast


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    source: MessageAndSwipe
    created_at: datetime = Field(default_factory=_now)
    deleted: bool = False

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps cannot be ordered against aware ones.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def tag(self) -> str:
        return f"{self.kind}/{self.subkind}"  # type: ignore[attr-defined]

    def sort_key(self) -> tuple[int, datetime]:
        return (self.source.message_id, self.created_at)


# ── Time ────────────────────────────────────────────────────────────────


class TimeInitialEvent(BaseEvent):
    kind: Literal["time"] = "time"
    subkind: Literal["initial"] = "initial"
    time: datetime


class TimeDeltaEvent(BaseEvent):
    kind: Literal["time"] = "time"
    subkind: Literal["delta"] = "delta"
    delta: TimeDelta


# ── Location ────────────────────────────────────────────────────────────


class LocationMovedEvent(BaseEvent):
    kind: Literal["location"] = "location"
    subkind: Literal["moved"] = "moved"
    new_area: str = ""
    new_place: str = ""
    new_position: str = ""
    new_location_type: Optional[LocationType] = None
    previous_area: Optional[str] = None
    previous_place: Optional[str] = None
    previous_position: Optional[str] = None


class LocationPropAddedEvent(BaseEvent):
    kind: Literal["location"] = "location"
    subkind: Literal["prop_added"] = "prop_added"
    prop: str


class LocationPropRemovedEvent(BaseEvent):
    kind: Literal["location"] = "location"
    subkind: Literal["prop_removed"] = "prop_removed"
    prop: str


# ── Forecast ────────────────────────────────────────────────────────────


class ForecastGeneratedEvent(BaseEvent):
    kind: Literal["forecast"] = "forecast"
    subkind: Literal["generated"] = "generated"
    area_name: str
    start_date: date
    forecast: LocationForecast


# ── Characters ──────────────────────────────────────────────────────────


class CharacterAppearedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["appeared"] = "appeared"
    character: str
    initial_position: Optional[str] = None
    initial_activity: Optional[str] = None


class CharacterDepartedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["departed"] = "departed"
    character: str


class CharacterProfileSetEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["profile_set"] = "profile_set"
    character: str
    profile: CharacterProfile


class CharacterPositionChangedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["position_changed"] = "position_changed"
    character: str
    new_value: str
    previous_value: Optional[str] = None


class CharacterActivityChangedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["activity_changed"] = "activity_changed"
    character: str
    new_value: Optional[str] = None
    previous_value: Optional[str] = None


class CharacterMoodAddedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["mood_added"] = "mood_added"
    character: str
    value: str


class CharacterMoodRemovedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["mood_removed"] = "mood_removed"
    character: str
    value: str


class CharacterPhysicalAddedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["physical_added"] = "physical_added"
    character: str
    value: str


class CharacterPhysicalRemovedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["physical_removed"] = "physical_removed"
    character: str
    value: str


class CharacterOutfitChangedEvent(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["outfit_changed"] = "outfit_changed"
    character: str
    slot: OutfitSlot
    new_value: Optional[str] = None
    previous_value: Optional[str] = None


# ── Relationships ───────────────────────────────────────────────────────


class _DirectionalEvent(BaseEvent):
    kind: Literal["relationship"] = "relationship"
    from_character: str
    toward_character: str
    value: str

    @property
    def pair(self) -> Pair:
        return sort_pair(self.from_character, self.toward_character)


class FeelingAddedEvent(_DirectionalEvent):
    subkind: Literal["feeling_added"] = "feeling_added"


class FeelingRemovedEvent(_DirectionalEvent):
    subkind: Literal["feeling_removed"] = "feeling_removed"


class SecretAddedEvent(_DirectionalEvent):
    subkind: Literal["secret_added"] = "secret_added"


class SecretRemovedEvent(_DirectionalEvent):
    subkind: Literal["secret_removed"] = "secret_removed"


class WantAddedEvent(_DirectionalEvent):
    subkind: Literal["want_added"] = "want_added"


class WantRemovedEvent(_DirectionalEvent):
    subkind: Literal["want_removed"] = "want_removed"


class StatusChangedEvent(BaseEvent):
    kind: Literal["relationship"] = "relationship"
    subkind: Literal["status_changed"] = "status_changed"
    pair: Pair
    new_status: RelationshipStatus
    previous_status: Optional[RelationshipStatus] = None

    @field_validator("pair")
    @classmethod
    def _canonical_pair(cls, v: Pair) -> Pair:
        return sort_pair(*v)


class RelationshipSubjectEvent(BaseEvent):
    kind: Literal["relationship"] = "relationship"
    subkind: Literal["subject"] = "subject"
    pair: Pair
    subject: str
    milestone_description: Optional[str] = None

    @field_validator("pair")
    @classmethod
    def _canonical_pair(cls, v: Pair) -> Pair:
        return sort_pair(*v)


# ── Scene ───────────────────────────────────────────────────────────────


class TopicToneEvent(BaseEvent):
    kind: Literal["topic_tone"] = "topic_tone"
    subkind: Literal["changed"] = "changed"
    topic: str
    tone: str


class TensionEvent(BaseEvent):
    kind: Literal["tension"] = "tension"
    subkind: Literal["changed"] = "changed"
    level: TensionLevel
    type: TensionType
    direction: TensionDirection


class NarrativeDescriptionEvent(BaseEvent):
    kind: Literal["narrative"] = "narrative"
    subkind: Literal["description"] = "description"
    description: str


# ── Chapters ────────────────────────────────────────────────────────────

ChapterEndReason = Literal["location_change", "time_jump", "both", "manual"]


class ChapterEndedEvent(BaseEvent):
    kind: Literal["chapter"] = "chapter"
    subkind: Literal["ended"] = "ended"
    chapter_index: int = Field(ge=0)
    reason: ChapterEndReason


class ChapterDescribedEvent(BaseEvent):
    kind: Literal["chapter"] = "chapter"
    subkind: Literal["description"] = "description"
    chapter_index: int = Field(ge=0)
    title: str
    summary: str


# ── Discriminated union ─────────────────────────────────────────────────

DIRECTIONAL_SUBKINDS = (
    "feeling_added", "feeling_removed",
    "secret_added", "secret_removed",
    "want_added", "want_removed",
)

EVENT_CLASSES: dict[str, type[BaseEvent]] = {
    "time/initial": TimeInitialEvent,
    "time/delta": TimeDeltaEvent,
    "location/moved": LocationMovedEvent,
    "location/prop_added": LocationPropAddedEvent,
    "location/prop_removed": LocationPropRemovedEvent,
    "forecast/generated": ForecastGeneratedEvent,
    "character/appeared": CharacterAppearedEvent,
    "character/departed": CharacterDepartedEvent,
    "character/profile_set": CharacterProfileSetEvent,
    "character/position_changed": CharacterPositionChangedEvent,
    "character/activity_changed": CharacterActivityChangedEvent,
    "character/mood_added": CharacterMoodAddedEvent,
    "character/mood_removed": CharacterMoodRemovedEvent,
    "character/physical_added": CharacterPhysicalAddedEvent,
    "character/physical_removed": CharacterPhysicalRemovedEvent,
    "character/outfit_changed": CharacterOutfitChangedEvent,
    "relationship/feeling_added": FeelingAddedEvent,
    "relationship/feeling_removed": FeelingRemovedEvent,
    "relationship/secret_added": SecretAddedEvent,
    "relationship/secret_removed": SecretRemovedEvent,
    "relationship/want_added": WantAddedEvent,
    "relationship/want_removed": WantRemovedEvent,
    "relationship/status_changed": StatusChangedEvent,
    "relationship/subject": RelationshipSubjectEvent,
    "topic_tone/changed": TopicToneEvent,
    "tension/changed": TensionEvent,
    "narrative/description": NarrativeDescriptionEvent,
    "chapter/ended": ChapterEndedEvent,
    "chapter/description": ChapterDescribedEvent,
}


def _event_tag(value: Any) -> str | None:
    if isinstance(value, dict):
        kind, subkind = value.get("kind"), value.get("subkind")
    else:
        kind, subkind = getattr(value, "kind", None), getattr(value, "subkind", None)
    if kind is None or subkind is None:
        return None
    return f"{kind}/{subkind}"


Event = Annotated[
    Union[tuple(Annotated[cls, Tag(tag)] for tag, cls in EVENT_CLASSES.items())],  # type: ignore[misc]
    Discriminator(_event_tag),
]

EVENT_ADAPTER: TypeAdapter = TypeAdapter(Event)
EVENT_LIST: TypeAdapter = TypeAdapter(List[Event])


def parse_event(data: dict) -> BaseEvent:
    """Validate a raw dict into the concrete event class for its kind/subkind."""
    return EVENT_ADAPTER.validate_python(data)


def matches_kind(event: BaseEvent, kind: str, subkind: str | None = None) -> bool:
    if event.kind != kind:  # type: ignore[attr-defined]
        return False
    return subkind is None or event.subkind == subkind  # type: ignore[attr-defined]


def is_relationship_event(event: BaseEvent) -> bool:
    return event.kind == "relationship"  # type: ignore[attr-defined]


def relationship_pair(event: BaseEvent) -> Pair | None:
    """Canonical pair a relationship event concerns, or None for other kinds."""
    if isinstance(event, _DirectionalEvent):
        return event.pair
    if isinstance(event, (StatusChangedEvent, RelationshipSubjectEvent)):
        return sort_pair(*event.pair)
    return None


def event_character(event: BaseEvent) -> str | None:
    return getattr(event, "character", None)

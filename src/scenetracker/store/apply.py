"""Replay transforms: how each event kind changes a working state.

``apply_event`` mutates the working :class:`Projection` it is given.  The
projection engine always hands it a private copy, so the Snapshot and any
cached projection are never touched.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from scenetracker.models.common import LocationState, SceneState, pair_key
from scenetracker.models.events import (
    BaseEvent,
    ChapterEndedEvent,
    CharacterActivityChangedEvent,
    CharacterAppearedEvent,
    CharacterDepartedEvent,
    CharacterMoodAddedEvent,
    CharacterMoodRemovedEvent,
    CharacterOutfitChangedEvent,
    CharacterPhysicalAddedEvent,
    CharacterPhysicalRemovedEvent,
    CharacterPositionChangedEvent,
    CharacterProfileSetEvent,
    ForecastGeneratedEvent,
    LocationMovedEvent,
    LocationPropAddedEvent,
    LocationPropRemovedEvent,
    StatusChangedEvent,
    TensionEvent,
    TimeDeltaEvent,
    TimeInitialEvent,
    TopicToneEvent,
    _DirectionalEvent,
)
from scenetracker.models.state import CharacterState, Projection, new_relationship

log = logging.getLogger(__name__)


def _add_unique(values: List[str], value: str) -> None:
    if value not in values:
        values.append(value)


def _remove(values: List[str], value: str) -> None:
    lowered = value.lower()
    values[:] = [v for v in values if v.lower() != lowered]


def _character(state: Projection, name: str) -> CharacterState:
    if name not in state.characters:
        state.characters[name] = CharacterState(name=name)
    return state.characters[name]


# ── Time ────────────────────────────────────────────────────────────────


def _time_initial(state: Projection, event: TimeInitialEvent) -> None:
    state.time = event.time


def _time_delta(state: Projection, event: TimeDeltaEvent) -> None:
    if state.time is None:
        return
    state.time = state.time + event.delta.to_timedelta()


# ── Location ────────────────────────────────────────────────────────────


def _location_moved(state: Projection, event: LocationMovedEvent) -> None:
    current = state.location or LocationState()
    new_place = event.new_place or current.place
    place_changed = new_place != current.place
    state.location = LocationState(
        area=event.new_area or current.area,
        place=new_place,
        position=event.new_position or current.position,
        location_type=event.new_location_type or current.location_type,
        props=[] if place_changed else list(current.props),
    )


def _prop_added(state: Projection, event: LocationPropAddedEvent) -> None:
    if state.location is None:
        state.location = LocationState()
    _add_unique(state.location.props, event.prop)


def _prop_removed(state: Projection, event: LocationPropRemovedEvent) -> None:
    if state.location is not None:
        _remove(state.location.props, event.prop)


def _forecast(state: Projection, event: ForecastGeneratedEvent) -> None:
    state.forecasts[event.area_name] = event.forecast


# ── Characters ──────────────────────────────────────────────────────────


def _appeared(state: Projection, event: CharacterAppearedEvent) -> None:
    char = _character(state, event.character)
    if event.initial_position:
        char.position = event.initial_position
    if event.initial_activity:
        char.activity = event.initial_activity
    for other in state.characters_present:
        if other == event.character:
            continue
        key = pair_key((event.character, other))
        if key not in state.relationships:
            state.relationships[key] = new_relationship(event.character, other)
    _add_unique(state.characters_present, event.character)


def _departed(state: Projection, event: CharacterDepartedEvent) -> None:
    state.characters_present = [c for c in state.characters_present if c != event.character]


def _profile_set(state: Projection, event: CharacterProfileSetEvent) -> None:
    _character(state, event.character).profile = event.profile


def _position(state: Projection, event: CharacterPositionChangedEvent) -> None:
    _character(state, event.character).position = event.new_value


def _activity(state: Projection, event: CharacterActivityChangedEvent) -> None:
    _character(state, event.character).activity = event.new_value


def _mood_added(state: Projection, event: CharacterMoodAddedEvent) -> None:
    _add_unique(_character(state, event.character).mood, event.value)


def _mood_removed(state: Projection, event: CharacterMoodRemovedEvent) -> None:
    _remove(_character(state, event.character).mood, event.value)


def _physical_added(state: Projection, event: CharacterPhysicalAddedEvent) -> None:
    _add_unique(_character(state, event.character).physical_state, event.value)


def _physical_removed(state: Projection, event: CharacterPhysicalRemovedEvent) -> None:
    _remove(_character(state, event.character).physical_state, event.value)


def _outfit(state: Projection, event: CharacterOutfitChangedEvent) -> None:
    setattr(_character(state, event.character).outfit, event.slot, event.new_value)


# ── Relationships ───────────────────────────────────────────────────────

_ATTITUDE_FIELDS = {
    "feeling": "feelings",
    "secret": "secrets",
    "want": "wants",
}


def _directional(state: Projection, event: _DirectionalEvent) -> None:
    key = pair_key(event.pair)
    if key not in state.relationships:
        state.relationships[key] = new_relationship(*event.pair)
    attitude = state.relationships[key].attitude(event.from_character)
    noun, _, verb = event.subkind.partition("_")  # type: ignore[attr-defined]
    values = getattr(attitude, _ATTITUDE_FIELDS[noun])
    if verb == "added":
        _add_unique(values, event.value)
    else:
        _remove(values, event.value)


def _status(state: Projection, event: StatusChangedEvent) -> None:
    key = pair_key(event.pair)
    if key not in state.relationships:
        state.relationships[key] = new_relationship(*event.pair)
    state.relationships[key].status = event.new_status


# ── Scene & chapters ────────────────────────────────────────────────────


def _topic_tone(state: Projection, event: TopicToneEvent) -> None:
    scene = state.scene or SceneState()
    state.scene = scene.model_copy(update={"topic": event.topic, "tone": event.tone})


def _tension(state: Projection, event: TensionEvent) -> None:
    scene = state.scene or SceneState()
    scene.tension = scene.tension.model_copy(update={
        "level": event.level, "type": event.type, "direction": event.direction,
    })
    state.scene = scene


def _chapter_ended(state: Projection, event: ChapterEndedEvent) -> None:
    state.current_chapter = event.chapter_index + 1


_HANDLERS: Dict[str, Callable[[Projection, BaseEvent], None]] = {
    "time/initial": _time_initial,
    "time/delta": _time_delta,
    "location/moved": _location_moved,
    "location/prop_added": _prop_added,
    "location/prop_removed": _prop_removed,
    "forecast/generated": _forecast,
    "character/appeared": _appeared,
    "character/departed": _departed,
    "character/profile_set": _profile_set,
    "character/position_changed": _position,
    "character/activity_changed": _activity,
    "character/mood_added": _mood_added,
    "character/mood_removed": _mood_removed,
    "character/physical_added": _physical_added,
    "character/physical_removed": _physical_removed,
    "character/outfit_changed": _outfit,
    "relationship/feeling_added": _directional,
    "relationship/feeling_removed": _directional,
    "relationship/secret_added": _directional,
    "relationship/secret_removed": _directional,
    "relationship/want_added": _directional,
    "relationship/want_removed": _directional,
    "relationship/status_changed": _status,
    "topic_tone/changed": _topic_tone,
    "tension/changed": _tension,
    "chapter/ended": _chapter_ended,
}
# relationship/subject, narrative/description and chapter/description do not
# change scene state; they feed milestones, narrative events and chapters.


def apply_event(state: Projection, event: BaseEvent) -> None:
    handler = _HANDLERS.get(event.tag)
    if handler is not None:
        handler(state, event)


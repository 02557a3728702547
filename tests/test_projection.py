from __future__ import annotations

from datetime import timedelta

from conftest import T0, at
from scenetracker.models.common import TimeDelta
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import (
    CharacterAppearedEvent,
    CharacterDepartedEvent,
    CharacterMoodAddedEvent,
    CharacterMoodRemovedEvent,
    ChapterEndedEvent,
    FeelingAddedEvent,
    LocationMovedEvent,
    LocationPropAddedEvent,
    NarrativeDescriptionEvent,
    RelationshipSubjectEvent,
    StatusChangedEvent,
    TimeDeltaEvent,
)
from scenetracker.store.store import EventStore


def _hour(message_id: int, swipe_id: int = 0) -> TimeDeltaEvent:
    return TimeDeltaEvent(source=at(message_id, swipe_id), delta=TimeDelta(hours=1))


def _move(message_id: int, place: str, swipe_id: int = 0, **extra) -> LocationMovedEvent:
    return LocationMovedEvent(source=at(message_id, swipe_id), new_place=place, **extra)


def test_no_snapshot_means_no_state(swipe0):
    """Without a baseline there is nothing to project."""
    store = EventStore()
    store.append_events([_hour(1)])
    assert store.project_state_at_message(1, swipe0) is None


def test_before_anchor_is_none(snapshot, swipe0):
    store = EventStore(snapshot=snapshot.model_copy(update={"source": at(2)}))
    assert store.project_state_at_message(1, swipe0) is None
    assert store.project_state_at_message(2, swipe0) is not None


def test_snapshot_alone_at_anchor(store, swipe0):
    state = store.project_state_at_message(0, swipe0)
    assert state.time == T0
    assert state.location.place == "Cafe"
    assert state.characters_present == ["Alice", "Bob"]


def test_time_and_location_follow_the_log(store, swipe0):
    """One hour passes at message 1; they walk to the park at message 2."""
    store.append_events([_hour(1), _move(2, "Park", new_position="bench")])
    at1 = store.project_state_at_message(1, swipe0)
    at2 = store.project_state_at_message(2, swipe0)
    assert at1.time == T0 + timedelta(hours=1)
    assert at1.location.place == "Cafe"
    assert at2.location.place == "Park"
    assert at2.location.area == "Town"
    assert at2.location.props == []


def test_swipe_switch_changes_projection(store):
    """Two alternates at message 2; the selected one decides the state."""
    store.append_events([
        _hour(1),
        _move(2, "Park", swipe_id=0),
        _move(2, "Library", swipe_id=1),
    ])
    first = store.project_state_at_message(2, SwipeContext.uniform(0))
    second = store.project_state_at_message(2, SwipeContext.from_mapping({2: 1}))
    again = store.project_state_at_message(2, SwipeContext.uniform(0))
    assert first.location.place == "Park"
    assert second.location.place == "Library"
    assert again.location.place == "Park"
    assert second.time == T0 + timedelta(hours=1)
    assert second.source == at(2, 1)


def test_branch_isolation(store, swipe0):
    """Events on a swipe that is not selected never leak into the projection."""
    store.append_events([
        CharacterMoodAddedEvent(source=at(1, 1), character="Alice", value="furious"),
        CharacterMoodAddedEvent(source=at(1, 0), character="Alice", value="calm"),
    ])
    state = store.project_state_at_message(3, swipe0)
    assert state.characters["Alice"].mood == ["calm"]


def test_position_only_move_keeps_props(store, swipe0):
    store.append_events([
        LocationMovedEvent(source=at(1), new_position="by the window"),
        LocationPropAddedEvent(source=at(1), prop="newspaper"),
    ])
    state = store.project_state_at_message(1, swipe0)
    assert state.location.place == "Cafe"
    assert state.location.position == "by the window"
    assert state.location.props == ["menu", "coffee cups", "newspaper"]


def test_projection_is_deterministic(store, swipe0):
    store.append_events([_hour(1), _move(2, "Park"), _hour(3)])
    first = store.project_state_at_message(3, swipe0)
    second = store.project_state_at_message(3, swipe0)
    assert first.model_dump() == second.model_dump()


def test_cached_path_matches_fresh_replay(store, snapshot, swipe0):
    """Projecting through cached ancestors gives the same result as a cold replay."""
    events = [
        _hour(1),
        CharacterMoodAddedEvent(source=at(1), character="Bob", value="nervous"),
        _move(2, "Park"),
        CharacterMoodRemovedEvent(source=at(3), character="Bob", value="Nervous"),
        _hour(4),
    ]
    store.append_events(events)
    for mid in range(5):
        store.project_state_at_message(mid, swipe0)
    warm = store.project_state_at_message(4, swipe0)

    cold = EventStore(snapshot=snapshot, events=events).project_state_at_message(4, swipe0)
    assert warm.model_dump() == cold.model_dump()
    assert warm.characters["Bob"].mood == []


def test_append_invalidates_cache(store, swipe0):
    store.append_events([_hour(1)])
    assert store.project_state_at_message(2, swipe0).time == T0 + timedelta(hours=1)


def test_repeated_projection_is_served_from_cache(store, swipe0):
    store.append_events([_hour(1), _move(2, "Park")])
    engine = store.projections
    store.project_state_at_message(2, swipe0)
    assert (engine.hits, engine.misses) == (0, 1)
    store.project_state_at_message(2, swipe0)
    assert (engine.hits, engine.misses) == (1, 1)


def test_swipe_selection_change_misses_cache(store, swipe0):
    store.append_events([_move(2, "Park"), _move(2, "Library", swipe_id=1)])
    engine = store.projections
    store.project_state_at_message(2, swipe0)
    state = store.project_state_at_message(2, SwipeContext.from_mapping({2: 1}))
    assert state.location.place == "Library"
    assert (engine.hits, engine.misses) == (0, 2)


def test_append_at_or_before_key_misses_cache(store, swipe0):
    engine = store.projections
    store.project_state_at_message(3, swipe0)
    store.append_events([_hour(3)])
    store.project_state_at_message(3, swipe0)
    store.append_events([_hour(1)])
    state = store.project_state_at_message(3, swipe0)
    assert (engine.hits, engine.misses) == (0, 3)
    assert state.time == T0 + timedelta(hours=2)


def test_append_after_key_keeps_cache(store, swipe0):
    engine = store.projections
    store.project_state_at_message(2, swipe0)
    store.append_events([_hour(5)])
    store.project_state_at_message(2, swipe0)
    assert (engine.hits, engine.misses) == (1, 1)


def test_swipe_without_events_restores_earlier_location(store, swipe0):
    """Selecting an alternate with no events at message 2 undoes the move made there."""
    store.append_events([_hour(1), _move(2, "Park")])
    assert store.project_state_at_message(3, swipe0).location.place == "Park"
    swapped = SwipeContext.from_mapping({2: 1})
    state = store.project_state_at_message(3, swapped)
    assert state.location.place == "Cafe"
    assert state.location.props == ["menu", "coffee cups"]
    assert state.time == T0 + timedelta(hours=1)
    assert store.projections.misses == 2
    store.append_events([_hour(1)])
    assert store.project_state_at_message(2, swipe0).time == T0 + timedelta(hours=2)


def test_delete_invalidates_cache(store, swipe0):
    store.append_events([_hour(1), _hour(2)])
    assert store.project_state_at_message(2, swipe0).time == T0 + timedelta(hours=2)
    store.delete_events_at_message(at(2))
    assert store.project_state_at_message(2, swipe0).time == T0 + timedelta(hours=1)


def test_returned_projection_is_a_copy(store, swipe0):
    """Mutating a returned projection never changes the next one."""
    state = store.project_state_at_message(0, swipe0)
    state.characters_present.append("Mallory")
    state.location.props.clear()
    fresh = store.project_state_at_message(0, swipe0)
    assert fresh.characters_present == ["Alice", "Bob"]
    assert fresh.location.props == ["menu", "coffee cups"]
    assert store.snapshot.location.props == ["menu", "coffee cups"]


def test_turn_events_are_applied_but_not_cached(store, swipe0):
    pending = [_hour(1)]
    with_turn = store.project_with_turn_events(pending, 0, swipe0)
    assert with_turn.time == T0 + timedelta(hours=1)
    assert store.project_state_at_message(0, swipe0).time == T0


def test_arrival_creates_relationships_with_present(store, swipe0):
    store.append_events([
        CharacterAppearedEvent(source=at(1), character="Carol", initial_position="doorway"),
    ])
    state = store.project_state_at_message(1, swipe0)
    assert state.characters_present == ["Alice", "Bob", "Carol"]
    assert state.characters["Carol"].position == "doorway"
    assert state.relationship("Carol", "Alice").status == "strangers"
    assert state.relationship("Bob", "Carol") is not None


def test_departure_keeps_character_record(store, swipe0):
    store.append_events([CharacterDepartedEvent(source=at(1), character="Bob")])
    state = store.project_state_at_message(1, swipe0)
    assert state.characters_present == ["Alice"]
    assert "Bob" in state.characters


def test_relationship_events_apply(store, swipe0):
    store.append_events([
        FeelingAddedEvent(source=at(1), from_character="Bob", toward_character="Alice", value="curious"),
        StatusChangedEvent(source=at(1), pair=("Alice", "Bob"), new_status="acquaintances"),
    ])
    rel = store.project_state_at_message(1, swipe0).relationship("Bob", "Alice")
    assert rel.status == "acquaintances"
    assert rel.b_to_a.feelings == ["curious"]
    assert rel.a_to_b.feelings == []


def test_narrative_events_carry_scene_context(store, swipe0):
    store.append_events([
        _hour(1),
        RelationshipSubjectEvent(source=at(1), pair=("Alice", "Bob"), subject="laugh"),
        NarrativeDescriptionEvent(source=at(1), description="Bob makes Alice laugh."),
        RelationshipSubjectEvent(source=at(2), pair=("Alice", "Bob"), subject="laugh"),
        NarrativeDescriptionEvent(source=at(2), description="They laugh again."),
    ])
    narrative = store.get_narrative_events(2, swipe0)
    assert [n.description for n in narrative] == ["Bob makes Alice laugh.", "They laugh again."]
    first, second = narrative
    assert first.witnesses == ["Alice", "Bob"]
    assert first.time == T0 + timedelta(hours=1)
    assert first.location == "corner table, Cafe, Town"
    assert first.subjects[0].is_milestone
    assert not second.subjects[0].is_milestone


def test_chapter_index_advances_after_chapter_end(store, swipe0):
    store.append_events([
        NarrativeDescriptionEvent(source=at(1), description="Coffee ends."),
        ChapterEndedEvent(source=at(1), chapter_index=0, reason="location_change"),
        NarrativeDescriptionEvent(source=at(2), description="A walk begins."),
    ])
    state = store.project_state_at_message(2, swipe0)
    assert state.current_chapter == 1
    assert [n.chapter_index for n in state.narrative_events] == [0, 1]

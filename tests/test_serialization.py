from __future__ import annotations

import copy
import json
from datetime import datetime

import pytest

from conftest import LEGACY_DOC, T0, at
from scenetracker.errors import MigrationError
from scenetracker.models.common import TimeDelta
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import (
    LocationMovedEvent,
    NarrativeDescriptionEvent,
    RelationshipSubjectEvent,
    TimeDeltaEvent,
)
from scenetracker.store.migrations import CURRENT_VERSION, map_legacy_status, migrate
from scenetracker.store.store import EventStore


@pytest.fixture
def populated(store):
    """Store with an off-branch swipe, a deleted event and a narrative beat."""
    store.append_events([
        TimeDeltaEvent(source=at(1), delta=TimeDelta(hours=1)),
        LocationMovedEvent(source=at(2), new_place="Park"),
        LocationMovedEvent(source=at(2, 1), new_place="Library"),
        RelationshipSubjectEvent(source=at(2), pair=("Alice", "Bob"), subject="laugh"),
        NarrativeDescriptionEvent(source=at(2), description="A walk in the park."),
        TimeDeltaEvent(source=at(3), delta=TimeDelta(minutes=5)),
    ])
    store.delete_events_at_message(at(3))
    return store


def test_round_trip_preserves_everything(populated, swipe0):
    """Serialize and load again: same document, same projections on every branch."""
    doc = populated.serialize()
    loaded = EventStore.deserialize(json.dumps(doc))
    assert loaded.serialize() == doc
    assert len(loaded.log.all_events()) == 6
    for swipe in (swipe0, SwipeContext.from_mapping({2: 1})):
        assert (loaded.project_state_at_message(3, swipe).model_dump()
                == populated.project_state_at_message(3, swipe).model_dump())


def test_document_carries_current_version(populated):
    assert populated.serialize()["version"] == CURRENT_VERSION


def test_legacy_document_migrates(swipe0):
    store = EventStore.deserialize(LEGACY_DOC)
    assert store.snapshot.source == at(0)
    assert store.snapshot.relationship("Alice", "Bob").status == "friendly"

    state = store.project_state_at_message(2, swipe0)
    assert state.time == datetime(2024, 6, 1, 13, 30)
    assert state.location.place == "Park"
    assert state.location.props == ["fountain"]
    assert state.characters_present == ["Alice"]
    assert state.characters["Alice"].position == "standing"

    milestones = store.get_milestones_for_pair(("Alice", "Bob"), swipe0)
    assert [(m.subject, m.source, m.description) for m in milestones] == [
        ("laugh", at(2), "A bad pun."),
    ]
    chapters = store.get_chapters(2, swipe0)
    assert [(c.index, c.title, c.end_reason) for c in chapters] == [
        (0, "Coffee", "location_change"),
        (1, "", None),
    ]


def test_legacy_ids_are_deterministic():
    first = migrate(LEGACY_DOC)
    second = migrate(copy.deepcopy(LEGACY_DOC))
    assert first == second
    assert all(e["id"].startswith("legacy-") for e in first["events"])


def test_migration_does_not_touch_its_input():
    original = copy.deepcopy(LEGACY_DOC)
    migrate(LEGACY_DOC)
    assert LEGACY_DOC == original


def test_migration_is_idempotent():
    once = migrate(LEGACY_DOC)
    assert migrate(once) == once


def test_v1_narrative_events_are_split(snapshot, swipe0):
    doc = {
        "version": 1,
        "snapshot": snapshot.model_dump(mode="json"),
        "events": [{
            "id": "beat-1",
            "source": {"message_id": 1, "swipe_id": 0},
            "created_at": "2024-06-01T12:05:00+00:00",
            "deleted": False,
            "kind": "narrative",
            "subkind": "event",
            "description": "Alice laughs at Bob's joke.",
            "subjects": [{"pair": ["Bob", "Alice"], "subject": "laugh"}],
        }],
    }
    store = EventStore.deserialize(doc)
    tags = [(e.id, e.tag) for e in store.log.all_events()]
    assert tags == [("beat-1", "narrative/description"), ("beat-1-s0", "relationship/subject")]
    narrative = store.get_narrative_events(1, swipe0)
    assert narrative[0].description == "Alice laughs at Bob's joke."
    assert narrative[0].subjects[0].is_milestone


def test_newer_version_is_rejected():
    with pytest.raises(MigrationError):
        EventStore.deserialize({"version": CURRENT_VERSION + 1, "events": []})


def test_invalid_json_is_rejected():
    with pytest.raises(MigrationError):
        EventStore.deserialize("{not json")


@pytest.mark.parametrize("data", [
    None,
    "{not json",
    b"[1, 2, 3]",
    {"version": 2, "events": [{"kind": "bogus", "subkind": "thing"}]},
    {"version": -1},
])
def test_lenient_load_falls_back_to_empty_store(data):
    store = EventStore.from_document(data)
    assert not store.has_snapshot
    assert store.log.all_events() == []


def test_lenient_load_keeps_good_documents(populated):
    loaded = EventStore.from_document(json.dumps(populated.serialize()))
    assert loaded.has_snapshot
    assert loaded.snapshot.time == T0


def test_lenient_load_accepts_mixed_timestamps(populated):
    """Events written without a timezone load next to aware ones."""
    doc = populated.serialize()
    doc["events"][0]["created_at"] = "2024-06-01T12:00:00"
    doc["events"][1]["created_at"] = "2024-06-01T12:00:00+00:00"
    loaded = EventStore.from_document(json.dumps(doc))
    assert loaded.has_snapshot
    assert len(loaded.log.all_events()) == 6
    assert all(e.created_at.tzinfo is not None for e in loaded.log.all_events())


@pytest.mark.parametrize("legacy, status", [
    ("friends", "friendly"),
    ("Enemies", "hostile"),
    ("romantic", "intimate"),
    ("something odd", "acquaintances"),
    (None, "acquaintances"),
])
def test_legacy_status_mapping(legacy, status):
    assert map_legacy_status(legacy) == status

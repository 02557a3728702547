"""Forward-only migrations for persisted store documents.

Document generations:

``0``  Legacy flat history.  One full state per message::

        {"states": {"<message_id>": {time, location, characters, topic,
                                      tone, tension}},
         "relationships": [{pair, status, a_to_b, b_to_a, milestones}],
         "chapters": [{index, title, summary, end_message_id, reason}]}

``1``  Snapshot + events, but narrative beats are a single
       ``narrative/event`` kind carrying their relationship subjects inline.

``2``  Current.  Narrative beats are ``narrative/description`` events and
       subjects are separate ``relationship/subject`` events.

Every migration is a pure function of its input and returns the input
unchanged when the document is already at (or past) its target version.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from scenetracker.errors import MigrationError

log = logging.getLogger(__name__)

CURRENT_VERSION = 2

Document = Dict[str, Any]

_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)

LEGACY_STATUS_MAP = {
    "strangers": "strangers",
    "acquaintances": "acquaintances",
    "friends": "friendly",
    "friendly": "friendly",
    "close friends": "close",
    "close": "close",
    "family": "close",
    "romantic": "intimate",
    "partners": "intimate",
    "married": "intimate",
    "intimate": "intimate",
    "rivals": "strained",
    "strained": "strained",
    "enemies": "hostile",
    "hostile": "hostile",
    "complicated": "complicated",
}


def document_version(doc: Document) -> int:
    version = doc.get("version", 0)
    if not isinstance(version, int) or version < 0:
        raise MigrationError(f"Invalid document version: {version!r}")
    return version


def map_legacy_status(status: Optional[str]) -> str:
    return LEGACY_STATUS_MAP.get((status or "").strip().lower(), "acquaintances")


# ── v0 -> v1 ────────────────────────────────────────────────────────────


class _EventFactory:
    """Deterministic ids and timestamps so the migration stays pure."""

    def __init__(self) -> None:
        self.events: List[Document] = []

    def add(self, message_id: int, kind: str, subkind: str, **payload: Any) -> None:
        n = len(self.events)
        self.events.append({
            "id": f"legacy-{message_id}-{n}",
            "source": {"message_id": message_id, "swipe_id": 0},
            "created_at": (_EPOCH + timedelta(milliseconds=n)).isoformat(),
            "deleted": False,
            "kind": kind,
            "subkind": subkind,
            **payload,
        })


def _legacy_characters(state: Document) -> Dict[str, Document]:
    return {c["name"]: c for c in state.get("characters") or [] if c.get("name")}


def _legacy_location(state: Document) -> Document:
    loc = state.get("location") or {}
    return {
        "area": loc.get("area", ""),
        "place": loc.get("place", ""),
        "position": loc.get("position", ""),
        "location_type": loc.get("location_type", "outdoor"),
        "props": list(loc.get("props") or []),
    }


def _legacy_snapshot(message_id: int, state: Document, relationships: List[Document]) -> Document:
    characters = {}
    for name, char in _legacy_characters(state).items():
        characters[name] = {
            "name": name,
            "position": char.get("position", ""),
            "activity": char.get("activity"),
            "mood": list(char.get("mood") or []),
            "physical_state": list(char.get("physical_state") or []),
            "outfit": dict(char.get("outfit") or {}),
        }
    rels = {}
    for rel in relationships:
        a, b = sorted(rel["pair"], key=str.lower)
        rels[f"{a}|{b}"] = {
            "pair": [a, b],
            "status": map_legacy_status(rel.get("status")),
            "a_to_b": rel.get("a_to_b") or {},
            "b_to_a": rel.get("b_to_a") or {},
        }
    scene = None
    if state.get("topic") or state.get("tone") or state.get("tension"):
        scene = {
            "topic": state.get("topic", ""),
            "tone": state.get("tone", ""),
            "tension": state.get("tension") or {},
        }
    return {
        "source": {"message_id": message_id, "swipe_id": 0},
        "created_at": _EPOCH.isoformat(),
        "time": state.get("time"),
        "location": _legacy_location(state) if state.get("location") else None,
        "forecasts": {},
        "scene": scene,
        "characters": characters,
        "characters_present": list(characters),
        "relationships": rels,
        "current_chapter": 0,
        "narrative_events": [],
    }


def _diff_states(factory: _EventFactory, mid: int, prev: Document, cur: Document) -> None:
    """Synthesize the events that turn ``prev`` into ``cur``."""
    if prev.get("time") and cur.get("time") and prev["time"] != cur["time"]:
        delta = datetime.fromisoformat(cur["time"]) - datetime.fromisoformat(prev["time"])
        if delta.total_seconds() > 0:
            factory.add(mid, "time", "delta", delta={
                "days": delta.days,
                "hours": delta.seconds // 3600,
                "minutes": (delta.seconds % 3600) // 60,
                "seconds": delta.seconds % 60,
            })

    old_loc, new_loc = _legacy_location(prev), _legacy_location(cur)
    if cur.get("location") and any(old_loc[k] != new_loc[k] for k in ("area", "place", "position")):
        factory.add(
            mid, "location", "moved",
            new_area=new_loc["area"], new_place=new_loc["place"],
            new_position=new_loc["position"], new_location_type=new_loc["location_type"],
            previous_area=old_loc["area"], previous_place=old_loc["place"],
            previous_position=old_loc["position"],
        )
        if old_loc["place"] != new_loc["place"]:
            old_loc["props"] = []
    for prop in new_loc["props"]:
        if prop not in old_loc["props"]:
            factory.add(mid, "location", "prop_added", prop=prop)
    for prop in old_loc["props"]:
        if prop not in new_loc["props"]:
            factory.add(mid, "location", "prop_removed", prop=prop)

    old_chars, new_chars = _legacy_characters(prev), _legacy_characters(cur)
    for name in new_chars:
        if name not in old_chars:
            factory.add(mid, "character", "appeared", character=name)
    for name in old_chars:
        if name not in new_chars:
            factory.add(mid, "character", "departed", character=name)
    for name, char in new_chars.items():
        old = old_chars.get(name, {})
        if char.get("position") and char.get("position") != old.get("position"):
            factory.add(mid, "character", "position_changed", character=name,
                        new_value=char["position"], previous_value=old.get("position"))
        if char.get("activity") != old.get("activity"):
            factory.add(mid, "character", "activity_changed", character=name,
                        new_value=char.get("activity"), previous_value=old.get("activity"))
        for field, added, removed in (("mood", "mood_added", "mood_removed"),
                                      ("physical_state", "physical_added", "physical_removed")):
            before, after = old.get(field) or [], char.get(field) or []
            for value in after:
                if value not in before:
                    factory.add(mid, "character", added, character=name, value=value)
            for value in before:
                if value not in after:
                    factory.add(mid, "character", removed, character=name, value=value)
        old_outfit, new_outfit = old.get("outfit") or {}, char.get("outfit") or {}
        for slot in sorted(set(old_outfit) | set(new_outfit)):
            if old_outfit.get(slot) != new_outfit.get(slot):
                factory.add(mid, "character", "outfit_changed", character=name, slot=slot,
                            new_value=new_outfit.get(slot), previous_value=old_outfit.get(slot))

    if (cur.get("topic"), cur.get("tone")) != (prev.get("topic"), prev.get("tone")) and cur.get("topic"):
        factory.add(mid, "topic_tone", "changed", topic=cur.get("topic", ""), tone=cur.get("tone", ""))
    if cur.get("tension") and cur.get("tension") != prev.get("tension"):
        factory.add(mid, "tension", "changed", **cur["tension"])


def migrate_v0_to_v1(doc: Document) -> Document:
    """Fold a flat per-message state history into a Snapshot plus diff events."""
    if document_version(doc) >= 1:
        return doc
    doc = copy.deepcopy(doc)
    states = doc.get("states")
    if not isinstance(states, dict):
        raise MigrationError("Legacy document has no 'states' mapping")
    try:
        ordered: List[Tuple[int, Document]] = sorted((int(k), v) for k, v in states.items())
    except (TypeError, ValueError) as exc:
        raise MigrationError(f"Legacy state keys must be message ids: {exc}") from exc
    relationships = doc.get("relationships") or []

    factory = _EventFactory()
    snapshot = None
    if ordered:
        first_id, first_state = ordered[0]
        snapshot = _legacy_snapshot(first_id, first_state, relationships)
        for (_, prev), (mid, cur) in zip(ordered, ordered[1:]):
            _diff_states(factory, mid, prev, cur)

    for rel in relationships:
        for milestone in rel.get("milestones") or []:
            factory.add(
                int(milestone.get("message_id", 0)), "relationship", "subject",
                pair=sorted(rel["pair"], key=str.lower),
                subject=milestone["subject"],
                milestone_description=milestone.get("description"),
            )
    for chapter in doc.get("chapters") or []:
        if chapter.get("end_message_id") is None:
            continue
        end = int(chapter["end_message_id"])
        factory.add(end, "chapter", "ended", chapter_index=chapter["index"],
                    reason=chapter.get("reason") or "manual")
        if chapter.get("title") or chapter.get("summary"):
            factory.add(end, "chapter", "description", chapter_index=chapter["index"],
                        title=chapter.get("title", ""), summary=chapter.get("summary", ""))

    log.info("Migrated legacy document: %d states -> snapshot + %d events",
             len(ordered), len(factory.events))
    return {"version": 1, "snapshot": snapshot, "events": factory.events}


# ── v1 -> v2 ────────────────────────────────────────────────────────────


def migrate_v1_to_v2(doc: Document) -> Document:
    """Split single-stream narrative events into description + subject events."""
    if document_version(doc) >= 2:
        return doc
    out = copy.deepcopy(doc)
    events: List[Document] = []
    for event in out.get("events") or []:
        if (event.get("kind"), event.get("subkind")) != ("narrative", "event"):
            events.append(event)
            continue
        base = {k: event[k] for k in ("source", "created_at", "deleted") if k in event}
        events.append({
            **base,
            "id": event["id"],
            "kind": "narrative",
            "subkind": "description",
            "description": event.get("description", ""),
        })
        for i, subject in enumerate(event.get("subjects") or []):
            events.append({
                **base,
                "id": f"{event['id']}-s{i}",
                "kind": "relationship",
                "subkind": "subject",
                "pair": subject["pair"],
                "subject": subject["subject"],
                "milestone_description": subject.get("milestone_description"),
            })
    out["events"] = events
    out["version"] = 2
    return out


MIGRATIONS: List[Tuple[int, Callable[[Document], Document]]] = [
    (1, migrate_v0_to_v1),
    (2, migrate_v1_to_v2),
]


def migrate(doc: Document) -> Document:
    """Bring a document up to ``CURRENT_VERSION``."""
    version = document_version(doc)
    if version > CURRENT_VERSION:
        raise MigrationError(
            f"Document version {version} is newer than supported version {CURRENT_VERSION}"
        )
    for target, migration in MIGRATIONS:
        if version < target:
            doc = migration(doc)
            version = document_version(doc)
            log.info("Migrated store document to version %d", version)
    return doc

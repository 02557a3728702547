"""Projection engine: state at any branch coordinate, with caching.

A projection is the Snapshot plus every active event on the canonical path
with ``anchor < message_id <= target``, replayed in ``(message_id,
created_at)`` order.  Results are cached per target message id.  A cache
entry remembers which swipe was canonical at every event-bearing message it
covers (its *fingerprint*), so changing the host's swipe selection misses
the cache without any explicit notification; appends and deletions drop the
entries at or after the lowest message they touched.

A miss does not always replay from the Snapshot: the nearest cached
ancestor whose fingerprint still agrees is used as the starting point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import groupby
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from scenetracker.models.common import MessageAndSwipe, Pair
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import (
    BaseEvent,
    NarrativeDescriptionEvent,
    RelationshipSubjectEvent,
)
from scenetracker.models.state import NarrativeEvent, NarrativeSubjectRef, Projection, Snapshot
from scenetracker.models.subjects import is_milestone_worthy
from scenetracker.store.apply import apply_event
from scenetracker.store.climate import compute_climate
from scenetracker.store.event_log import EventLog

log = logging.getLogger(__name__)

Fingerprint = Tuple[Tuple[int, int], ...]
SeenSubjects = FrozenSet[Tuple[Pair, str]]


@dataclass
class _CacheEntry:
    fingerprint: Fingerprint
    projection: Projection
    seen_subjects: SeenSubjects


class ProjectionEngine:
    def __init__(self, log_: EventLog, snapshot: Optional[Snapshot] = None):
        self._log = log_
        self._snapshot = snapshot
        self._cache: Dict[int, _CacheEntry] = {}
        self._message_ids: Tuple[int, List[int]] = (-1, [])
        self.hits = 0
        self.misses = 0
        log_.add_listener(self._on_log_change)

    # ── Snapshot & invalidation ─────────────────────────────────────────

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    def set_snapshot(self, snapshot: Optional[Snapshot]) -> None:
        self._snapshot = snapshot
        self.invalidate()

    def invalidate(self) -> None:
        self._cache.clear()

    def _on_log_change(self, lowest_message_id: int) -> None:
        stale = [k for k in self._cache if k >= lowest_message_id]
        for key in stale:
            del self._cache[key]
        if stale:
            log.debug("Invalidated %d cached projections from message %d",
                      len(stale), lowest_message_id)

    # ── Fingerprints ────────────────────────────────────────────────────

    def _event_message_ids(self) -> List[int]:
        revision, ids = self._message_ids
        if revision != self._log.revision:
            ids = self._log.get_message_ids_with_events()
            self._message_ids = (self._log.revision, ids)
        return ids

    def _fingerprint(self, message_id: int, swipe_context: SwipeContext) -> Fingerprint:
        anchor = self._snapshot.source.message_id if self._snapshot else -1
        return tuple(
            (mid, swipe_context(mid))
            for mid in self._event_message_ids()
            if anchor < mid <= message_id
        )

    # ── Projection ──────────────────────────────────────────────────────

    def project_state_at_message(
        self, message_id: int, swipe_context: SwipeContext
    ) -> Optional[Projection]:
        """State after ``message_id`` on the canonical path.

        Returns None when there is no Snapshot yet or ``message_id`` lies
        before the Snapshot's anchor: there is no state to show there.
        """
        entry = self._project(message_id, swipe_context)
        if entry is None:
            return None
        return entry.projection.model_copy(deep=True)

    def project_with_turn_events(
        self,
        turn_events: Sequence[BaseEvent],
        message_id: int,
        swipe_context: SwipeContext,
    ) -> Optional[Projection]:
        """Committed state at ``message_id`` plus an uncommitted batch.

        The batch is applied in the order given, after every committed event,
        and is never cached.
        """
        entry = self._project(message_id, swipe_context)
        if entry is None:
            return None
        state = entry.projection.model_copy(deep=True)
        pending = [e for e in turn_events if not e.deleted]
        self._replay(state, pending, entry.seen_subjects)
        state.climate = compute_climate(state.forecasts, state.time, state.location)
        return state

    def _project(self, message_id: int, swipe_context: SwipeContext) -> Optional[_CacheEntry]:
        snapshot = self._snapshot
        if snapshot is None or message_id < snapshot.source.message_id:
            return None

        fingerprint = self._fingerprint(message_id, swipe_context)
        cached = self._cache.get(message_id)
        if cached is not None and cached.fingerprint == fingerprint:
            self.hits += 1
            return cached
        self.misses += 1

        base_id, base = self._nearest_ancestor(message_id, fingerprint)
        if base is None:
            state = Projection.from_snapshot(snapshot)
            seen: SeenSubjects = frozenset()
            after = snapshot.source.message_id
        else:
            state = base.projection.model_copy(deep=True)
            seen = base.seen_subjects
            after = base_id

        events = self._log.canonical_events(swipe_context, up_to=message_id, after=after)
        seen = self._replay(state, events, seen)
        state.source = MessageAndSwipe(message_id=message_id, swipe_id=swipe_context(message_id))
        state.climate = compute_climate(state.forecasts, state.time, state.location)

        entry = _CacheEntry(fingerprint=fingerprint, projection=state, seen_subjects=seen)
        self._cache[message_id] = entry
        return entry

    def _nearest_ancestor(
        self, message_id: int, fingerprint: Fingerprint
    ) -> Tuple[int, Optional[_CacheEntry]]:
        for key in sorted((k for k in self._cache if k < message_id), reverse=True):
            entry = self._cache[key]
            prefix = tuple(fp for fp in fingerprint if fp[0] <= key)
            if entry.fingerprint == prefix:
                return key, entry
        return -1, None

    @staticmethod
    def _replay(
        state: Projection, events: Sequence[BaseEvent], seen: SeenSubjects
    ) -> SeenSubjects:
        """Apply ``events`` to ``state``, collecting narrative events as they occur."""
        seen_set = set(seen)
        for _message_id, group in groupby(events, key=lambda e: e.source.message_id):
            batch = list(group)
            chapter = state.current_chapter
            subjects: List[NarrativeSubjectRef] = []
            for event in batch:
                apply_event(state, event)
                if isinstance(event, RelationshipSubjectEvent):
                    key = (tuple(event.pair), event.subject)
                    first = is_milestone_worthy(event.subject) and key not in seen_set
                    seen_set.add(key)  # type: ignore[arg-type]
                    subjects.append(NarrativeSubjectRef(
                        pair=event.pair,
                        subject=event.subject,
                        is_milestone=first,
                        milestone_description=event.milestone_description if first else None,
                    ))
            for event in batch:
                if isinstance(event, NarrativeDescriptionEvent):
                    state.narrative_events.append(NarrativeEvent(
                        source=event.source,
                        description=event.description,
                        witnesses=list(state.characters_present),
                        location=state.location.describe() if state.location else "",
                        time=state.time,
                        tension=state.scene.tension.model_copy() if state.scene else None,
                        subjects=subjects,
                        chapter_index=chapter,
                    ))
        return frozenset(seen_set)  # type: ignore[arg-type]

"""EventStore: the Snapshot, the event log and the projection engine as one handle.

A store belongs to exactly one chat session.  Nothing in the package holds
a store globally; whoever needs one is handed the session's instance.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError

from scenetracker.errors import MigrationError
from scenetracker.models.common import MessageAndSwipe, Pair
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import BaseEvent
from scenetracker.models.state import (
    ChapterInfo,
    MilestoneInfo,
    NarrativeEvent,
    Projection,
    Snapshot,
)
from scenetracker.store import milestones as _milestones
from scenetracker.store.event_log import EventLog
from scenetracker.store.narrative import compute_chapters
from scenetracker.store.projection import ProjectionEngine
from scenetracker.store.serialization import from_document, to_document

log = logging.getLogger(__name__)


class EventStore:
    def __init__(
        self,
        snapshot: Optional[Snapshot] = None,
        events: Iterable[BaseEvent] = (),
    ):
        self.log = EventLog(events)
        self.projections = ProjectionEngine(self.log, snapshot)

    # ── Snapshot ────────────────────────────────────────────────────────

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self.projections.snapshot

    @property
    def has_snapshot(self) -> bool:
        return self.projections.snapshot is not None

    def replace_initial_snapshot(self, snapshot: Optional[Snapshot]) -> None:
        """Swap the baseline wholesale (bootstrap, reset or migration)."""
        log.info("Initial snapshot %s at %s",
                 "replaced" if self.has_snapshot else "set",
                 snapshot.source if snapshot else None)
        self.projections.set_snapshot(snapshot)

    # ── Queries ─────────────────────────────────────────────────────────

    def project_state_at_message(
        self, message_id: int, swipe_context: SwipeContext
    ) -> Optional[Projection]:
        return self.projections.project_state_at_message(message_id, swipe_context)

    def project_with_turn_events(
        self,
        turn_events: Sequence[BaseEvent],
        message_id: int,
        swipe_context: SwipeContext,
    ) -> Optional[Projection]:
        return self.projections.project_with_turn_events(turn_events, message_id, swipe_context)

    def get_narrative_events(
        self, message_id: int, swipe_context: SwipeContext
    ) -> List[NarrativeEvent]:
        projection = self.project_state_at_message(message_id, swipe_context)
        return projection.narrative_events if projection else []

    def get_chapters(self, message_id: int, swipe_context: SwipeContext) -> List[ChapterInfo]:
        return compute_chapters(self.log, message_id, swipe_context)

    def get_milestones_at_message(
        self, message_id: int, swipe_context: SwipeContext
    ) -> List[MilestoneInfo]:
        return _milestones.get_milestones_at_message(self.log, message_id, swipe_context)

    def get_milestones_for_pair(
        self, pair: Pair, swipe_context: SwipeContext, up_to: Optional[int] = None
    ) -> List[MilestoneInfo]:
        return _milestones.get_milestones_for_pair(self.log, pair, swipe_context, up_to)

    def is_first_occurrence(
        self,
        pair: Pair,
        subject: str,
        before_message_id: int,
        swipe_context: SwipeContext,
        *,
        event_id: Optional[str] = None,
    ) -> bool:
        return _milestones.is_first_occurrence(
            self.log, pair, subject, before_message_id, swipe_context, event_id=event_id
        )

    def get_message_ids_with_events(self) -> List[int]:
        return self.log.get_message_ids_with_events()

    def get_active_events(self) -> List[BaseEvent]:
        return self.log.get_active_events()

    def get_events_at(self, coordinate: MessageAndSwipe) -> List[BaseEvent]:
        return self.log.get_events_at(coordinate)

    def last_extracted_message_id(self, swipe_context: SwipeContext) -> Optional[int]:
        """Newest message with canonical events, or the Snapshot anchor."""
        for mid in reversed(self.log.get_message_ids_with_events()):
            if any(swipe_context.is_canonical(e.source) for e in self.log.get_events_at_message(mid)):
                return mid
        return self.snapshot.source.message_id if self.snapshot else None

    # ── Commands ────────────────────────────────────────────────────────

    def append_events(self, events: Sequence[BaseEvent]) -> None:
        self.log.append(events)

    def delete_events_at_message(self, coordinate: MessageAndSwipe) -> int:
        return self.log.soft_delete(coordinate)

    def delete_all_events_for_message(self, message_id: int) -> int:
        return self.log.soft_delete_message(message_id)

    def delete_events_after_message(self, message_id: int) -> int:
        return self.log.soft_delete_after(message_id)

    def reindex_swipes_after_deletion(self, message_id: int, removed_swipe_id: int) -> int:
        return self.log.reindex_swipes_after_deletion(message_id, removed_swipe_id)

    def replace_events_at_message(
        self, coordinate: MessageAndSwipe, events: Sequence[BaseEvent]
    ) -> None:
        self.log.replace_events_at(coordinate, events)

    def clear(self) -> None:
        """Forget the baseline and hide every event (they stay in the document)."""
        self.log.clear()
        self.replace_initial_snapshot(None)

    # ── Serialization ───────────────────────────────────────────────────

    def serialize(self) -> Dict[str, Any]:
        return to_document(self.snapshot, self.log.all_events())

    @classmethod
    def deserialize(cls, data: Union[str, bytes, Dict[str, Any]]) -> EventStore:
        """Strict load: raises on a corrupt or unsupported document."""
        doc = from_document(data)
        return cls(snapshot=doc.snapshot, events=doc.events)

    @classmethod
    def from_document(cls, data: Union[str, bytes, Dict[str, Any], None]) -> EventStore:
        """Lenient load: a missing or corrupt document yields an empty store."""
        if data is None:
            return cls()
        try:
            return cls.deserialize(data)
        except (MigrationError, ValidationError, KeyError, TypeError, ValueError) as exc:
            log.warning("Discarding unreadable store document, starting empty: %s", exc)
            return cls()

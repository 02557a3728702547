"""Append-only event log with soft deletion.

The log keeps events ordered by ``(source.message_id, created_at)``.  The
sort is stable, so events sharing a message id and timestamp keep the order
in which they were appended.  Nothing is ever physically removed: deleting
sets the ``deleted`` flag on a replacement copy of the event.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from scenetracker.errors import StoreError
from scenetracker.models.common import MessageAndSwipe, Pair, sort_pair
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import BaseEvent, relationship_pair

log = logging.getLogger(__name__)

ChangeListener = Callable[[int], None]


class EventLog:
    def __init__(self, events: Iterable[BaseEvent] = ()):
        self._events: List[BaseEvent] = []
        self._ids: set[str] = set()
        self._listeners: List[ChangeListener] = []
        self.revision = 0
        initial = list(events)
        if initial:
            self._insert(initial)

    # ── Change notification ─────────────────────────────────────────────

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callback receiving the lowest message id a change touched."""
        self._listeners.append(listener)

    def _changed(self, lowest_message_id: int) -> None:
        self.revision += 1
        for listener in self._listeners:
            listener(lowest_message_id)

    # ── Reads ───────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[BaseEvent]:
        return iter(list(self._events))

    def all_events(self) -> List[BaseEvent]:
        """Every stored event, deleted ones included."""
        return list(self._events)

    def get_active_events(self) -> List[BaseEvent]:
        return [e for e in self._events if not e.deleted]

    def get_message_ids_with_events(self) -> List[int]:
        return sorted({e.source.message_id for e in self._events if not e.deleted})

    def get_events_at(self, coordinate: MessageAndSwipe) -> List[BaseEvent]:
        return [e for e in self._events if not e.deleted and e.source == coordinate]

    def get_events_at_message(self, message_id: int) -> List[BaseEvent]:
        return [
            e for e in self._events
            if not e.deleted and e.source.message_id == message_id
        ]

    def canonical_events(
        self,
        swipe_context: SwipeContext,
        *,
        up_to: Optional[int] = None,
        before: Optional[int] = None,
        after: Optional[int] = None,
    ) -> List[BaseEvent]:
        """Active events on the canonical path, optionally bounded by message id.

        ``up_to`` is inclusive, ``before`` and ``after`` are exclusive.
        """
        result = []
        for event in self._events:
            if event.deleted:
                continue
            mid = event.source.message_id
            if up_to is not None and mid > up_to:
                break
            if before is not None and mid >= before:
                break
            if after is not None and mid <= after:
                continue
            if swipe_context.is_canonical(event.source):
                result.append(event)
        return result

    def get_relationship_events_for_pair(self, pair: Pair) -> List[BaseEvent]:
        wanted = sort_pair(*pair)
        return [
            e for e in self._events
            if not e.deleted and relationship_pair(e) == wanted
        ]

    # ── Writes ──────────────────────────────────────────────────────────

    def append(self, events: Sequence[BaseEvent]) -> None:
        """Append a batch atomically.

        The whole batch is validated before anything is stored; one bad
        event rejects the batch and leaves the log unchanged.
        """
        batch = list(events)
        if not batch:
            return
        seen: set[str] = set()
        for event in batch:
            if not isinstance(event, BaseEvent):
                raise StoreError(f"Not an event: {event!r}")
            if event.id in self._ids or event.id in seen:
                raise StoreError(f"Duplicate event id {event.id}")
            seen.add(event.id)
        self._insert(batch)
        lowest = min(e.source.message_id for e in batch)
        log.debug("Appended %d events (lowest message %d)", len(batch), lowest)
        self._changed(lowest)

    def _insert(self, batch: List[BaseEvent]) -> None:
        # Sort into a new list so a failure leaves the log as it was.
        merged = sorted([*self._events, *batch], key=lambda e: e.sort_key())
        self._events = merged
        self._ids.update(e.id for e in batch)

    def _soft_delete_where(self, predicate: Callable[[BaseEvent], bool]) -> int:
        lowest: Optional[int] = None
        count = 0
        for i, event in enumerate(self._events):
            if event.deleted or not predicate(event):
                continue
            self._events[i] = event.model_copy(update={"deleted": True})
            count += 1
            mid = event.source.message_id
            lowest = mid if lowest is None else min(lowest, mid)
        if lowest is not None:
            self._changed(lowest)
        return count

    def soft_delete(self, coordinate: MessageAndSwipe) -> int:
        """Mark every event at one coordinate deleted; returns how many."""
        return self._soft_delete_where(lambda e: e.source == coordinate)

    def soft_delete_message(self, message_id: int) -> int:
        """Mark every event at a message deleted, on all swipes."""
        return self._soft_delete_where(lambda e: e.source.message_id == message_id)

    def soft_delete_after(self, message_id: int) -> int:
        return self._soft_delete_where(lambda e: e.source.message_id > message_id)

    def soft_delete_relationship_events_for_pair(self, pair: Pair) -> int:
        wanted = sort_pair(*pair)
        return self._soft_delete_where(lambda e: relationship_pair(e) == wanted)

    def clear(self) -> int:
        return self._soft_delete_where(lambda e: True)

    def replace_events_at(
        self, coordinate: MessageAndSwipe, events: Sequence[BaseEvent]
    ) -> None:
        """Swap the active events at a coordinate for a new set (manual edits)."""
        batch = list(events)
        for event in batch:
            if event.source != coordinate:
                raise StoreError(
                    f"Event {event.id} is anchored at {event.source}, not {coordinate}"
                )
        ids = [e.id for e in batch]
        if len(set(ids)) != len(ids) or any(i in self._ids for i in ids):
            raise StoreError("Replacement events must carry fresh ids")
        # Append first: if it raises, the old events stay active.
        self.append(batch)
        fresh = set(ids)
        self._soft_delete_where(lambda e: e.source == coordinate and e.id not in fresh)

    def reindex_swipes_after_deletion(self, message_id: int, removed_swipe_id: int) -> int:
        """Keep swipe ids dense after the host deletes one alternate.

        Events on the removed swipe are soft-deleted; events on higher swipes
        at the same message move down by one.  Returns the number shifted.
        """
        self.soft_delete(MessageAndSwipe(message_id=message_id, swipe_id=removed_swipe_id))
        shifted = 0
        for i, event in enumerate(self._events):
            src = event.source
            if src.message_id == message_id and src.swipe_id > removed_swipe_id:
                self._events[i] = event.model_copy(update={
                    "source": MessageAndSwipe(message_id=message_id, swipe_id=src.swipe_id - 1)
                })
                shifted += 1
        if shifted:
            self._changed(message_id)
        return shifted

"""Staging buffer for the events of one uncommitted turn.

Extractors add candidates; later phases may swap a candidate for a
corrected copy (``replace``) or drop it (``discard``).  Events are frozen, so
nothing outside this buffer ever observes a change.  Only the final list is
committed.
"""

from __future__ import annotations

from typing import Iterator, List, Optional, Sequence, Type, TypeVar

from scenetracker.errors import StoreError
from scenetracker.models.events import BaseEvent, RelationshipSubjectEvent, matches_kind

E = TypeVar("E", bound=BaseEvent)

# Fields a later phase may correct on a staged subject event.
_CORRECTABLE = {"subject", "milestone_description"}


class TurnBatch:
    def __init__(self) -> None:
        self._events: List[BaseEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[BaseEvent]:
        return iter(list(self._events))

    @property
    def events(self) -> List[BaseEvent]:
        return list(self._events)

    def add(self, events: Sequence[BaseEvent]) -> None:
        self._events.extend(events)

    def of_type(self, cls: Type[E]) -> List[E]:
        return [e for e in self._events if isinstance(e, cls)]

    def of_kind(self, kind: str, subkind: Optional[str] = None) -> List[BaseEvent]:
        return [e for e in self._events if matches_kind(e, kind, subkind)]

    def _index(self, event_id: str) -> int:
        for i, event in enumerate(self._events):
            if event.id == event_id:
                return i
        raise StoreError(f"Event {event_id} is not staged in this turn")

    def replace(self, event_id: str, replacement: BaseEvent) -> None:
        """Swap a staged subject event for a corrected copy.

        The copy must keep the original's id, coordinate and kind, and may
        differ only in the subject or the milestone description.
        """
        i = self._index(event_id)
        original = self._events[i]
        if not isinstance(original, RelationshipSubjectEvent) or type(replacement) is not type(original):
            raise StoreError("Only relationship subject events may be corrected in place")
        changed = {
            name for name in type(original).model_fields
            if getattr(original, name) != getattr(replacement, name)
        }
        if not changed <= _CORRECTABLE:
            raise StoreError(f"Cannot correct fields {sorted(changed - _CORRECTABLE)}")
        self._events[i] = replacement

    def discard(self, event_id: str) -> None:
        del self._events[self._index(event_id)]

    def clear(self) -> None:
        self._events.clear()

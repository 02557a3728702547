"""Message and run strategies.

A *message strategy* says how much transcript an extractor reads; a *run
strategy* says on which turns it fires.  Every strategy that looks at past
events or past runs only counts those on the canonical path, so a discarded
swipe never suppresses or triggers an extractor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Sequence, Tuple, Union

from scenetracker.models.common import MessageAndSwipe
from scenetracker.models.events import BaseEvent, matches_kind

if TYPE_CHECKING:
    from scenetracker.extractors.base import ExtractorRun

KindFilter = Tuple[str, ...]  # ("kind",) or ("kind", "subkind")


def _matches_any(event: BaseEvent, kinds: Sequence[KindFilter]) -> bool:
    return any(matches_kind(event, *k) for k in kinds)


# ── Message strategies ──────────────────────────────────────────────────


@dataclass(frozen=True)
class FixedNumber:
    n: int


@dataclass(frozen=True)
class LastXMessages:
    x: int


@dataclass(frozen=True)
class SinceLastEvent:
    pass


@dataclass(frozen=True)
class SinceLastEventOfKind:
    kinds: Tuple[KindFilter, ...]


MessageStrategy = Union[FixedNumber, LastXMessages, SinceLastEvent, SinceLastEventOfKind]


def message_count(strategy: MessageStrategy, run: ExtractorRun) -> int:
    """How many messages, ending at the current one, go into the prompt."""
    current = run.current.message_id
    if isinstance(strategy, FixedNumber):
        return strategy.n
    if isinstance(strategy, LastXMessages):
        return strategy.x
    events = run.store.log.canonical_events(run.swipe, before=current)
    if isinstance(strategy, SinceLastEventOfKind):
        events = [e for e in events if _matches_any(e, strategy.kinds)]
    if not events:
        return current + 1
    return current - events[-1].source.message_id + 1


def message_window(strategy: MessageStrategy, run: ExtractorRun) -> Tuple[int, int]:
    count = max(1, message_count(strategy, run))
    end = run.current.message_id
    return max(0, end - count + 1), end


# ── Run strategies ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class EveryMessage:
    pass


@dataclass(frozen=True)
class EveryUserMessage:
    pass


@dataclass(frozen=True)
class EveryAssistantMessage:
    pass


@dataclass(frozen=True)
class EveryNMessages:
    n: int
    offset: int = 0


@dataclass(frozen=True)
class NSinceLastProducedEvents:
    n: int


@dataclass(frozen=True)
class NSinceLastEventOfKind:
    n: int
    kinds: Tuple[KindFilter, ...]


@dataclass(frozen=True)
class NewEventsOfKind:
    kinds: Tuple[KindFilter, ...]


@dataclass(frozen=True)
class Custom:
    check: Callable[[ExtractorRun], bool]


RunStrategy = Union[
    EveryMessage, EveryUserMessage, EveryAssistantMessage, EveryNMessages,
    NSinceLastProducedEvents, NSinceLastEventOfKind, NewEventsOfKind, Custom,
]


@dataclass
class ExtractorHistory:
    """Where each extractor last ran and produced events (process-local)."""

    ran_at: Dict[str, List[MessageAndSwipe]] = field(default_factory=dict)
    produced_at: Dict[str, List[MessageAndSwipe]] = field(default_factory=dict)

    def record(self, name: str, at: MessageAndSwipe, produced: bool) -> None:
        self.ran_at.setdefault(name, []).append(at)
        if produced:
            self.produced_at.setdefault(name, []).append(at)

    def forget_after(self, message_id: int) -> None:
        for table in (self.ran_at, self.produced_at):
            for name, entries in table.items():
                table[name] = [m for m in entries if m.message_id <= message_id]


def evaluate_run_strategy(strategy: RunStrategy, run: ExtractorRun, name: str) -> bool:
    current = run.current.message_id
    chat = run.context.chat
    message = chat[current] if 0 <= current < len(chat) else None

    if isinstance(strategy, EveryMessage):
        return True
    if isinstance(strategy, EveryUserMessage):
        return message is not None and message.is_user
    if isinstance(strategy, EveryAssistantMessage):
        return message is not None and not message.is_user and not message.is_system
    if isinstance(strategy, EveryNMessages):
        return strategy.n > 0 and (current + 1 - strategy.offset) % strategy.n == 0
    if isinstance(strategy, NSinceLastProducedEvents):
        produced = [
            m for m in run.history.produced_at.get(name, [])
            if m.message_id < current and run.swipe.is_canonical(m)
        ]
        if not produced:
            return True
        return current - produced[-1].message_id >= strategy.n
    if isinstance(strategy, NSinceLastEventOfKind):
        matching = [
            e for e in run.store.log.canonical_events(run.swipe, before=current)
            if _matches_any(e, strategy.kinds)
        ]
        if not matching:
            return True
        return current - matching[-1].source.message_id >= strategy.n
    if isinstance(strategy, NewEventsOfKind):
        return any(_matches_any(e, strategy.kinds) for e in run.batch.events)
    if isinstance(strategy, Custom):
        return strategy.check(run)
    raise TypeError(f"Unknown run strategy: {strategy!r}")

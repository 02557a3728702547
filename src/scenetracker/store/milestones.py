"""Branch-aware milestone queries.

A milestone is the first ``relationship/subject`` event for a pair and a
milestone-worthy subject on the canonical path.  Because canonicality
depends on the current swipe selection, every query takes a SwipeContext;
the same log can yield different milestones on different branches.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from scenetracker.models.common import Pair, sort_pair
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import BaseEvent, RelationshipSubjectEvent
from scenetracker.models.state import MilestoneInfo
from scenetracker.models.subjects import is_milestone_worthy, milestone_display_name
from scenetracker.store.event_log import EventLog


def _subject_events(
    log: EventLog,
    swipe_context: SwipeContext,
    *,
    before: Optional[int] = None,
    up_to: Optional[int] = None,
) -> List[RelationshipSubjectEvent]:
    return [
        e for e in log.canonical_events(swipe_context, before=before, up_to=up_to)
        if isinstance(e, RelationshipSubjectEvent)
    ]


def is_first_occurrence(
    log: EventLog,
    pair: Pair,
    subject: str,
    before_message_id: int,
    swipe_context: SwipeContext,
    *,
    event_id: Optional[str] = None,
) -> bool:
    """Whether ``subject`` counts as a first occurrence for ``pair``.

    Only canonical, active events strictly before ``before_message_id`` are
    considered.  Without ``event_id`` the question is "has this never
    happened yet", so any matching earlier event makes it false.  With
    ``event_id`` the question is "is that event the first one", which is
    false when the event lies outside the window.
    """
    if not is_milestone_worthy(subject):
        return False
    wanted = sort_pair(*pair)
    matches = [
        e for e in _subject_events(log, swipe_context, before=before_message_id)
        if e.pair == wanted and e.subject == subject
    ]
    if event_id is None:
        return not matches
    return bool(matches) and matches[0].id == event_id


def _first_occurrences(events: Iterable[RelationshipSubjectEvent]) -> List[RelationshipSubjectEvent]:
    seen: Set[Tuple[Pair, str]] = set()
    firsts = []
    for event in events:
        key = (event.pair, event.subject)
        if key in seen or not is_milestone_worthy(event.subject):
            continue
        seen.add(key)
        firsts.append(event)
    return firsts


def _info(event: RelationshipSubjectEvent) -> MilestoneInfo:
    return MilestoneInfo(
        pair=event.pair,
        subject=event.subject,
        display_name=milestone_display_name(event.subject),
        source=event.source,
        description=event.milestone_description,
    )


def get_milestones_for_pair(
    log: EventLog,
    pair: Pair,
    swipe_context: SwipeContext,
    up_to: Optional[int] = None,
) -> List[MilestoneInfo]:
    wanted = sort_pair(*pair)
    events = [e for e in _subject_events(log, swipe_context, up_to=up_to) if e.pair == wanted]
    return [_info(e) for e in _first_occurrences(events)]


def get_milestones_at_message(
    log: EventLog, message_id: int, swipe_context: SwipeContext
) -> List[MilestoneInfo]:
    """All milestones, for every pair, reached by ``message_id``."""
    events = _subject_events(log, swipe_context, up_to=message_id)
    return [_info(e) for e in _first_occurrences(events)]


def milestones_by_pair(
    log: EventLog,
    swipe_context: SwipeContext,
    *,
    before: Optional[int] = None,
    extra: Iterable[BaseEvent] = (),
) -> Dict[Pair, Set[str]]:
    """Milestone subjects per pair, optionally including uncommitted events."""
    events = _subject_events(log, swipe_context, before=before)
    events += [e for e in extra if isinstance(e, RelationshipSubjectEvent) and not e.deleted]
    result: Dict[Pair, Set[str]] = {}
    for event in _first_occurrences(events):
        result.setdefault(event.pair, set()).add(event.subject)
    return result

"""Chapter list derived from chapter events on the canonical path."""

from __future__ import annotations

from typing import Dict, List

from scenetracker.models.context import SwipeContext
from scenetracker.models.events import ChapterDescribedEvent, ChapterEndedEvent
from scenetracker.models.state import ChapterInfo
from scenetracker.store.event_log import EventLog


def compute_chapters(
    log: EventLog, message_id: int, swipe_context: SwipeContext
) -> List[ChapterInfo]:
    """Chapters up to ``message_id``; the last entry is the chapter still open."""
    chapters: Dict[int, ChapterInfo] = {}
    current = 0
    for event in log.canonical_events(swipe_context, up_to=message_id):
        if isinstance(event, ChapterEndedEvent):
            info = chapters.setdefault(event.chapter_index, ChapterInfo(index=event.chapter_index))
            info.ended_at = event.source
            info.end_reason = event.reason
            current = max(current, event.chapter_index + 1)
        elif isinstance(event, ChapterDescribedEvent):
            info = chapters.setdefault(event.chapter_index, ChapterInfo(index=event.chapter_index))
            info.title = event.title
            info.summary = event.summary
    chapters.setdefault(current, ChapterInfo(index=current))
    return [chapters[i] for i in sorted(chapters)]

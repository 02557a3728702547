"""Chapter boundaries and chapter summaries."""

from __future__ import annotations

import logging
from typing import List, Literal

from pydantic import BaseModel

from scenetracker.extractors.base import EventExtractor, ExtractorRun, format_location, format_time
from scenetracker.extractors.strategies import Custom, FixedNumber, NewEventsOfKind
from scenetracker.models.events import (
    BaseEvent,
    ChapterDescribedEvent,
    ChapterEndedEvent,
    LocationMovedEvent,
    TimeDeltaEvent,
)

log = logging.getLogger(__name__)

# A time skip of at least this many hours can close a chapter.
SIGNIFICANT_JUMP_HOURS = 6


def _moved(run: ExtractorRun) -> bool:
    return bool(run.batch.of_type(LocationMovedEvent))


def _jumped(run: ExtractorRun) -> bool:
    return any(
        e.delta.days >= 1 or e.delta.hours >= SIGNIFICANT_JUMP_HOURS
        for e in run.batch.of_type(TimeDeltaEvent)
    )


def _boundary_candidate(run: ExtractorRun) -> bool:
    return _moved(run) or _jumped(run)


class ChapterEndedAnswer(BaseModel):
    reasoning: str = ""
    should_end: bool = False


class ChapterEndedExtractor(EventExtractor):
    """Closes the open chapter after a location change or a large time skip,
    if the judgment agrees the story has reached a natural break."""

    name = "chapter_ended"
    display_name = "chapter end"
    category = "chapters"
    prompt_name = "chapter_ended"
    default_temperature = 0.3
    message_strategy = FixedNumber(3)
    run_strategy = Custom(_boundary_candidate)

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        moved, jumped = _moved(run), _jumped(run)
        answer = await self.ask(
            run,
            ChapterEndedAnswer,
            current_location=format_location(state),
            current_time=format_time(state),
            trigger=" and ".join(
                t for t, hit in (("a location change", moved), ("a time skip", jumped)) if hit
            ) or "none",
        )
        if not answer.should_end:
            return []
        reason: Literal["location_change", "time_jump", "both", "manual"]
        if moved and jumped:
            reason = "both"
        elif moved:
            reason = "location_change"
        else:
            reason = "time_jump"
        log.info("Chapter %d ended at %s (%s)", state.current_chapter, run.current, reason)
        return [ChapterEndedEvent(chapter_index=state.current_chapter, reason=reason, **self.at(run))]


class ChapterDescriptionAnswer(BaseModel):
    title: str = ""
    summary: str = ""


class ChapterDescriptionExtractor(EventExtractor):
    name = "chapter_description"
    display_name = "chapter summary"
    category = "chapters"
    prompt_name = "chapter_description"
    default_temperature = 0.5
    run_strategy = NewEventsOfKind(kinds=(("chapter", "ended"),))

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        ended = run.batch.of_type(ChapterEndedEvent)
        if not ended:
            return []
        index = ended[-1].chapter_index
        state = run.projection()
        beats = [n for n in state.narrative_events if n.chapter_index == index]
        answer = await self.ask(
            run,
            ChapterDescriptionAnswer,
            chapter_number=str(index + 1),
            narrative_events="\n".join(f"- {n.description}" for n in beats) or "(none recorded)",
        )
        if not answer.title and not answer.summary:
            return []
        return [ChapterDescribedEvent(
            chapter_index=index,
            title=answer.title.strip() or f"Chapter {index + 1}",
            summary=answer.summary.strip(),
            **self.at(run),
        )]

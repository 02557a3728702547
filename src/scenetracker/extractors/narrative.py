"""Narrative log entries and milestone descriptions."""

from __future__ import annotations

import logging
from typing import List, Set, Tuple

from pydantic import BaseModel

from scenetracker.extractors.base import (
    EventExtractor,
    ExtractorRun,
    format_characters_present,
    format_location,
    format_time,
)
from scenetracker.extractors.strategies import NewEventsOfKind
from scenetracker.models.common import Pair
from scenetracker.models.events import BaseEvent, NarrativeDescriptionEvent, RelationshipSubjectEvent
from scenetracker.models.subjects import is_milestone_worthy, milestone_display_name

log = logging.getLogger(__name__)


class NarrativeAnswer(BaseModel):
    reasoning: str = ""
    description: str = ""


class NarrativeDescriptionExtractor(EventExtractor):
    name = "narrative_description"
    display_name = "narrative"
    category = "narrative"
    prompt_name = "narrative_description"
    default_temperature = 0.6

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        answer = await self.ask(
            run,
            NarrativeAnswer,
            characters_present=format_characters_present(state),
            current_location=format_location(state),
            current_time=format_time(state),
        )
        description = answer.description.strip()
        if not description:
            return []
        return [NarrativeDescriptionEvent(description=description, **self.at(run))]


class MilestoneDescriptionAnswer(BaseModel):
    description: str = ""


class MilestoneDescriptionExtractor(EventExtractor):
    """Describes subjects staged this turn that are first occurrences.

    The description is written onto a corrected copy of the staged event;
    committed events are never touched.
    """

    name = "milestone_description"
    display_name = "milestones"
    category = "relationships"
    prompt_name = "milestone_description"
    default_temperature = 0.6
    run_strategy = NewEventsOfKind(kinds=(("relationship", "subject"),))

    def _firsts(self, run: ExtractorRun) -> List[RelationshipSubjectEvent]:
        seen: Set[Tuple[Pair, str]] = set()
        firsts = []
        for event in run.batch.of_type(RelationshipSubjectEvent):
            key = (event.pair, event.subject)
            if key in seen or event.milestone_description:
                continue
            seen.add(key)
            if not is_milestone_worthy(event.subject):
                continue
            if run.store.is_first_occurrence(
                event.pair, event.subject, run.current.message_id, run.swipe
            ):
                firsts.append(event)
        return firsts

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        for event in self._firsts(run):
            if run.token.cancelled:
                break
            a, b = event.pair
            answer = await self.ask(
                run,
                MilestoneDescriptionAnswer,
                character_a=a,
                character_b=b,
                milestone=milestone_display_name(event.subject),
            )
            description = answer.description.strip()
            if description:
                log.info("Milestone %s for %s & %s", event.subject, a, b)
                run.batch.replace(
                    event.id, event.model_copy(update={"milestone_description": description})
                )
        return []

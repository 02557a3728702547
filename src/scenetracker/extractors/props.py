"""Scene props: objects in the current place, including clothing taken off."""

from __future__ import annotations

import logging
from typing import List

from pydantic import BaseModel, Field

from scenetracker.extractors.base import EventExtractor, ExtractorRun, format_location, format_props
from scenetracker.extractors.strategies import NewEventsOfKind
from scenetracker.models.events import (
    BaseEvent,
    CharacterOutfitChangedEvent,
    LocationPropAddedEvent,
    LocationPropRemovedEvent,
)

log = logging.getLogger(__name__)


class PropsAnswer(BaseModel):
    reasoning: str = ""
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)


def _removed_clothing(run: ExtractorRun) -> List[str]:
    return [
        f"{e.previous_value} ({e.character})"
        for e in run.batch.of_type(CharacterOutfitChangedEvent)
        if e.previous_value and not e.new_value
    ]


class PropsChangeExtractor(EventExtractor):
    name = "props_change"
    display_name = "props"
    category = "props"
    prompt_name = "props_change"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        if state.location is None:
            return []
        answer = await self.ask(
            run,
            PropsAnswer,
            current_location=format_location(state),
            current_props=format_props(state),
            removed_clothing=", ".join(_removed_clothing(run)) or "None",
        )
        existing = {p.lower(): p for p in state.location.props}
        events: List[BaseEvent] = []
        for prop in answer.added:
            prop = prop.strip()
            if prop and prop.lower() not in existing:
                existing[prop.lower()] = prop
                events.append(LocationPropAddedEvent(prop=prop, **self.at(run)))
        for prop in answer.removed:
            original = existing.pop(prop.strip().lower(), None)
            if original is not None:
                events.append(LocationPropRemovedEvent(prop=original, **self.at(run)))
        return events


class PropsConfirmationAnswer(BaseModel):
    reasoning: str = ""
    rejected: List[str] = Field(
        default_factory=list,
        description="Props from the candidate list that are not actually in the scene",
    )


class PropsConfirmationExtractor(EventExtractor):
    """Second look at props added this turn; drops the ones the text does not support."""

    name = "props_confirmation"
    display_name = "props"
    category = "props"
    prompt_name = "props_confirmation"
    default_temperature = 0.2
    run_strategy = NewEventsOfKind(kinds=(("location", "prop_added"),))

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        candidates = run.batch.of_type(LocationPropAddedEvent)
        if not candidates:
            return []
        state = run.projection()
        answer = await self.ask(
            run,
            PropsConfirmationAnswer,
            current_location=format_location(state),
            candidate_props="\n".join(f"- {e.prop}" for e in candidates),
        )
        rejected = {r.strip().lower() for r in answer.rejected}
        for event in candidates:
            if event.prop.lower() in rejected:
                log.info("Props confirmation dropped %r", event.prop)
                run.batch.discard(event.id)
        return []

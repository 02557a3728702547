"""Character presence and per-character facts."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from scenetracker.extractors.base import (
    EventExtractor,
    ExtractorRun,
    PerCharacterExtractor,
    consolidation_diff,
    format_character,
    format_characters_present,
    format_location,
)
from scenetracker.extractors.names import match_name
from scenetracker.extractors.strategies import EveryNMessages, FixedNumber
from scenetracker.models.common import CharacterProfile, OutfitSlot
from scenetracker.models.events import (
    BaseEvent,
    CharacterActivityChangedEvent,
    CharacterAppearedEvent,
    CharacterDepartedEvent,
    CharacterMoodAddedEvent,
    CharacterMoodRemovedEvent,
    CharacterOutfitChangedEvent,
    CharacterPhysicalAddedEvent,
    CharacterPhysicalRemovedEvent,
    CharacterPositionChangedEvent,
    CharacterProfileSetEvent,
)

log = logging.getLogger(__name__)


# ── Presence ────────────────────────────────────────────────────────────


class ArrivalAnswer(BaseModel):
    name: str
    position: str = ""
    activity: str = ""


class PresenceAnswer(BaseModel):
    reasoning: str = ""
    appeared: List[ArrivalAnswer] = Field(default_factory=list)
    departed: List[str] = Field(default_factory=list)


class PresenceExtractor(EventExtractor):
    name = "presence_change"
    display_name = "characters"
    category = "characters"
    prompt_name = "presence_change"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        answer = await self.ask(
            run,
            PresenceAnswer,
            characters_present=format_characters_present(state),
            known_characters=", ".join(sorted(set(state.characters) | set(run.context.character_names)))
            or "None",
            current_location=format_location(state),
        )
        present = list(state.characters_present)
        known = set(state.characters) | set(run.context.character_names) | {run.context.user_name}
        events: List[BaseEvent] = []
        for arrival in answer.appeared:
            name = match_name(arrival.name, known) or arrival.name.strip()
            if not name or name in present:
                continue
            present.append(name)
            events.append(CharacterAppearedEvent(
                character=name,
                initial_position=arrival.position or None,
                initial_activity=arrival.activity or None,
                **self.at(run),
            ))
        for leaving in answer.departed:
            name = match_name(leaving, present)
            if name is None:
                log.debug("Ignoring departure of %r: not present", leaving)
                continue
            present.remove(name)
            events.append(CharacterDepartedEvent(character=name, **self.at(run)))
        return events


# ── Profile (newly appeared characters) ─────────────────────────────────


class ProfileAnswer(BaseModel):
    sex: str = ""
    species: str = "human"
    age: Optional[int] = None
    appearance: List[str] = Field(default_factory=list)
    personality: List[str] = Field(default_factory=list)


class ProfileExtractor(PerCharacterExtractor):
    name = "character_profile"
    display_name = "profiles"
    category = "characters"
    prompt_name = "character_profile"
    default_temperature = 0.5

    def should_run_for(self, run: ExtractorRun, character: str) -> bool:
        state = run.projection()
        char = state.characters.get(character)
        if char is not None and char.profile is not None:
            return False
        return any(e.character == character for e in run.batch.of_type(CharacterAppearedEvent))

    async def run(self, run: ExtractorRun, character: str) -> List[BaseEvent]:
        answer = await self.ask(run, ProfileAnswer, character=character)
        profile = CharacterProfile(**answer.model_dump())
        return [CharacterProfileSetEvent(character=character, profile=profile, **self.at(run))]


# ── Outfit ──────────────────────────────────────────────────────────────


class OutfitSlotChange(BaseModel):
    slot: OutfitSlot
    item: Optional[str] = Field(default=None, description="What is now worn there; null if removed")


class OutfitAnswer(BaseModel):
    reasoning: str = ""
    changes: List[OutfitSlotChange] = Field(default_factory=list)


class OutfitExtractor(PerCharacterExtractor):
    name = "outfit_change"
    display_name = "outfits"
    category = "characters"
    prompt_name = "outfit_change"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun, character: str) -> List[BaseEvent]:
        state = run.projection()
        answer = await self.ask(
            run, OutfitAnswer, character=character, character_state=format_character(state, character)
        )
        char = state.characters.get(character)
        events: List[BaseEvent] = []
        for change in answer.changes:
            previous = getattr(char.outfit, change.slot) if char else None
            item = (change.item or "").strip() or None
            if item == previous:
                continue
            events.append(CharacterOutfitChangedEvent(
                character=character,
                slot=change.slot,
                new_value=item,
                previous_value=previous,
                **self.at(run),
            ))
        return events


# ── Position & activity ─────────────────────────────────────────────────


class PositionActivityAnswer(BaseModel):
    reasoning: str = ""
    position: Optional[str] = None
    activity_changed: bool = False
    activity: Optional[str] = None


class PositionActivityExtractor(PerCharacterExtractor):
    name = "position_activity_change"
    display_name = "positions"
    category = "characters"
    prompt_name = "position_activity_change"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun, character: str) -> List[BaseEvent]:
        state = run.projection()
        answer = await self.ask(
            run,
            PositionActivityAnswer,
            character=character,
            character_state=format_character(state, character),
            current_location=format_location(state),
        )
        char = state.characters.get(character)
        events: List[BaseEvent] = []
        old_position = char.position if char else ""
        if answer.position and answer.position != old_position:
            events.append(CharacterPositionChangedEvent(
                character=character,
                new_value=answer.position,
                previous_value=old_position or None,
                **self.at(run),
            ))
        old_activity = char.activity if char else None
        new_activity = (answer.activity or "").strip() or None
        if answer.activity_changed and new_activity != old_activity:
            events.append(CharacterActivityChangedEvent(
                character=character,
                new_value=new_activity,
                previous_value=old_activity,
                **self.at(run),
            ))
        return events


# ── Mood & physical state ───────────────────────────────────────────────


class MoodPhysicalAnswer(BaseModel):
    reasoning: str = ""
    mood_added: List[str] = Field(default_factory=list)
    mood_removed: List[str] = Field(default_factory=list)
    physical_added: List[str] = Field(default_factory=list)
    physical_removed: List[str] = Field(default_factory=list)


class MoodPhysicalExtractor(PerCharacterExtractor):
    name = "mood_physical_change"
    display_name = "moods"
    category = "characters"
    prompt_name = "mood_physical_change"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun, character: str) -> List[BaseEvent]:
        state = run.projection()
        answer = await self.ask(
            run, MoodPhysicalAnswer, character=character,
            character_state=format_character(state, character),
        )
        char = state.characters.get(character)
        moods = {m.lower() for m in char.mood} if char else set()
        physical = {p.lower() for p in char.physical_state} if char else set()
        events: List[BaseEvent] = []
        for value in answer.mood_added:
            if value.lower() not in moods:
                moods.add(value.lower())
                events.append(CharacterMoodAddedEvent(character=character, value=value, **self.at(run)))
        for value in answer.mood_removed:
            if value.lower() in moods:
                moods.discard(value.lower())
                events.append(CharacterMoodRemovedEvent(character=character, value=value, **self.at(run)))
        for value in answer.physical_added:
            if value.lower() not in physical:
                physical.add(value.lower())
                events.append(CharacterPhysicalAddedEvent(character=character, value=value, **self.at(run)))
        for value in answer.physical_removed:
            if value.lower() in physical:
                physical.discard(value.lower())
                events.append(CharacterPhysicalRemovedEvent(character=character, value=value, **self.at(run)))
        return events


# ── State consolidation ─────────────────────────────────────────────────


class StateConsolidationAnswer(BaseModel):
    reasoning: str = ""
    consolidated_moods: List[str] = Field(default_factory=list)
    consolidated_physical: List[str] = Field(default_factory=list)


class CharacterStateConsolidationExtractor(PerCharacterExtractor):
    """Periodic cleanup: merges synonyms in the mood and physical lists.

    The answer is the whole list as it should read now; the difference from
    the current list becomes removal and addition events.  An empty list in
    the answer leaves that list alone.
    """

    name = "character_state_consolidation"
    display_name = "state consolidation"
    category = "characters"
    prompt_name = "character_state_consolidation"
    default_temperature = 0.3
    message_strategy = FixedNumber(6)
    run_strategy = EveryNMessages(n=6)

    async def run(self, run: ExtractorRun, character: str) -> List[BaseEvent]:
        state = run.projection()
        char = state.characters.get(character)
        if char is None:
            log.warning("No state recorded for %s, skipping consolidation", character)
            return []
        answer = await self.ask(
            run, StateConsolidationAnswer, character=character,
            character_state=format_character(state, character),
        )
        events: List[BaseEvent] = []
        lists = (
            (char.mood, answer.consolidated_moods, CharacterMoodRemovedEvent, CharacterMoodAddedEvent),
            (char.physical_state, answer.consolidated_physical,
             CharacterPhysicalRemovedEvent, CharacterPhysicalAddedEvent),
        )
        for current, consolidated, removed_event, added_event in lists:
            if not consolidated:
                continue
            removed, added = consolidation_diff(current, consolidated)
            for value in removed:
                events.append(removed_event(character=character, value=value, **self.at(run)))
            for value in added:
                events.append(added_event(character=character, value=value, **self.at(run)))
        return events

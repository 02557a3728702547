"""Bootstrap: read the opening of a chat and build the first Snapshot."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from scenetracker.extractors.base import ExtractorRun, _Extractor
from scenetracker.extractors.names import match_name
from scenetracker.extractors.strategies import LastXMessages
from scenetracker.models.common import (
    CharacterOutfit,
    LocationState,
    LocationType,
    RelationshipStatus,
    SceneState,
    Tension,
    TensionDirection,
    TensionLevel,
    TensionType,
    pair_key,
    sort_pair,
)
from scenetracker.models.state import CharacterState, RelationshipState, Snapshot, new_relationship

log = logging.getLogger(__name__)


class InitialCharacter(BaseModel):
    name: str
    position: str = ""
    activity: Optional[str] = None
    mood: List[str] = Field(default_factory=list)
    outfit: Dict[str, Optional[str]] = Field(default_factory=dict)


class InitialRelationship(BaseModel):
    pair: Tuple[str, str]
    status: RelationshipStatus = "strangers"


class InitialAnswer(BaseModel):
    reasoning: str = ""
    time: Optional[datetime] = None
    area: str = ""
    place: str = ""
    position: str = ""
    location_type: LocationType = "outdoor"
    props: List[str] = Field(default_factory=list)
    characters: List[InitialCharacter] = Field(default_factory=list)
    relationships: List[InitialRelationship] = Field(default_factory=list)
    topic: str = ""
    tone: str = ""
    tension_level: TensionLevel = "relaxed"
    tension_type: TensionType = "conversation"
    tension_direction: TensionDirection = "stable"


class InitialSnapshotExtractor(_Extractor):
    """One judgment over the opening messages, mapped to a Snapshot.

    Relationship statuses read here are taken as given: gating only governs
    changes after the baseline.
    """

    name = "initial_snapshot"
    display_name = "initial state"
    category = "scene"
    template_category = "initial"
    prompt_name = "snapshot"
    default_temperature = 0.4
    message_strategy = LastXMessages(10)

    def should_run(self, run: ExtractorRun) -> bool:
        return not run.store.has_snapshot

    async def build(self, run: ExtractorRun) -> Snapshot:
        known = list(run.context.character_names) + [run.context.user_name]
        answer = await self.ask(run, InitialAnswer, known_characters=", ".join(known) or "None")

        characters: Dict[str, CharacterState] = {}
        for entry in answer.characters:
            name = match_name(entry.name, known) or entry.name.strip()
            if not name or name in characters:
                continue
            outfit = CharacterOutfit(**{
                slot: (item or None) for slot, item in entry.outfit.items()
                if slot in CharacterOutfit.model_fields
            })
            characters[name] = CharacterState(
                name=name,
                position=entry.position,
                activity=entry.activity or None,
                mood=entry.mood,
                outfit=outfit,
            )
        present = list(characters)

        relationships: Dict[str, RelationshipState] = {}
        for i, a in enumerate(present):
            for b in present[i + 1:]:
                rel = new_relationship(a, b)
                relationships[pair_key(rel.pair)] = rel
        for entry in answer.relationships:
            a, b = (match_name(n, present) for n in entry.pair)
            if a is None or b is None or a == b:
                continue
            key = pair_key(sort_pair(a, b))
            relationships[key] = relationships[key].model_copy(update={"status": entry.status})

        location = None
        if answer.area or answer.place:
            location = LocationState(
                area=answer.area,
                place=answer.place,
                position=answer.position,
                location_type=answer.location_type,
                props=[p.strip() for p in answer.props if p.strip()],
            )
        snapshot = Snapshot(
            source=run.current,
            time=answer.time,
            location=location,
            scene=SceneState(
                topic=answer.topic,
                tone=answer.tone,
                tension=Tension(
                    level=answer.tension_level,
                    type=answer.tension_type,
                    direction=answer.tension_direction,
                ),
            ),
            characters=characters,
            characters_present=present,
            relationships=relationships,
        )
        log.info("Built initial snapshot at %s: %d characters, location %r",
                 run.current, len(present), location.describe() if location else None)
        return snapshot

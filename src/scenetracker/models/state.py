"""Materialized state: the Snapshot baseline and derived Projections."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from scenetracker.models.common import (
    CharacterOutfit,
    CharacterProfile,
    LocationState,
    MessageAndSwipe,
    Pair,
    RelationshipStatus,
    SceneState,
    Tension,
    pair_key,
    sort_pair,
)
from scenetracker.models.weather import Climate, LocationForecast


class CharacterState(BaseModel):
    name: str
    position: str = ""
    activity: Optional[str] = None
    mood: List[str] = Field(default_factory=list)
    physical_state: List[str] = Field(default_factory=list)
    outfit: CharacterOutfit = Field(default_factory=CharacterOutfit)
    profile: Optional[CharacterProfile] = None


class RelationshipAttitude(BaseModel):
    """How one side of a pair regards the other."""

    feelings: List[str] = Field(default_factory=list)
    secrets: List[str] = Field(default_factory=list)
    wants: List[str] = Field(default_factory=list)


class RelationshipState(BaseModel):
    pair: Pair
    status: RelationshipStatus = "strangers"
    a_to_b: RelationshipAttitude = Field(default_factory=RelationshipAttitude)
    b_to_a: RelationshipAttitude = Field(default_factory=RelationshipAttitude)

    def attitude(self, from_character: str) -> RelationshipAttitude:
        return self.a_to_b if from_character == self.pair[0] else self.b_to_a


def new_relationship(a: str, b: str) -> RelationshipState:
    return RelationshipState(pair=sort_pair(a, b))


class NarrativeSubjectRef(BaseModel):
    pair: Pair
    subject: str
    is_milestone: bool = False
    milestone_description: Optional[str] = None


class NarrativeEvent(BaseModel):
    """A described beat of the story, as shown in the narrative log."""

    source: MessageAndSwipe
    description: str
    witnesses: List[str] = Field(default_factory=list)
    location: str = ""
    time: Optional[datetime] = None
    tension: Optional[Tension] = None
    subjects: List[NarrativeSubjectRef] = Field(default_factory=list)
    chapter_index: int = 0


class ChapterInfo(BaseModel):
    index: int
    title: str = ""
    summary: str = ""
    ended_at: Optional[MessageAndSwipe] = None
    end_reason: Optional[str] = None


class MilestoneInfo(BaseModel):
    pair: Pair
    subject: str
    display_name: str
    source: MessageAndSwipe
    description: Optional[str] = None


class _SceneFields(BaseModel):
    time: Optional[datetime] = None
    location: Optional[LocationState] = None
    forecasts: Dict[str, LocationForecast] = Field(default_factory=dict)
    scene: Optional[SceneState] = None
    characters: Dict[str, CharacterState] = Field(default_factory=dict)
    relationships: Dict[str, RelationshipState] = Field(default_factory=dict)
    current_chapter: int = 0
    narrative_events: List[NarrativeEvent] = Field(default_factory=list)

    def relationship(self, a: str, b: str) -> Optional[RelationshipState]:
        return self.relationships.get(pair_key((a, b)))


class Snapshot(_SceneFields):
    """The write-once baseline every projection replays forward from.

    ``characters_present`` lists who is in the scene at the anchor; the
    ``characters`` map may also hold characters who were seen earlier.
    """

    source: MessageAndSwipe
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    characters_present: List[str] = Field(default_factory=list)


class Projection(_SceneFields):
    """State at one branch coordinate.  Derived, never persisted."""

    source: MessageAndSwipe
    characters_present: List[str] = Field(default_factory=list)
    climate: Optional[Climate] = None

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> Projection:
        data = snapshot.model_dump(exclude={"created_at"})
        return cls.model_validate(data)

    def present_pairs(self) -> List[Pair]:
        """All unordered pairs of present characters, in canonical order."""
        names = sorted(self.characters_present, key=str.lower)
        return [
            sort_pair(a, b)
            for i, a in enumerate(names)
            for b in names[i + 1:]
        ]

"""Shared value types: branch coordinates, pairs, location, outfits, time deltas."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class MessageAndSwipe(BaseModel):
    """A branch coordinate: one alternate continuation at one turn."""

    model_config = ConfigDict(frozen=True)

    message_id: int = Field(ge=0)
    swipe_id: int = Field(default=0, ge=0)

    def __str__(self) -> str:
        return f"({self.message_id}, {self.swipe_id})"


Pair = Tuple[str, str]


def sort_pair(a: str, b: str) -> Pair:
    """Return the canonical (alphabetical) ordering of a character pair."""
    return (a, b) if a.lower() <= b.lower() else (b, a)


def pair_key(pair: Pair) -> str:
    a, b = sort_pair(*pair)
    return f"{a}|{b}"


def parse_pair_key(key: str) -> Pair:
    a, _, b = key.partition("|")
    return sort_pair(a, b)


# ── Time ────────────────────────────────────────────────────────────────


class TimeDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    def to_timedelta(self) -> timedelta:
        return timedelta(
            days=self.days, hours=self.hours, minutes=self.minutes, seconds=self.seconds
        )

    def is_zero(self) -> bool:
        return self.to_timedelta() == timedelta(0)


def apply_delta(time: datetime, delta: TimeDelta) -> datetime:
    return time + delta.to_timedelta()


# ── Location ────────────────────────────────────────────────────────────

LocationType = Literal[
    "outdoor", "modern", "heated", "unheated", "underground", "tent", "vehicle"
]

LOCATION_TYPES: tuple[str, ...] = (
    "outdoor", "modern", "heated", "unheated", "underground", "tent", "vehicle",
)


class LocationState(BaseModel):
    area: str = ""
    place: str = ""
    position: str = ""
    location_type: LocationType = "outdoor"
    props: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        parts = [p for p in (self.position, self.place, self.area) if p]
        return ", ".join(parts) or "unknown"


# ── Characters ──────────────────────────────────────────────────────────

OutfitSlot = Literal[
    "head", "neck", "jacket", "back", "torso", "legs", "footwear", "socks", "underwear"
]

OUTFIT_SLOTS: tuple[str, ...] = (
    "head", "neck", "jacket", "back", "torso", "legs", "footwear", "socks", "underwear",
)


class CharacterOutfit(BaseModel):
    head: Optional[str] = None
    neck: Optional[str] = None
    jacket: Optional[str] = None
    back: Optional[str] = None
    torso: Optional[str] = None
    legs: Optional[str] = None
    footwear: Optional[str] = None
    socks: Optional[str] = None
    underwear: Optional[str] = None

    def describe(self) -> str:
        worn = [f"{slot}: {getattr(self, slot)}" for slot in OUTFIT_SLOTS if getattr(self, slot)]
        return "; ".join(worn) or "nothing noted"


class CharacterProfile(BaseModel):
    sex: str = ""
    species: str = ""
    age: Optional[int] = None
    appearance: list[str] = Field(default_factory=list)
    personality: list[str] = Field(default_factory=list)


# ── Scene ───────────────────────────────────────────────────────────────

TensionLevel = Literal[
    "relaxed", "aware", "guarded", "tense", "charged", "volatile", "explosive"
]
TensionType = Literal[
    "confrontation", "intimate", "vulnerable", "celebratory",
    "negotiation", "suspense", "conversation",
]
TensionDirection = Literal["escalating", "stable", "decreasing"]


class Tension(BaseModel):
    level: TensionLevel = "relaxed"
    type: TensionType = "conversation"
    direction: TensionDirection = "stable"


class SceneState(BaseModel):
    topic: str = ""
    tone: str = ""
    tension: Tension = Field(default_factory=Tension)


# ── Relationships ───────────────────────────────────────────────────────

RelationshipStatus = Literal[
    "strangers", "acquaintances", "friendly", "close", "intimate",
    "strained", "hostile", "complicated",
]

RELATIONSHIP_STATUSES: tuple[str, ...] = (
    "strangers", "acquaintances", "friendly", "close", "intimate",
    "strained", "hostile", "complicated",
)

"""Extractor building blocks.

An extractor asks the judgment service one question about the newest
message and maps the structured answer to candidate events.  It never
touches the store directly: it reads the working projection through
:class:`ExtractorRun` and returns events for the orchestrator to stage.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, List, Tuple, Type, TypeVar

from pydantic import BaseModel

from scenetracker.config import settings
from scenetracker.extractors.strategies import (
    EveryMessage,
    ExtractorHistory,
    FixedNumber,
    MessageStrategy,
    RunStrategy,
    evaluate_run_strategy,
    message_window,
)
from scenetracker.llm.judgment import BuiltPrompt, JudgmentService
from scenetracker.models.common import MessageAndSwipe, Pair
from scenetracker.models.context import ExtractionContext, SwipeContext
from scenetracker.models.events import BaseEvent
from scenetracker.models.state import Projection
from scenetracker.orchestration.cancellation import CancellationToken
from scenetracker.orchestration.staging import TurnBatch
from scenetracker.prompts.loader import PromptLoader
from scenetracker.store.store import EventStore

T = TypeVar("T", bound=BaseModel)
log = logging.getLogger(__name__)


class JudgmentFailed(Exception):
    """The judgment service gave no usable answer for an extractor."""


@dataclass
class ExtractorRun:
    """Everything an extractor may look at during one turn."""

    judgment: JudgmentService
    prompts: PromptLoader
    store: EventStore
    context: ExtractionContext
    current: MessageAndSwipe
    swipe: SwipeContext
    batch: TurnBatch = field(default_factory=TurnBatch)
    token: CancellationToken = field(default_factory=CancellationToken)
    history: ExtractorHistory = field(default_factory=ExtractorHistory)

    def base_message_id(self) -> int:
        """Message the turn builds on: the one before it, never before the anchor.

        Committed events at the current coordinate are the ones this turn
        replaces, so they are left out of the working state.
        """
        snapshot = self.store.snapshot
        anchor = snapshot.source.message_id if snapshot else 0
        return max(self.current.message_id - 1, anchor)

    def projection(self) -> Projection:
        """State before this message plus everything staged so far this turn."""
        state = self.store.project_with_turn_events(
            self.batch.events, self.base_message_id(), self.swipe
        )
        if state is None:
            raise JudgmentFailed(f"No state to extract against at {self.current}")
        return state


# ── Prompt formatting ───────────────────────────────────────────────────


def format_messages(context: ExtractionContext, start: int, end: int) -> str:
    lines = []
    for message in context.chat[start:end + 1]:
        if message.is_system:
            continue
        lines.append(f"{message.name}: {message.mes}")
    return "\n\n".join(lines)


def format_time(state: Projection) -> str:
    if state.time is None:
        return "Unknown"
    return state.time.strftime("%A, %B %d, %Y at %I:%M %p")


def format_location(state: Projection) -> str:
    if state.location is None:
        return "Unknown"
    loc = state.location
    parts = [p for p in (loc.area, loc.place, loc.position) if p]
    return " - ".join(parts) or "Unknown"


def format_props(state: Projection) -> str:
    if state.location is None or not state.location.props:
        return "None"
    return ", ".join(state.location.props)


def format_characters_present(state: Projection) -> str:
    return ", ".join(state.characters_present) or "None"


def format_character(state: Projection, name: str) -> str:
    char = state.characters.get(name)
    if char is None:
        return f"{name}: no recorded state"
    lines = [f"Name: {name}", f"Position: {char.position or 'unknown'}"]
    lines.append(f"Activity: {char.activity or 'none'}")
    lines.append(f"Mood: {', '.join(char.mood) or 'none'}")
    lines.append(f"Physical state: {', '.join(char.physical_state) or 'none'}")
    lines.append(f"Outfit: {char.outfit.describe()}")
    return "\n".join(lines)


def format_relationship(state: Projection, pair: Pair) -> str:
    rel = state.relationship(*pair)
    if rel is None:
        return f"{pair[0]} and {pair[1]}: no relationship recorded"
    a, b = rel.pair
    lines = [f"Status: {rel.status}"]
    for source, target, att in ((a, b, rel.a_to_b), (b, a, rel.b_to_a)):
        lines.append(
            f"{source} toward {target}: feelings={', '.join(att.feelings) or 'none'}; "
            f"secrets={', '.join(att.secrets) or 'none'}; wants={', '.join(att.wants) or 'none'}"
        )
    return "\n".join(lines)


def consolidation_diff(old: List[str], new: List[str]) -> Tuple[List[str], List[str]]:
    """Values to remove from and add to ``old`` so it reads as ``new``.

    Comparison ignores case and surrounding whitespace.  Removals keep the
    stored spelling so they match the entries they retire.
    """
    old_keys = {v.strip().lower() for v in old}
    new_keys = {v.strip().lower() for v in new if v.strip()}
    removed = [v for v in old if v.strip().lower() not in new_keys]
    added: List[str] = []
    for value in new:
        key = value.strip().lower()
        if key and key not in old_keys:
            old_keys.add(key)
            added.append(value.strip())
    return removed, added


# ── Extractors ──────────────────────────────────────────────────────────


class _Extractor(ABC):
    name: ClassVar[str]
    display_name: ClassVar[str]
    category: ClassVar[str]
    prompt_name: ClassVar[str]
    template_category: ClassVar[str] = "events"
    system_prompt: ClassVar[str] = (
        "You track the state of an ongoing roleplay scene. Read the messages "
        "and answer only what is asked, based strictly on what the text shows."
    )
    default_temperature: ClassVar[float] = 0.3
    message_strategy: ClassVar[MessageStrategy] = FixedNumber(settings.default_message_window)
    run_strategy: ClassVar[RunStrategy] = EveryMessage()

    def should_run(self, run: ExtractorRun) -> bool:
        if not getattr(run.context.settings.track, self.category, True):
            return False
        return evaluate_run_strategy(self.run_strategy, run, self.name)

    def temperature(self, run: ExtractorRun) -> float:
        return run.context.settings.temperatures.get(self.name, self.default_temperature)

    def build_prompt(self, run: ExtractorRun, **variables: str) -> BuiltPrompt:
        start, end = message_window(self.message_strategy, run)
        values = {
            "messages": format_messages(run.context, start, end),
            "user_name": run.context.user_name,
            "persona": run.context.persona or "(none)",
        }
        values.update(variables)
        override = run.context.settings.prompt_overrides.get(self.name)
        system = self.system_prompt
        if override and override.system_prompt:
            system = override.system_prompt
        if override and override.user_template:
            user = PromptLoader.fill(override.user_template, **values)
        else:
            user = run.prompts.render(self.template_category, self.prompt_name, **values)
        return BuiltPrompt(name=self.name, system=system, user=user)

    async def ask(self, run: ExtractorRun, schema: Type[T], **variables: str) -> T:
        prompt = self.build_prompt(run, **variables)
        result = await run.judgment.generate(prompt, schema, self.temperature(run), run.token)
        if not result.ok:
            raise JudgmentFailed(result.error or "no answer")
        return result.value  # type: ignore[return-value]

    def at(self, run: ExtractorRun) -> dict:
        """Common constructor kwargs anchoring new events to the current coordinate."""
        return {"source": run.current}


class EventExtractor(_Extractor):
    """Runs once per turn."""

    @abstractmethod
    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        ...


class PerCharacterExtractor(_Extractor):
    """Runs once for each character present in the working projection."""

    def should_run_for(self, run: ExtractorRun, character: str) -> bool:
        return True

    @abstractmethod
    async def run(self, run: ExtractorRun, character: str) -> List[BaseEvent]:
        ...


class PerPairExtractor(_Extractor):
    """Runs once for each unordered pair of present characters."""

    @abstractmethod
    async def run(self, run: ExtractorRun, pair: Pair) -> List[BaseEvent]:
        ...

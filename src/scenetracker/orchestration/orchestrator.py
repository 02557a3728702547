"""Extraction orchestrator: runs the extractor phases for one turn.

Phases run strictly in order and share one :class:`TurnBatch`, so each
extractor sees what earlier ones produced this turn.  Nothing reaches the
store until every phase has finished; a cancelled turn commits nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from scenetracker.errors import TrackerError
from scenetracker.extractors.base import (
    EventExtractor,
    ExtractorRun,
    JudgmentFailed,
    PerCharacterExtractor,
    PerPairExtractor,
    _Extractor,
)
from scenetracker.extractors.chapters import ChapterDescriptionExtractor, ChapterEndedExtractor
from scenetracker.extractors.characters import (
    CharacterStateConsolidationExtractor,
    MoodPhysicalExtractor,
    OutfitExtractor,
    PositionActivityExtractor,
    PresenceExtractor,
    ProfileExtractor,
)
from scenetracker.extractors.core import (
    ForecastExtractor,
    LocationChangeExtractor,
    TensionExtractor,
    TimeChangeExtractor,
    TopicToneExtractor,
)
from scenetracker.extractors.narrative import (
    MilestoneDescriptionExtractor,
    NarrativeDescriptionExtractor,
)
from scenetracker.extractors.props import PropsChangeExtractor, PropsConfirmationExtractor
from scenetracker.extractors.relationships import (
    AttitudeConsolidationExtractor,
    FeelingsExtractor,
    SecretsExtractor,
    StatusExtractor,
    SubjectsConfirmationExtractor,
    SubjectsExtractor,
    WantsExtractor,
)
from scenetracker.extractors.strategies import ExtractorHistory
from scenetracker.llm.judgment import JudgmentService
from scenetracker.models.common import MessageAndSwipe
from scenetracker.models.context import ExtractionContext, SwipeContext
from scenetracker.models.events import BaseEvent, ChapterEndedEvent
from scenetracker.orchestration.cancellation import CancellationToken, ExtractionAborted
from scenetracker.orchestration.staging import TurnBatch
from scenetracker.prompts.loader import PromptLoader
from scenetracker.store.store import EventStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Phase:
    name: str
    extractors: Tuple[_Extractor, ...]


def default_phases() -> List[Phase]:
    return [
        Phase("core", (
            TimeChangeExtractor(),
            LocationChangeExtractor(),
            ForecastExtractor(),
            TopicToneExtractor(),
            TensionExtractor(),
        )),
        Phase("presence", (PresenceExtractor(),)),
        Phase("characters", (
            ProfileExtractor(),
            OutfitExtractor(),
            PositionActivityExtractor(),
            MoodPhysicalExtractor(),
            CharacterStateConsolidationExtractor(),
        )),
        Phase("props", (PropsChangeExtractor(), PropsConfirmationExtractor())),
        Phase("subjects", (SubjectsExtractor(), SubjectsConfirmationExtractor())),
        Phase("pairs", (
            FeelingsExtractor(),
            SecretsExtractor(),
            WantsExtractor(),
            AttitudeConsolidationExtractor(),
            StatusExtractor(),
        )),
        Phase("narrative", (NarrativeDescriptionExtractor(), MilestoneDescriptionExtractor())),
        Phase("chapters", (ChapterEndedExtractor(), ChapterDescriptionExtractor())),
    ]


@dataclass
class ExtractionResult:
    events: List[BaseEvent] = field(default_factory=list)
    chapter_ended: bool = False
    aborted: bool = False
    errors: List[Tuple[str, str]] = field(default_factory=list)


def _check(token: CancellationToken) -> None:
    if token.cancelled:
        raise ExtractionAborted(token.reason or "cancelled")


class ExtractionOrchestrator:
    def __init__(
        self,
        judgment: Optional[JudgmentService],
        prompts: Optional[PromptLoader] = None,
        phases: Optional[Sequence[Phase]] = None,
    ):
        self.judgment = judgment
        self.prompts = prompts or PromptLoader()
        self.phases = list(phases) if phases is not None else default_phases()

    async def run_turn(
        self,
        store: EventStore,
        context: ExtractionContext,
        current: MessageAndSwipe,
        swipe: SwipeContext,
        token: Optional[CancellationToken] = None,
        history: Optional[ExtractorHistory] = None,
    ) -> ExtractionResult:
        """Run every phase for ``current`` and commit the batch if nothing cancelled it.

        The committed batch replaces whatever was recorded at ``current``
        before, so re-extracting a message never stacks duplicate events.
        """
        if self.judgment is None:
            raise TrackerError("No judgment service configured")
        token = token or CancellationToken()
        history = history if history is not None else ExtractorHistory()
        run = ExtractorRun(
            judgment=self.judgment,
            prompts=self.prompts,
            store=store,
            context=context,
            current=current,
            swipe=swipe,
            batch=TurnBatch(),
            token=token,
            history=history,
        )
        errors: List[Tuple[str, str]] = []
        ran: List[Tuple[str, bool]] = []

        try:
            for phase in self.phases:
                _check(token)
                log.debug("Phase %s at %s", phase.name, current)
                for extractor in phase.extractors:
                    _check(token)
                    await self._run_extractor(extractor, run, errors, ran)
            _check(token)
        except ExtractionAborted as exc:
            log.info("Extraction at %s aborted (%s); discarded %d staged events",
                     current, exc, len(run.batch))
            return ExtractionResult(aborted=True, errors=errors)

        events = run.batch.events
        store.replace_events_at_message(current, events)
        for name, produced in ran:
            history.record(name, current, produced)
        chapter_ended = any(isinstance(e, ChapterEndedEvent) for e in events)
        log.info("Committed %d events at %s (%d extractor errors)", len(events), current, len(errors))
        return ExtractionResult(events=events, chapter_ended=chapter_ended, errors=errors)

    async def _run_extractor(
        self,
        extractor: _Extractor,
        run: ExtractorRun,
        errors: List[Tuple[str, str]],
        ran: List[Tuple[str, bool]],
    ) -> None:
        try:
            if not extractor.should_run(run):
                return
            if isinstance(extractor, (PerCharacterExtractor, PerPairExtractor)):
                state = run.projection()
        except JudgmentFailed as exc:
            errors.append((extractor.name, str(exc)))
            return
        except Exception as exc:
            log.error("Run check for %s failed", extractor.name, exc_info=True)
            errors.append((extractor.name, f"{type(exc).__name__}: {exc}"))
            return

        if isinstance(extractor, PerCharacterExtractor):
            produced = False
            for character in list(state.characters_present):
                _check(run.token)
                if extractor.should_run_for(run, character):
                    produced |= await self._invoke(extractor, run, errors, character)
        elif isinstance(extractor, PerPairExtractor):
            produced = False
            for pair in state.present_pairs():
                _check(run.token)
                produced |= await self._invoke(extractor, run, errors, pair)
        elif isinstance(extractor, EventExtractor):
            produced = await self._invoke(extractor, run, errors)
        else:
            raise TypeError(f"{extractor.name} is not a turn extractor")
        ran.append((extractor.name, produced))

    async def _invoke(self, extractor, run: ExtractorRun, errors, *target) -> bool:
        label = extractor.name if not target else f"{extractor.name}[{target[0]}]"
        try:
            events = await extractor.run(run, *target)
        except JudgmentFailed as exc:
            log.warning("Extractor %s produced nothing: %s", label, exc)
            errors.append((extractor.name, str(exc)))
            return False
        except ExtractionAborted:
            raise
        except Exception as exc:
            log.error("Extractor %s failed", label, exc_info=True)
            errors.append((extractor.name, f"{type(exc).__name__}: {exc}"))
            return False
        run.batch.add(events)
        return bool(events)

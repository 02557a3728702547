"""Relationship subjects, their confirmation, and per-pair attitudes and status."""

from __future__ import annotations

import logging
from typing import ClassVar, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field

from scenetracker.extractors.base import (
    EventExtractor,
    ExtractorRun,
    PerPairExtractor,
    consolidation_diff,
    format_characters_present,
    format_relationship,
)
from scenetracker.extractors.names import match_name
from scenetracker.extractors.strategies import EveryNMessages, FixedNumber, NewEventsOfKind
from scenetracker.models.common import Pair, RelationshipStatus, sort_pair
from scenetracker.models.events import (
    BaseEvent,
    FeelingAddedEvent,
    FeelingRemovedEvent,
    RelationshipSubjectEvent,
    SecretAddedEvent,
    SecretRemovedEvent,
    StatusChangedEvent,
    WantAddedEvent,
    WantRemovedEvent,
    _DirectionalEvent,
)
from scenetracker.models.subjects import SUBJECT_GROUPS, is_valid_subject
from scenetracker.store.gating import apply_status_gating
from scenetracker.store.milestones import milestones_by_pair

log = logging.getLogger(__name__)


def _subject_list() -> str:
    return "\n".join(f"- {group}: {', '.join(members)}" for group, members in SUBJECT_GROUPS.items())


# ── Subject detection ───────────────────────────────────────────────────


class SubjectAnswer(BaseModel):
    pair: Tuple[str, str]
    subject: str


class SubjectsAnswer(BaseModel):
    reasoning: str = ""
    subjects: List[SubjectAnswer] = Field(default_factory=list)


class SubjectsExtractor(EventExtractor):
    name = "relationship_subjects"
    display_name = "relationships"
    category = "relationships"
    prompt_name = "relationship_subjects"
    default_temperature = 0.4

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        state = run.projection()
        present = state.characters_present
        if len(present) < 2:
            return []
        answer = await self.ask(
            run,
            SubjectsAnswer,
            characters_present=format_characters_present(state),
            subject_list=_subject_list(),
        )
        seen = set()
        events: List[BaseEvent] = []
        for item in answer.subjects:
            a, b = (match_name(n, present) for n in item.pair)
            subject = item.subject.strip().lower()
            if a is None or b is None or a == b or not is_valid_subject(subject):
                log.debug("Dropping subject %r for %r", item.subject, item.pair)
                continue
            key = (sort_pair(a, b), subject)
            if key in seen:
                continue
            seen.add(key)
            events.append(RelationshipSubjectEvent(pair=key[0], subject=subject, **self.at(run)))
        return events


# ── Subject confirmation ────────────────────────────────────────────────


class SubjectVerdict(BaseModel):
    index: int
    verdict: Literal["accept", "reject", "wrong_subject"] = "accept"
    corrected_subject: Optional[str] = None


class SubjectsConfirmationAnswer(BaseModel):
    reasoning: str = ""
    verdicts: List[SubjectVerdict] = Field(default_factory=list)


class SubjectsConfirmationExtractor(EventExtractor):
    """Re-checks this turn's subjects; rejected ones are dropped and
    mislabelled ones replaced by corrected copies in the staging buffer."""

    name = "relationship_subjects_confirmation"
    display_name = "relationships"
    category = "relationships"
    prompt_name = "relationship_subjects_confirmation"
    default_temperature = 0.2
    run_strategy = NewEventsOfKind(kinds=(("relationship", "subject"),))

    async def run(self, run: ExtractorRun) -> List[BaseEvent]:
        candidates = run.batch.of_type(RelationshipSubjectEvent)
        if not candidates:
            return []
        answer = await self.ask(
            run,
            SubjectsConfirmationAnswer,
            candidates="\n".join(
                f"{i}. {e.pair[0]} & {e.pair[1]}: {e.subject}" for i, e in enumerate(candidates)
            ),
            subject_list=_subject_list(),
        )
        kept = {(e.pair, e.subject) for e in candidates}
        for verdict in answer.verdicts:
            if not 0 <= verdict.index < len(candidates):
                continue
            event = candidates[verdict.index]
            if verdict.verdict == "reject":
                run.batch.discard(event.id)
                kept.discard((event.pair, event.subject))
            elif verdict.verdict == "wrong_subject":
                corrected = (verdict.corrected_subject or "").strip().lower()
                if not is_valid_subject(corrected) or corrected == event.subject:
                    continue
                kept.discard((event.pair, event.subject))
                if (event.pair, corrected) in kept:
                    run.batch.discard(event.id)
                    continue
                kept.add((event.pair, corrected))
                run.batch.replace(event.id, event.model_copy(update={"subject": corrected}))
        return []


# ── Per-pair attitudes ──────────────────────────────────────────────────


class AttitudeAnswer(BaseModel):
    reasoning: str = ""
    a_to_b_added: List[str] = Field(default_factory=list)
    a_to_b_removed: List[str] = Field(default_factory=list)
    b_to_a_added: List[str] = Field(default_factory=list)
    b_to_a_removed: List[str] = Field(default_factory=list)


class _AttitudeExtractor(PerPairExtractor):
    aspect: ClassVar[str]
    field_name: ClassVar[str]
    added_event: ClassVar[Type[_DirectionalEvent]]
    removed_event: ClassVar[Type[_DirectionalEvent]]
    category = "relationships"
    display_name = "relationships"
    prompt_name = "relationship_attitude"
    default_temperature = 0.5

    async def run(self, run: ExtractorRun, pair: Pair) -> List[BaseEvent]:
        state = run.projection()
        a, b = pair
        answer = await self.ask(
            run,
            AttitudeAnswer,
            aspect=self.field_name,
            character_a=a,
            character_b=b,
            relationship=format_relationship(state, pair),
        )
        rel = state.relationship(a, b)
        events: List[BaseEvent] = []
        directions = (
            (a, b, answer.a_to_b_added, answer.a_to_b_removed),
            (b, a, answer.b_to_a_added, answer.b_to_a_removed),
        )
        for source, target, added, removed in directions:
            current = (
                {v.lower() for v in getattr(rel.attitude(source), self.field_name)} if rel else set()
            )
            for value in added:
                if value.strip() and value.lower() not in current:
                    current.add(value.lower())
                    events.append(self.added_event(
                        from_character=source, toward_character=target, value=value.strip(),
                        **self.at(run),
                    ))
            for value in removed:
                if value.lower() in current:
                    current.discard(value.lower())
                    events.append(self.removed_event(
                        from_character=source, toward_character=target, value=value.strip(),
                        **self.at(run),
                    ))
        return events


class FeelingsExtractor(_AttitudeExtractor):
    name = "relationship_feelings"
    aspect = "feeling"
    field_name = "feelings"
    added_event = FeelingAddedEvent
    removed_event = FeelingRemovedEvent


class SecretsExtractor(_AttitudeExtractor):
    name = "relationship_secrets"
    aspect = "secret"
    field_name = "secrets"
    added_event = SecretAddedEvent
    removed_event = SecretRemovedEvent
    run_strategy = EveryNMessages(n=2)


class WantsExtractor(_AttitudeExtractor):
    name = "relationship_wants"
    aspect = "want"
    field_name = "wants"
    added_event = WantAddedEvent
    removed_event = WantRemovedEvent
    run_strategy = EveryNMessages(n=2)


# ── Attitude consolidation ──────────────────────────────────────────────


class AttitudeConsolidationAnswer(BaseModel):
    reasoning: str = ""
    consolidated_feelings: List[str] = Field(default_factory=list)
    consolidated_secrets: List[str] = Field(default_factory=list)
    consolidated_wants: List[str] = Field(default_factory=list)


class AttitudeConsolidationExtractor(PerPairExtractor):
    """Periodic cleanup of one pair's attitude lists, one question per direction.

    Works like character state consolidation: each answered list replaces
    the current one through removal and addition events, and an empty list
    leaves its attitude alone.
    """

    name = "relationship_attitude_consolidation"
    display_name = "attitude consolidation"
    category = "relationships"
    prompt_name = "relationship_attitude_consolidation"
    default_temperature = 0.3
    message_strategy = FixedNumber(6)
    run_strategy = EveryNMessages(n=6)

    _lists: ClassVar[Tuple[Tuple[str, Type[_DirectionalEvent], Type[_DirectionalEvent]], ...]] = (
        ("feelings", FeelingRemovedEvent, FeelingAddedEvent),
        ("secrets", SecretRemovedEvent, SecretAddedEvent),
        ("wants", WantRemovedEvent, WantAddedEvent),
    )

    async def run(self, run: ExtractorRun, pair: Pair) -> List[BaseEvent]:
        state = run.projection()
        rel = state.relationship(*pair)
        if rel is None:
            return []
        a, b = pair
        events: List[BaseEvent] = []
        for source, target in ((a, b), (b, a)):
            attitude = rel.attitude(source)
            answer = await self.ask(
                run,
                AttitudeConsolidationAnswer,
                from_character=source,
                toward_character=target,
                relationship=format_relationship(state, pair),
            )
            for field_name, removed_event, added_event in self._lists:
                consolidated = getattr(answer, f"consolidated_{field_name}")
                if not consolidated:
                    continue
                removed, added = consolidation_diff(getattr(attitude, field_name), consolidated)
                for value in removed:
                    events.append(removed_event(
                        from_character=source, toward_character=target, value=value, **self.at(run)
                    ))
                for value in added:
                    events.append(added_event(
                        from_character=source, toward_character=target, value=value, **self.at(run)
                    ))
        return events


# ── Status ──────────────────────────────────────────────────────────────


class StatusAnswer(BaseModel):
    reasoning: str = ""
    status: RelationshipStatus


class StatusExtractor(PerPairExtractor):
    name = "relationship_status"
    display_name = "relationships"
    category = "relationships"
    prompt_name = "relationship_status"
    default_temperature = 0.4

    def _milestones(self, run: ExtractorRun) -> Dict[Pair, set]:
        return milestones_by_pair(
            run.store.log, run.swipe, before=run.current.message_id, extra=run.batch.events
        )

    async def run(self, run: ExtractorRun, pair: Pair) -> List[BaseEvent]:
        state = run.projection()
        rel = state.relationship(*pair)
        current: RelationshipStatus = rel.status if rel else "strangers"
        milestones = self._milestones(run).get(sort_pair(*pair), set())
        answer = await self.ask(
            run,
            StatusAnswer,
            character_a=pair[0],
            character_b=pair[1],
            relationship=format_relationship(state, pair),
            milestones=", ".join(sorted(milestones)) or "none",
        )
        gated = apply_status_gating(answer.status, current, milestones)
        if gated == current:
            return []
        return [StatusChangedEvent(
            pair=pair, new_status=gated, previous_status=current, **self.at(run)
        )]

from __future__ import annotations

import asyncio

import pytest

from conftest import at, make_chat
from scenetracker.extractors.base import ExtractorRun
from scenetracker.extractors.chapters import (
    ChapterDescriptionAnswer,
    ChapterDescriptionExtractor,
    ChapterEndedAnswer,
    ChapterEndedExtractor,
)
from scenetracker.extractors.characters import (
    CharacterStateConsolidationExtractor,
    MoodPhysicalAnswer,
    MoodPhysicalExtractor,
    PresenceAnswer,
    PresenceExtractor,
    ProfileAnswer,
    ProfileExtractor,
    StateConsolidationAnswer,
)
from scenetracker.extractors.core import (
    LocationChangeAnswer,
    LocationChangeExtractor,
    TimeChangeAnswer,
    TimeChangeExtractor,
)
from scenetracker.extractors.initial import InitialSnapshotExtractor
from scenetracker.extractors.names import match_name, normalize_name
from scenetracker.extractors.narrative import NarrativeAnswer, NarrativeDescriptionExtractor
from scenetracker.extractors.props import (
    PropsAnswer,
    PropsChangeExtractor,
    PropsConfirmationAnswer,
    PropsConfirmationExtractor,
)
from scenetracker.extractors.relationships import (
    AttitudeAnswer,
    AttitudeConsolidationAnswer,
    AttitudeConsolidationExtractor,
    FeelingsExtractor,
)
from scenetracker.models.context import PromptOverride
from scenetracker.models.events import (
    CharacterAppearedEvent,
    CharacterDepartedEvent,
    CharacterMoodAddedEvent,
    CharacterMoodRemovedEvent,
    CharacterPhysicalAddedEvent,
    CharacterProfileSetEvent,
    FeelingAddedEvent,
    FeelingRemovedEvent,
    LocationPropRemovedEvent,
    WantAddedEvent,
)
from scenetracker.orchestration.orchestrator import ExtractionOrchestrator, Phase, default_phases
from scenetracker.prompts.loader import PromptLoader


def _turn(judgment, store, phases, message_id=1):
    context = make_chat(message_id + 1)
    orchestrator = ExtractionOrchestrator(judgment, phases=phases)
    return asyncio.run(orchestrator.run_turn(
        store, context, context.current_message, context.swipe_context()
    ))


# ── Templates & prompt building ─────────────────────────────────────────


def test_every_extractor_has_a_template():
    loader = PromptLoader()
    extractors = [x for phase in default_phases() for x in phase.extractors]
    extractors.append(InitialSnapshotExtractor())
    for extractor in extractors:
        names = loader.placeholders(extractor.template_category, extractor.prompt_name)
        assert "messages" in names, extractor.name


def test_fill_leaves_unknown_placeholders():
    assert PromptLoader.fill("{a} and {b}", a="x") == "x and {b}"


def test_fill_does_not_expand_braces_in_values():
    assert PromptLoader.fill("{messages}|{user_name}", messages="{user_name}", user_name="Bob") == "{user_name}|Bob"


@pytest.fixture
def run(store, judgment):
    context = make_chat(2)
    return ExtractorRun(
        judgment=judgment,
        prompts=PromptLoader(),
        store=store,
        context=context,
        current=at(1),
        swipe=context.swipe_context(),
    )


def test_prompt_override_replaces_template(run):
    run.context.settings.prompt_overrides["time_change"] = PromptOverride(
        system_prompt="Be brief.", user_template="Transcript:\n{messages}\nNow: {current_time}"
    )
    prompt = TimeChangeExtractor().build_prompt(run, current_time="noon")
    assert prompt.system == "Be brief."
    assert prompt.user == "Transcript:\nAlice: Message 0\n\nBob: Message 1\nNow: noon"


def test_system_messages_are_left_out_of_prompts(run):
    run.context.chat[0].is_system = True
    prompt = TimeChangeExtractor().build_prompt(run, current_time="noon")
    assert "Message 0" not in prompt.user
    assert "Bob: Message 1" in prompt.user


def test_category_toggle_disables_extractor(run):
    assert TimeChangeExtractor().should_run(run)
    run.context.settings.track.time = False
    assert not TimeChangeExtractor().should_run(run)


def test_temperature_override(run):
    run.context.settings.temperatures["time_change"] = 0.9
    assert TimeChangeExtractor().temperature(run) == 0.9
    assert LocationChangeExtractor().temperature(run) == 0.5


def test_projection_excludes_events_being_replaced(run, store):
    """The working state builds on the previous message, not on a stale extraction of this one."""
    store.append_events([CharacterDepartedEvent(source=at(1), character="Bob")])
    assert run.projection().characters_present == ["Alice", "Bob"]


# ── Names ───────────────────────────────────────────────────────────────


def test_normalize_name_strips_titles():
    assert normalize_name("  Dr.   Elena  Vasquez ") == "elena vasquez"


@pytest.mark.parametrize("name, expected", [
    ("Elena Vasquez", "Elena Vasquez"),
    ("elena vasquez", "Elena Vasquez"),
    ("Dr. Elena Vasquez", "Elena Vasquez"),
    ("Elena", "Elena Vasquez"),
    ("Marcus", None),
    ("", None),
])
def test_match_name(name, expected):
    assert match_name(name, ["Elena Vasquez", "Tom"]) == expected


def test_ambiguous_first_name_does_not_match():
    assert match_name("Anna", ["Anna Smith", "Anna Jones"]) is None


# ── Per-kind behaviour ──────────────────────────────────────────────────


def test_move_to_current_place_is_not_a_move(store, judgment, provider):
    provider.script(LocationChangeAnswer, {"moved": True, "place": "Cafe"})
    result = _turn(judgment, store, [Phase("core", (LocationChangeExtractor(),))])
    assert result.events == []


def test_arrival_gets_a_profile_in_the_same_turn(store, swipe0, judgment, provider):
    provider.script(PresenceAnswer, {
        "appeared": [{"name": "Carol", "position": "doorway"}, {"name": "alice"}],
        "departed": ["bob", "Mallory"],
    })
    provider.script(ProfileAnswer, {"sex": "female", "age": 30, "personality": ["wry"]})
    phases = [
        Phase("presence", (PresenceExtractor(),)),
        Phase("characters", (ProfileExtractor(),)),
    ]
    result = _turn(judgment, store, phases)
    kinds = [(type(e), getattr(e, "character", None)) for e in result.events]
    assert kinds == [
        (CharacterAppearedEvent, "Carol"),
        (CharacterDepartedEvent, "Bob"),
        (CharacterProfileSetEvent, "Carol"),
    ]
    state = store.project_state_at_message(1, swipe0)
    assert state.characters_present == ["Alice", "Carol"]
    assert state.characters["Carol"].profile.age == 30
    assert provider.asked.count("ProfileAnswer") == 1


def test_mood_removal_of_untracked_value_is_ignored(store, swipe0, judgment, provider):
    provider.script(
        MoodPhysicalAnswer,
        {"mood_added": ["Amused"], "physical_removed": ["tired"]},
        {"mood_added": []},
    )
    _turn(judgment, store, [Phase("characters", (MoodPhysicalExtractor(),))])
    state = store.project_state_at_message(1, swipe0)
    assert state.characters["Alice"].mood == ["Amused"]
    assert state.characters["Alice"].physical_state == []


def test_mood_repeated_in_one_answer_is_added_once(store, swipe0, judgment, provider):
    provider.script(
        MoodPhysicalAnswer,
        {"mood_added": ["Happy", "happy"], "physical_added": ["sweaty", "Sweaty"]},
        {"mood_added": []},
    )
    result = _turn(judgment, store, [Phase("characters", (MoodPhysicalExtractor(),))])
    assert [e.value for e in result.events] == ["Happy", "sweaty"]
    alice = store.project_state_at_message(1, swipe0).characters["Alice"]
    assert alice.mood == ["Happy"]
    assert alice.physical_state == ["sweaty"]


def test_props_are_confirmed_before_commit(store, swipe0, judgment, provider):
    provider.script(PropsAnswer, {"added": ["Newspaper", "menu"], "removed": ["Coffee Cups", "piano"]})
    provider.script(PropsConfirmationAnswer, {"rejected": ["newspaper"]})
    phases = [Phase("props", (PropsChangeExtractor(), PropsConfirmationExtractor()))]
    result = _turn(judgment, store, phases)
    assert [(type(e), e.prop) for e in result.events] == [(LocationPropRemovedEvent, "coffee cups")]
    assert store.project_state_at_message(1, swipe0).location.props == ["menu"]


def test_feelings_are_directional_and_deduplicated(store, swipe0, judgment, provider):
    provider.script(AttitudeAnswer, {
        "a_to_b_added": ["trust", "Trust"],
        "b_to_a_added": ["admiration"],
        "b_to_a_removed": ["fear"],
    })
    result = _turn(judgment, store, [Phase("pairs", (FeelingsExtractor(),))])
    added = [(e.from_character, e.toward_character, e.value) for e in result.events]
    assert added == [("Alice", "Bob", "trust"), ("Bob", "Alice", "admiration")]
    assert all(isinstance(e, FeelingAddedEvent) for e in result.events)
    rel = store.project_state_at_message(1, swipe0).relationship("Alice", "Bob")
    assert rel.a_to_b.feelings == ["trust"]
    assert rel.b_to_a.feelings == ["admiration"]


def test_state_consolidation_only_runs_every_sixth_message(store, judgment, provider):
    phases = [Phase("characters", (CharacterStateConsolidationExtractor(),))]
    for message_id in (1, 4):
        _turn(judgment, store, phases, message_id=message_id)
    assert "StateConsolidationAnswer" not in provider.asked


def test_state_consolidation_merges_synonyms(store, swipe0, judgment, provider):
    """Three words for worry collapse into one, keeping the spelling already stored."""
    store.append_events([
        CharacterMoodAddedEvent(source=at(1), character="Alice", value=v)
        for v in ("nervous", "anxious", "uneasy")
    ] + [CharacterPhysicalAddedEvent(source=at(1), character="Alice", value="tired")])
    provider.script(
        StateConsolidationAnswer,
        {"consolidated_moods": ["Anxious", "tense"], "consolidated_physical": []},
        {},
    )
    phases = [Phase("characters", (CharacterStateConsolidationExtractor(),))]
    result = _turn(judgment, store, phases, message_id=5)
    assert [(type(e), e.value) for e in result.events] == [
        (CharacterMoodRemovedEvent, "nervous"),
        (CharacterMoodRemovedEvent, "uneasy"),
        (CharacterMoodAddedEvent, "tense"),
    ]
    alice = store.project_state_at_message(5, swipe0).characters["Alice"]
    assert alice.mood == ["anxious", "tense"]
    assert alice.physical_state == ["tired"]


def test_attitude_consolidation_asks_once_per_direction(store, swipe0, judgment, provider):
    store.append_events([
        FeelingAddedEvent(source=at(1), from_character="Alice", toward_character="Bob", value=v)
        for v in ("fond", "affectionate", "caring")
    ] + [WantAddedEvent(source=at(1), from_character="Bob", toward_character="Alice", value="coffee")])
    provider.script(
        AttitudeConsolidationAnswer,
        {"consolidated_feelings": ["affectionate"]},
        {"consolidated_wants": ["coffee", "Coffee", "a second date"]},
    )
    phases = [Phase("pairs", (AttitudeConsolidationExtractor(),))]
    result = _turn(judgment, store, phases, message_id=5)
    assert provider.asked.count("AttitudeConsolidationAnswer") == 2
    assert [(type(e), e.from_character, e.value) for e in result.events] == [
        (FeelingRemovedEvent, "Alice", "fond"),
        (FeelingRemovedEvent, "Alice", "caring"),
        (WantAddedEvent, "Bob", "a second date"),
    ]
    rel = store.project_state_at_message(5, swipe0).relationship("Alice", "Bob")
    assert rel.a_to_b.feelings == ["affectionate"]
    assert rel.b_to_a.wants == ["coffee", "a second date"]


def test_time_skip_closes_the_chapter(store, swipe0, judgment, provider):
    provider.script(TimeChangeAnswer, {"time_passed": True, "days": 1})
    provider.script(NarrativeAnswer, {"description": "They part for the night."})
    provider.script(ChapterEndedAnswer, {"should_end": True})
    provider.script(ChapterDescriptionAnswer, {"summary": "Coffee, then goodbyes."})
    phases = [
        Phase("core", (TimeChangeExtractor(),)),
        Phase("narrative", (NarrativeDescriptionExtractor(),)),
        Phase("chapters", (ChapterEndedExtractor(), ChapterDescriptionExtractor())),
    ]
    result = _turn(judgment, store, phases)
    assert result.chapter_ended
    chapters = store.get_chapters(1, swipe0)
    assert [(c.index, c.title, c.summary, c.end_reason) for c in chapters] == [
        (0, "Chapter 1", "Coffee, then goodbyes.", "time_jump"),
        (1, "", "", None),
    ]


def test_small_time_step_does_not_consider_a_chapter_break(store, judgment, provider):
    provider.script(TimeChangeAnswer, {"time_passed": True, "minutes": 20})
    phases = [
        Phase("core", (TimeChangeExtractor(),)),
        Phase("chapters", (ChapterEndedExtractor(),)),
    ]
    result = _turn(judgment, store, phases)
    assert not result.chapter_ended
    assert "ChapterEndedAnswer" not in provider.asked

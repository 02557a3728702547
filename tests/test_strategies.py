from __future__ import annotations

import pytest

from conftest import at, make_chat
from scenetracker.extractors.base import ExtractorRun
from scenetracker.extractors.strategies import (
    Custom,
    EveryAssistantMessage,
    EveryMessage,
    EveryNMessages,
    EveryUserMessage,
    ExtractorHistory,
    FixedNumber,
    LastXMessages,
    NewEventsOfKind,
    NSinceLastEventOfKind,
    NSinceLastProducedEvents,
    SinceLastEvent,
    SinceLastEventOfKind,
    evaluate_run_strategy,
    message_window,
)
from scenetracker.models.common import TimeDelta
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import (
    CharacterMoodAddedEvent,
    RelationshipSubjectEvent,
    TimeDeltaEvent,
)
from scenetracker.prompts.loader import PromptLoader


@pytest.fixture
def make_run(store, judgment):
    """Build an ExtractorRun at a given message of a fresh transcript."""
    def build(message_id: int, swipe=None, history=None) -> ExtractorRun:
        return ExtractorRun(
            judgment=judgment,
            prompts=PromptLoader(),
            store=store,
            context=make_chat(message_id + 1),
            current=at(message_id),
            swipe=swipe or SwipeContext.uniform(0),
            history=history or ExtractorHistory(),
        )
    return build


def test_fixed_and_last_x_windows(make_run):
    run = make_run(5)
    assert message_window(FixedNumber(2), run) == (4, 5)
    assert message_window(LastXMessages(10), run) == (0, 5)


def test_window_never_empty(make_run):
    assert message_window(FixedNumber(0), make_run(3)) == (3, 3)


def test_since_last_event_ignores_other_branches(store, make_run):
    """An event on an unselected swipe does not shorten the window."""
    store.append_events([
        TimeDeltaEvent(source=at(2), delta=TimeDelta(minutes=1)),
        TimeDeltaEvent(source=at(4, 1), delta=TimeDelta(minutes=1)),
    ])
    assert message_window(SinceLastEvent(), make_run(5)) == (2, 5)
    assert message_window(SinceLastEvent(), make_run(5, SwipeContext.from_mapping({4: 1}))) == (4, 5)


def test_since_last_event_of_kind(store, make_run):
    store.append_events([
        TimeDeltaEvent(source=at(1), delta=TimeDelta(minutes=1)),
        CharacterMoodAddedEvent(source=at(3), character="Alice", value="tired"),
    ])
    strategy = SinceLastEventOfKind(kinds=(("time",),))
    assert message_window(strategy, make_run(4)) == (1, 4)


def test_since_last_event_without_events_covers_whole_chat(make_run):
    assert message_window(SinceLastEvent(), make_run(3)) == (0, 3)


def test_message_role_strategies(make_run):
    """Odd messages come from the user in the test transcript."""
    assert evaluate_run_strategy(EveryMessage(), make_run(2), "x")
    assert evaluate_run_strategy(EveryUserMessage(), make_run(3), "x")
    assert not evaluate_run_strategy(EveryUserMessage(), make_run(2), "x")
    assert evaluate_run_strategy(EveryAssistantMessage(), make_run(2), "x")
    assert not evaluate_run_strategy(EveryAssistantMessage(), make_run(3), "x")


def test_every_n_messages(make_run):
    every_two = EveryNMessages(n=2)
    assert evaluate_run_strategy(every_two, make_run(1), "x")
    assert not evaluate_run_strategy(every_two, make_run(2), "x")
    assert evaluate_run_strategy(EveryNMessages(n=2, offset=1), make_run(2), "x")
    assert not evaluate_run_strategy(EveryNMessages(n=0), make_run(2), "x")


def test_n_since_last_produced_counts_canonical_runs_only(make_run):
    history = ExtractorHistory()
    history.record("feelings", at(2), produced=True)
    history.record("feelings", at(4, 1), produced=True)
    history.record("feelings", at(5), produced=False)
    assert evaluate_run_strategy(NSinceLastProducedEvents(n=3), make_run(5, history=history), "feelings")
    assert not evaluate_run_strategy(NSinceLastProducedEvents(n=4), make_run(5, history=history), "feelings")
    assert evaluate_run_strategy(NSinceLastProducedEvents(n=9), make_run(5), "feelings")


def test_n_since_last_event_of_kind(store, make_run):
    store.append_events([TimeDeltaEvent(source=at(3), delta=TimeDelta(hours=1))])
    strategy = NSinceLastEventOfKind(n=2, kinds=(("time", "delta"),))
    assert not evaluate_run_strategy(strategy, make_run(4), "x")
    assert evaluate_run_strategy(strategy, make_run(5), "x")


def test_new_events_of_kind_looks_at_the_staged_batch(make_run):
    run = make_run(2)
    strategy = NewEventsOfKind(kinds=(("relationship", "subject"),))
    assert not evaluate_run_strategy(strategy, run, "x")
    run.batch.add([RelationshipSubjectEvent(source=at(2), pair=("Alice", "Bob"), subject="laugh")])
    assert evaluate_run_strategy(strategy, run, "x")


def test_custom_strategy(make_run):
    strategy = Custom(lambda run: run.current.message_id > 3)
    assert not evaluate_run_strategy(strategy, make_run(3), "x")
    assert evaluate_run_strategy(strategy, make_run(4), "x")


def test_history_forget_after():
    history = ExtractorHistory()
    for mid in (1, 3, 5):
        history.record("time_change", at(mid), produced=mid != 3)
    history.forget_after(3)
    assert history.ran_at["time_change"] == [at(1), at(3)]
    assert history.produced_at["time_change"] == [at(1)]

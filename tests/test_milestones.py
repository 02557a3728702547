from __future__ import annotations

from conftest import at
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import RelationshipSubjectEvent


def _subject(message_id: int, subject: str, swipe_id: int = 0, pair=("Alice", "Bob"), **extra):
    return RelationshipSubjectEvent(source=at(message_id, swipe_id), pair=pair, subject=subject, **extra)


def test_milestone_fires_once(store, swipe0):
    """A kiss at 3 and again at 7 is one milestone, anchored at 3."""
    first = _subject(3, "intimate_kiss", milestone_description="Under the awning.")
    store.append_events([first, _subject(7, "intimate_kiss")])
    milestones = store.get_milestones_for_pair(("Bob", "Alice"), swipe0)
    assert len(milestones) == 1
    assert milestones[0].source == at(3)
    assert milestones[0].display_name == "First Kiss"
    assert milestones[0].description == "Under the awning."


def test_first_occurrence_windows(store, swipe0):
    first = _subject(3, "intimate_kiss")
    again = _subject(7, "intimate_kiss")
    store.append_events([first, again])
    pair = ("Alice", "Bob")
    assert not store.is_first_occurrence(pair, "intimate_kiss", 8, swipe0)
    assert store.is_first_occurrence(pair, "intimate_kiss", 3, swipe0)
    assert store.is_first_occurrence(pair, "intimate_kiss", 8, swipe0, event_id=first.id)
    assert not store.is_first_occurrence(pair, "intimate_kiss", 8, swipe0, event_id=again.id)
    assert not store.is_first_occurrence(pair, "intimate_kiss", 3, swipe0, event_id=first.id)


def test_routine_subjects_are_never_milestones(store, swipe0):
    store.append_events([_subject(1, "conversation"), _subject(2, "laugh")])
    milestones = store.get_milestones_at_message(2, swipe0)
    assert [m.subject for m in milestones] == ["laugh"]
    assert not store.is_first_occurrence(("Alice", "Bob"), "conversation", 5, swipe0)


def test_milestones_are_branch_aware(store):
    """The first kiss on an abandoned swipe does not count on the selected one."""
    store.append_events([
        _subject(2, "intimate_kiss", swipe_id=1),
        _subject(4, "intimate_kiss"),
    ])
    on_zero = store.get_milestones_for_pair(("Alice", "Bob"), SwipeContext.uniform(0))
    on_one = store.get_milestones_for_pair(("Alice", "Bob"), SwipeContext.from_mapping({2: 1}))
    assert [m.source for m in on_zero] == [at(4)]
    assert [m.source for m in on_one] == [at(2, 1)]


def test_milestones_up_to_message(store, swipe0):
    store.append_events([_subject(2, "laugh"), _subject(5, "gift")])
    assert [m.subject for m in store.get_milestones_for_pair(("Alice", "Bob"), swipe0, up_to=3)] == ["laugh"]
    assert [m.subject for m in store.get_milestones_at_message(5, swipe0)] == ["laugh", "gift"]


def test_milestones_are_per_pair(store, swipe0):
    store.append_events([
        _subject(2, "laugh"),
        _subject(3, "laugh", pair=("Carol", "Alice")),
    ])
    milestones = store.get_milestones_at_message(3, swipe0)
    assert [(m.pair, m.subject) for m in milestones] == [
        (("Alice", "Bob"), "laugh"),
        (("Alice", "Carol"), "laugh"),
    ]


def test_deleted_subject_events_do_not_count(store, swipe0):
    store.append_events([_subject(2, "gift")])
    store.delete_events_at_message(at(2))
    assert store.get_milestones_at_message(5, swipe0) == []
    assert store.is_first_occurrence(("Alice", "Bob"), "gift", 5, swipe0)

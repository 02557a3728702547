"""Shared test fixtures: a scripted judgment provider, a seeded store and chat builders."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from scenetracker.llm.base import LLMProvider
from scenetracker.llm.judgment import JudgmentService
from scenetracker.models.common import LocationState, MessageAndSwipe, SceneState
from scenetracker.models.context import ChatMessage, ExtractionContext, SwipeContext
from scenetracker.models.state import CharacterState, Snapshot, new_relationship
from scenetracker.store.store import EventStore

T0 = datetime(2024, 6, 1, 12, 0)

# A flat per-message history as written before snapshots and events existed.
LEGACY_DOC = {
    "states": {
        "0": {
            "time": "2024-06-01T12:00:00",
            "location": {
                "area": "Town", "place": "Cafe", "position": "table",
                "location_type": "modern", "props": ["menu"],
            },
            "characters": [
                {"name": "Alice", "position": "seated", "mood": ["happy"]},
                {"name": "Bob", "position": "seated"},
            ],
            "topic": "coffee",
            "tone": "light",
        },
        "2": {
            "time": "2024-06-01T13:30:00",
            "location": {
                "area": "Town", "place": "Park", "position": "bench",
                "location_type": "outdoor", "props": ["fountain"],
            },
            "characters": [{"name": "Alice", "position": "standing", "mood": ["happy"]}],
            "topic": "coffee",
            "tone": "light",
        },
    },
    "relationships": [{
        "pair": ["Bob", "Alice"],
        "status": "friends",
        "milestones": [{"message_id": 2, "subject": "laugh", "description": "A bad pun."}],
    }],
    "chapters": [{
        "index": 0, "title": "Coffee", "summary": "They meet.",
        "end_message_id": 2, "reason": "location_change",
    }],
}


class ScriptedProvider(LLMProvider):
    """Answers structured prompts from per-schema queues.

    A queued entry may be a dict (validated into the schema), a schema
    instance, an exception to raise, or a zero-argument callable producing
    one of those.  A schema with nothing queued raises LookupError, which the
    judgment service reports as a failed call.
    """

    name = "scripted"
    MODELS = ["scripted"]

    def __init__(self) -> None:
        super().__init__(model="scripted")
        self.answers: Dict[str, List[Any]] = {}
        self.asked: List[str] = []

    def script(self, schema: type, *answers: Any) -> None:
        self.answers.setdefault(schema.__name__, []).extend(answers)

    async def complete_structured(self, system_prompt, user_prompt, response_model, *,
                                  temperature=None, max_tokens=2048):
        self.asked.append(response_model.__name__)
        queue = self.answers.get(response_model.__name__)
        if not queue:
            raise LookupError(f"No scripted answer for {response_model.__name__}")
        answer = queue.pop(0)
        if callable(answer) and not isinstance(answer, type):
            answer = answer()
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, dict):
            return response_model.model_validate(answer)
        return answer


def at(message_id: int, swipe_id: int = 0) -> MessageAndSwipe:
    return MessageAndSwipe(message_id=message_id, swipe_id=swipe_id)


def make_chat(count: int, swipes: Optional[Dict[int, int]] = None) -> ExtractionContext:
    """A transcript of ``count`` messages alternating between the user and Alice."""
    swipes = swipes or {}
    chat = []
    for i in range(count):
        is_user = i % 2 == 1
        chat.append(ChatMessage(
            name="Bob" if is_user else "Alice",
            is_user=is_user,
            mes=f"Message {i}",
            swipe_id=swipes.get(i, 0),
        ))
    return ExtractionContext(chat=chat, user_name="Bob", character_names=["Alice"])


@pytest.fixture
def snapshot():
    """Opening state at message 0: Alice and Bob at a table in a cafe, noon."""
    rel = new_relationship("Alice", "Bob")
    return Snapshot(
        source=at(0),
        time=T0,
        location=LocationState(
            area="Town", place="Cafe", position="corner table",
            location_type="modern", props=["menu", "coffee cups"],
        ),
        scene=SceneState(topic="small talk", tone="light"),
        characters={
            "Alice": CharacterState(name="Alice", position="seated"),
            "Bob": CharacterState(name="Bob", position="seated"),
        },
        characters_present=["Alice", "Bob"],
        relationships={"Alice|Bob": rel},
    )


@pytest.fixture
def store(snapshot):
    """Empty event log on top of the cafe snapshot."""
    return EventStore(snapshot=snapshot)


@pytest.fixture
def swipe0():
    """Swipe selection that picks the first alternate everywhere."""
    return SwipeContext.uniform(0)


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def judgment(provider):
    """Judgment service over the scripted provider, one attempt per call."""
    return JudgmentService(provider, max_attempts=1)

"""Host-supplied inputs: transcript, roster, settings and swipe selection."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from scenetracker.models.common import MessageAndSwipe


class ChatMessage(BaseModel):
    name: str
    is_user: bool = False
    is_system: bool = False
    mes: str = ""
    swipe_id: int = 0


class TrackSettings(BaseModel):
    """Per-category extraction toggles."""

    time: bool = True
    location: bool = True
    climate: bool = True
    props: bool = True
    characters: bool = True
    scene: bool = True
    relationships: bool = True
    narrative: bool = True
    chapters: bool = True


class PromptOverride(BaseModel):
    system_prompt: Optional[str] = None
    user_template: Optional[str] = None


class ExtractionSettings(BaseModel):
    track: TrackSettings = Field(default_factory=TrackSettings)
    prompt_overrides: Dict[str, PromptOverride] = Field(default_factory=dict)
    temperatures: Dict[str, float] = Field(default_factory=dict)
    profile_id: Optional[str] = None


class ExtractionContext(BaseModel):
    """Everything the host hands over for one turn."""

    chat: List[ChatMessage] = Field(default_factory=list)
    user_name: str = "User"
    character_names: List[str] = Field(default_factory=list)
    persona: str = ""
    settings: ExtractionSettings = Field(default_factory=ExtractionSettings)

    @property
    def current_message(self) -> Optional[MessageAndSwipe]:
        if not self.chat:
            return None
        last = len(self.chat) - 1
        return MessageAndSwipe(message_id=last, swipe_id=self.chat[last].swipe_id)

    def truncated(self, message_id: int) -> ExtractionContext:
        """Context as it looked when ``message_id`` was the newest message."""
        return self.model_copy(update={"chat": self.chat[: message_id + 1]})

    def swipe_context(self) -> SwipeContext:
        return SwipeContext.from_chat(self.chat)


class SwipeContext:
    """Maps a message id to the swipe currently selected for it in the host."""

    def __init__(self, resolver: Callable[[int], int]):
        self._resolver = resolver

    def __call__(self, message_id: int) -> int:
        return self._resolver(message_id)

    def is_canonical(self, coordinate: MessageAndSwipe) -> bool:
        return self._resolver(coordinate.message_id) == coordinate.swipe_id

    @classmethod
    def uniform(cls, swipe_id: int = 0) -> SwipeContext:
        return cls(lambda _message_id: swipe_id)

    @classmethod
    def from_mapping(cls, mapping: Dict[int, int], default: int = 0) -> SwipeContext:
        frozen = dict(mapping)
        return cls(lambda message_id: frozen.get(message_id, default))

    @classmethod
    def from_chat(cls, chat: Sequence[ChatMessage]) -> SwipeContext:
        swipes = [m.swipe_id for m in chat]
        return cls(lambda message_id: swipes[message_id] if 0 <= message_id < len(swipes) else 0)

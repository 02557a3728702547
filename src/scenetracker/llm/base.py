from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class LLMProvider(ABC):
    """A chat model that answers one extraction question as a schema instance.

    Implementations raise on transport errors and on replies that do not
    validate; :class:`~scenetracker.llm.judgment.JudgmentService` turns both
    into failed results.
    """

    name: ClassVar[str] = ""
    STRONG_MODEL: ClassVar[str] = ""
    FAST_MODEL: ClassVar[str] = ""
    MODELS: ClassVar[list[str]] = []
    # Upper bound the backend accepts for sampling temperature.
    MAX_TEMPERATURE: ClassVar[float] = 2.0

    def __init__(self, model: str, temperature: float = 0.3):
        self.model = model
        self.temperature = temperature

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"

    def resolve_temperature(self, temperature: float | None) -> float:
        chosen = self.temperature if temperature is None else temperature
        return max(0.0, min(chosen, self.MAX_TEMPERATURE))

    @abstractmethod
    async def complete_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: type[T],
        *,
        temperature: float | None = None,
        max_tokens: int = 2048,
    ) -> T:
        """Ask the question and return the validated answer."""

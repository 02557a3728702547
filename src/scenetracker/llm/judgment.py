"""The judgment service: one structured question to the LLM, never raising.

Extractors only ever see a :class:`JudgmentResult`.  Service errors and
replies that do not fit the schema become failures the orchestrator treats
as "no event".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

from scenetracker.config import settings
from scenetracker.llm.base import LLMProvider
from scenetracker.orchestration.cancellation import CancellationToken

T = TypeVar("T", bound=BaseModel)
log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuiltPrompt:
    name: str
    system: str
    user: str


@dataclass
class JudgmentResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None

    @classmethod
    def failure(cls, error: str) -> JudgmentResult[T]:
        return cls(value=None, error=error)


class JudgmentService:
    def __init__(
        self,
        provider: LLMProvider,
        *,
        max_attempts: int | None = None,
        max_tokens: int | None = None,
    ):
        self.provider = provider
        self.max_attempts = max(1, max_attempts or settings.judgment_max_attempts)
        self.max_tokens = max_tokens or settings.judgment_max_tokens
        self.calls = 0

    async def generate(
        self,
        prompt: BuiltPrompt,
        schema: type[T],
        temperature: float,
        token: CancellationToken | None = None,
    ) -> JudgmentResult[T]:
        last_error = "no attempt made"
        for attempt in range(1, self.max_attempts + 1):
            if token is not None and token.cancelled:
                return JudgmentResult.failure("cancelled")
            self.calls += 1
            try:
                value = await self.provider.complete_structured(
                    prompt.system,
                    prompt.user,
                    schema,
                    temperature=temperature,
                    max_tokens=self.max_tokens,
                )
                return JudgmentResult(value=value)
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                log.warning("Judgment '%s' attempt %d/%d failed: %s",
                            prompt.name, attempt, self.max_attempts, last_error)
        return JudgmentResult.failure(last_error)

from __future__ import annotations

import logging
from typing import TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

from scenetracker.llm.base import LLMProvider
from scenetracker.parsing.output_parser import OutputParser

T = TypeVar("T", bound=BaseModel)
log = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """Chat completions in JSON mode, with the answer schema appended to the system prompt.

    ``base_url`` lets the same provider talk to OpenAI-compatible local
    servers.
    """

    name = "openai"
    STRONG_MODEL = "gpt-4.1"
    FAST_MODEL = "gpt-4.1-mini"
    MODELS = ["gpt-4.1", "gpt-4.1-mini", "gpt-4.1-nano", "gpt-4o-mini"]

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float = 0.3,
        base_url: str | None = None,
    ):
        super().__init__(model=model or self.FAST_MODEL, temperature=temperature)
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str, response_model: type[BaseModel]) -> list[dict]:
        instructions = OutputParser.format_instructions(response_model)
        return [
            {"role": "system", "content": f"{system_prompt}\n\n{instructions}"},
            {"role": "user", "content": user_prompt},
        ]

    async def complete_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: type[T],
        *,
        temperature: float | None = None,
        max_tokens: int = 2048,
    ) -> T:
        schema_name = response_model.__name__
        log.info("OpenAI %s -> %s (%d chars of transcript)", self.model, schema_name, len(user_prompt))
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=self._messages(system_prompt, user_prompt, response_model),
                temperature=self.resolve_temperature(temperature),
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            log.error("OpenAI request for %s failed: %s", schema_name, exc)
            raise

        choice = response.choices[0]
        if choice.finish_reason == "length":
            log.warning("OpenAI answer for %s was cut off at %d tokens", schema_name, max_tokens)
        return OutputParser.parse(choice.message.content or "", response_model)

from __future__ import annotations

import logging
from typing import Any, TypeVar

from anthropic import AsyncAnthropic
from pydantic import BaseModel

from scenetracker.llm.base import LLMProvider
from scenetracker.parsing.output_parser import OutputParser

T = TypeVar("T", bound=BaseModel)
log = logging.getLogger(__name__)

_ANSWER_TOOL = "record_answer"


def _answer_tool(response_model: type[BaseModel]) -> dict[str, Any]:
    return {
        "name": _ANSWER_TOOL,
        "description": (
            f"Record your answer about the scene as a {response_model.__name__}. "
            "Leave lists empty when nothing changed."
        ),
        "input_schema": response_model.model_json_schema(),
    }


class AnthropicProvider(LLMProvider):
    """Messages API with a forced tool call so the answer arrives as structured input."""

    name = "anthropic"
    STRONG_MODEL = "claude-sonnet-4-5-20250929"
    FAST_MODEL = "claude-haiku-4-5-20251001"
    MODELS = ["claude-sonnet-4-5-20250929", "claude-haiku-4-5-20251001"]
    MAX_TEMPERATURE = 1.0

    def __init__(self, api_key: str, model: str | None = None, temperature: float = 0.3):
        super().__init__(model=model or self.FAST_MODEL, temperature=temperature)
        self._client = AsyncAnthropic(api_key=api_key)

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
        log.info("Anthropic %s -> %s (%d chars of transcript)", self.model, schema_name, len(user_prompt))
        try:
            response = await self._client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                max_tokens=max_tokens,
                temperature=self.resolve_temperature(temperature),
                tools=[_answer_tool(response_model)],
                tool_choice={"type": "tool", "name": _ANSWER_TOOL},
            )
        except Exception as exc:
            log.error("Anthropic request for %s failed: %s", schema_name, exc)
            raise

        if response.stop_reason == "max_tokens":
            log.warning("Anthropic answer for %s was cut off at %d tokens", schema_name, max_tokens)
        tool_inputs = [
            b.input for b in response.content
            if b.type == "tool_use" and b.name == _ANSWER_TOOL
        ]
        if tool_inputs:
            return response_model.model_validate(tool_inputs[0])

        # Some replies put the JSON in a text block despite the forced tool choice.
        log.warning("Anthropic answer for %s had no tool call; reading text", schema_name)
        text = "\n".join(b.text for b in response.content if b.type == "text")
        return OutputParser.parse(text, response_model)

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

_THINK_BLOCK = re.compile(r"<(think|thinking|reasoning)>.*?</\1>", re.DOTALL | re.IGNORECASE)
_FENCED = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)
_DECODER = json.JSONDecoder()


class OutputParser:
    """Turn raw model replies into validated extraction answers."""

    @staticmethod
    def strip_reasoning(text: str) -> str:
        """Drop ``<think>``-style blocks some models emit before the answer."""
        return _THINK_BLOCK.sub("", text).strip()

    @staticmethod
    def extract_json(text: str) -> dict[str, Any]:
        """Return the first JSON object in *text*.

        A fenced block is preferred; otherwise every ``{`` is tried as the
        start of an object, which covers bare replies and replies wrapped in
        prose.  Raises ``ValueError`` when no object decodes.
        """
        text = OutputParser.strip_reasoning(text)
        fenced = _FENCED.search(text)
        candidates = [fenced.group(1), text] if fenced else [text]
        for candidate in candidates:
            for match in re.finditer(r"\{", candidate):
                try:
                    value, _end = _DECODER.raw_decode(candidate, match.start())
                except json.JSONDecodeError:
                    continue
                if isinstance(value, dict):
                    return value
        raise ValueError(f"No JSON object in reply: {text[:300]!r}")

    @staticmethod
    def parse(text: str, model: type[T]) -> T:
        data = OutputParser.extract_json(text)
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise ValueError(f"Reply does not fit {model.__name__} (bad fields: {fields})") from exc

    @staticmethod
    def format_instructions(model: type[BaseModel]) -> str:
        """Schema block appended to system prompts for providers without tool calls."""
        schema = json.dumps(model.model_json_schema(), indent=2)
        return (
            f"Answer with one JSON object matching the {model.__name__} schema below "
            "and nothing else. Use empty lists when nothing changed.\n"
            f"```json\n{schema}\n```"
        )

"""Extractor prompt templates stored as ``<category>/<name>.txt`` files."""

from __future__ import annotations

import re
from pathlib import Path

from scenetracker.config import settings

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class PromptLoader:
    """Reads and renders ``{variable}`` templates.

    Substitution is a single pass, so braces inside substituted values (a
    transcript quoting ``{name}``, say) are never expanded.  Placeholders
    without a value are left as they are.
    """

    def __init__(self, templates_dir: str | Path | None = None):
        self.root = Path(templates_dir or settings.prompts_dir)
        self._texts: dict[tuple[str, str], str] = {}

    def load(self, category: str, name: str) -> str:
        key = (category, name)
        text = self._texts.get(key)
        if text is None:
            text = (self.root / category / f"{name}.txt").read_text(encoding="utf-8")
            self._texts[key] = text
        return text

    @staticmethod
    def fill(template: str, **variables: str) -> str:
        return _PLACEHOLDER.sub(lambda m: variables.get(m.group(1), m.group(0)), template)

    def render(self, category: str, name: str, **variables: str) -> str:
        return self.fill(self.load(category, name), **variables)

    def placeholders(self, category: str, name: str) -> set[str]:
        """Variable names a template expects."""
        return set(_PLACEHOLDER.findall(self.load(category, name)))

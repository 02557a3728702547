"""Provider lookup by name, with model tiers resolved from settings."""

from __future__ import annotations

import logging
from typing import Literal

from scenetracker.config import settings
from scenetracker.llm.anthropic import AnthropicProvider
from scenetracker.llm.base import LLMProvider
from scenetracker.llm.openai import OpenAIProvider

log = logging.getLogger(__name__)

Tier = Literal["fast", "strong"]

PROVIDERS: dict[str, type[LLMProvider]] = {
    cls.name: cls for cls in (OpenAIProvider, AnthropicProvider)
}


def _api_key(name: str) -> str:
    return getattr(settings, f"{name}_api_key", "")


def _tier_default(cls: type[LLMProvider], tier: Tier) -> tuple[str, float]:
    if tier == "strong":
        return cls.STRONG_MODEL, settings.default_strong_temperature
    return cls.FAST_MODEL, settings.default_fast_temperature


def get_provider(
    name: str | None = None,
    tier: Tier = "fast",
    model: str | None = None,
    temperature: float | None = None,
) -> LLMProvider:
    """Build the provider that will answer judgment calls.

    Per-turn extraction uses the ``fast`` tier.  An explicit *model* (or
    ``settings.default_model``) wins over the tier default.  Raises
    ``ValueError`` for an unknown name or a provider without an API key.
    """
    name = name or settings.default_provider
    cls = PROVIDERS.get(name)
    if cls is None:
        raise ValueError(f"Unknown provider '{name}'. Choose from: {sorted(PROVIDERS)}")
    api_key = _api_key(name)
    if not api_key:
        raise ValueError(f"No API key for provider '{name}' (set {name.upper()}_API_KEY).")

    tier_model, tier_temperature = _tier_default(cls, tier)
    chosen_model = model or settings.default_model or tier_model
    chosen_temperature = tier_temperature if temperature is None else temperature
    log.info("Judgment provider %s: model=%s, tier=%s, temperature=%.2f",
             name, chosen_model, tier, chosen_temperature)
    return cls(api_key=api_key, model=chosen_model, temperature=chosen_temperature)


def list_providers() -> dict[str, dict]:
    return {
        name: {
            "configured": bool(_api_key(name)),
            "fast_model": cls.FAST_MODEL,
            "strong_model": cls.STRONG_MODEL,
            "models": list(cls.MODELS),
            "is_default": name == settings.default_provider,
        }
        for name, cls in PROVIDERS.items()
    }

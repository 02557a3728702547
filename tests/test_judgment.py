from __future__ import annotations

import asyncio

import pytest

from scenetracker.config import settings
from scenetracker.extractors.core import TimeChangeAnswer
from scenetracker.llm.judgment import BuiltPrompt, JudgmentService
from scenetracker.llm.openai import OpenAIProvider
from scenetracker.llm.registry import get_provider, list_providers
from scenetracker.orchestration.cancellation import CancellationToken
from scenetracker.parsing.output_parser import OutputParser

PROMPT = BuiltPrompt(name="time_change", system="sys", user="user")


def _ask(judgment, token=None):
    return asyncio.run(judgment.generate(PROMPT, TimeChangeAnswer, 0.3, token))


# ── Output parsing ──────────────────────────────────────────────────────


@pytest.mark.parametrize("reply", [
    '{"time_passed": true, "hours": 2}',
    'Sure!\n```json\n{"time_passed": true, "hours": 2}\n```',
    '<think>Two hours pass {maybe}.</think>{"time_passed": true, "hours": 2}',
    'The answer is {"time_passed": true, "hours": 2, "reasoning": "a {brace} in text"} as asked.',
])
def test_parse_finds_the_answer(reply):
    answer = OutputParser.parse(reply, TimeChangeAnswer)
    assert answer.time_passed
    assert answer.hours == 2


def test_parse_rejects_prose():
    with pytest.raises(ValueError):
        OutputParser.parse("No time passes.", TimeChangeAnswer)


def test_parse_rejects_wrong_shape():
    with pytest.raises(ValueError):
        OutputParser.parse('{"hours": "several"}', TimeChangeAnswer)


def test_format_instructions_include_schema():
    text = OutputParser.format_instructions(TimeChangeAnswer)
    assert '"time_passed"' in text


# ── Judgment service ────────────────────────────────────────────────────


def test_retry_after_unparseable_reply(provider):
    provider.script(TimeChangeAnswer, ValueError("no JSON"), {"time_passed": True, "minutes": 5})
    result = _ask(JudgmentService(provider, max_attempts=2))
    assert result.ok
    assert result.value.minutes == 5
    assert provider.asked == ["TimeChangeAnswer", "TimeChangeAnswer"]


def test_exhausted_attempts_become_a_failure(provider):
    provider.script(TimeChangeAnswer, RuntimeError("timeout"), RuntimeError("timeout"))
    result = _ask(JudgmentService(provider, max_attempts=2))
    assert not result.ok
    assert result.error == "RuntimeError: timeout"


def test_cancelled_token_skips_the_call(provider):
    token = CancellationToken()
    token.cancel()
    result = _ask(JudgmentService(provider), token)
    assert result.error == "cancelled"
    assert provider.asked == []


# ── Provider registry ───────────────────────────────────────────────────


def test_unknown_provider():
    with pytest.raises(ValueError):
        get_provider("groq")


def test_provider_without_key(monkeypatch):
    monkeypatch.setattr(settings, "anthropic_api_key", "")
    with pytest.raises(ValueError):
        get_provider("anthropic")
    assert not list_providers()["anthropic"]["configured"]


def test_provider_tiers(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(settings, "default_model", None)
    strong = get_provider("openai", tier="strong")
    assert isinstance(strong, OpenAIProvider)
    assert strong.model == OpenAIProvider.STRONG_MODEL
    assert strong.temperature == settings.default_strong_temperature
    explicit = get_provider("openai", model="gpt-4.1-nano", temperature=0.0)
    assert explicit.model == "gpt-4.1-nano"
    assert explicit.resolve_temperature(None) == 0.0
    assert explicit.resolve_temperature(5.0) == 2.0

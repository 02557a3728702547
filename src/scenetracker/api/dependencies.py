"""Shared FastAPI dependencies: session registry, provider selection, judgment."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from scenetracker.config import settings
from scenetracker.db.database import get_session
from scenetracker.llm.judgment import JudgmentService
from scenetracker.llm.registry import get_provider
from scenetracker.orchestration.session import SessionRegistry, TrackerSession

log = logging.getLogger(__name__)


@dataclass
class ProviderChoice:
    """Provider and model that new judgment services are built on."""

    name: str
    model: Optional[str] = None  # None = fast tier default


# Switched at runtime through PUT /api/providers/active.
_choice = ProviderChoice(name=settings.default_provider)


def current_choice() -> ProviderChoice:
    return ProviderChoice(name=_choice.name, model=_choice.model)


def choose_provider(name: str, model: Optional[str] = None) -> None:
    _choice.name = name
    _choice.model = model
    log.info("Judgment provider is now %s (model: %s)", name, model or "tier default")


def build_judgment() -> JudgmentService:
    """Judgment service over the chosen provider; 400 if it cannot be built."""
    try:
        provider = get_provider(_choice.name, tier="fast", model=_choice.model)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return JudgmentService(provider)


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


async def get_tracker_session(
    chat_key: str,
    registry: SessionRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_session),
) -> TrackerSession:
    return await registry.open(chat_key, db)

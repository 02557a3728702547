from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from scenetracker.api.dependencies import build_judgment, choose_provider, current_choice
from scenetracker.llm.registry import list_providers

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/providers", tags=["providers"])


class ProviderSelection(BaseModel):
    name: str
    model: Optional[str] = None


def _selection_problem(selection: ProviderSelection) -> Optional[str]:
    info = list_providers().get(selection.name)
    if info is None:
        return f"Unknown provider '{selection.name}'"
    if not info["configured"]:
        return f"Provider '{selection.name}' has no API key configured"
    if selection.model and selection.model not in info["models"]:
        return f"'{selection.model}' is not one of {info['models']}"
    return None


@router.get("")
def describe_providers():
    """Judgment providers, their models, and the one extraction uses now."""
    choice = current_choice()
    return {
        "active": ProviderSelection(name=choice.name, model=choice.model),
        "providers": list_providers(),
    }


@router.put("/active")
def select_provider(selection: ProviderSelection, request: Request):
    """Switch judgment to another provider or model; open sessions switch with it."""
    problem = _selection_problem(selection)
    if problem:
        raise HTTPException(400, problem)
    choose_provider(selection.name, selection.model)
    registry = request.app.state.registry
    registry.use_judgment(build_judgment())
    log.info("%d open sessions now judge with %s", len(registry), selection.name)
    return {"active": selection, "sessions": len(registry)}

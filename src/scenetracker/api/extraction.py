"""Run extraction turns and receive host notifications for a chat."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from scenetracker.api.dependencies import build_judgment, get_tracker_session
from scenetracker.db.database import get_session
from scenetracker.errors import SessionBusyError, TrackerError
from scenetracker.models.context import ExtractionContext
from scenetracker.orchestration.orchestrator import ExtractionResult
from scenetracker.orchestration.session import TrackerSession

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/extraction", tags=["extraction"])


class TurnResponse(BaseModel):
    events: List[dict] = Field(default_factory=list)
    chapter_ended: bool = False
    aborted: bool = False
    errors: List[Tuple[str, str]] = Field(default_factory=list)
    has_snapshot: bool = False

    @classmethod
    def from_result(cls, result: ExtractionResult, session: TrackerSession) -> TurnResponse:
        return cls(
            events=[e.model_dump(mode="json") for e in result.events],
            chapter_ended=result.chapter_ended,
            aborted=result.aborted,
            errors=result.errors,
            has_snapshot=session.store.has_snapshot,
        )


class RangeRequest(BaseModel):
    context: ExtractionContext
    start: int = Field(ge=0)
    end: Optional[int] = None


class EditedRequest(BaseModel):
    context: ExtractionContext
    message_id: int = Field(ge=0)


class SwipeDeletedRequest(BaseModel):
    message_id: int
    swipe_id: int


def _ready(session: TrackerSession) -> TrackerSession:
    session.judgment = build_judgment()
    return session


@router.post("/{chat_key}/turn")
async def extract_turn(
    body: ExtractionContext,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    """Extract the newest message of the transcript (or bootstrap the chat)."""
    try:
        result = await _ready(session).extract_turn(body)
    except SessionBusyError as exc:
        raise HTTPException(409, str(exc))
    except TrackerError as exc:
        raise HTTPException(400, str(exc))
    if not result.aborted:
        await session.save(db)
    return TurnResponse.from_result(result, session)


@router.post("/{chat_key}/range")
async def extract_range(
    body: RangeRequest,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    """Extract messages ``start``..``end`` one turn at a time."""
    end = len(body.context.chat) - 1 if body.end is None else min(body.end, len(body.context.chat) - 1)
    contexts = [body.context.truncated(mid) for mid in range(body.start, end + 1)]
    try:
        results = await _ready(session).extract_range(contexts)
    except SessionBusyError as exc:
        raise HTTPException(409, str(exc))
    except TrackerError as exc:
        raise HTTPException(400, str(exc))
    await session.save(db)
    return [TurnResponse.from_result(r, session) for r in results]


@router.post("/{chat_key}/edited")
async def message_edited(
    body: EditedRequest,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    try:
        result = await _ready(session).on_message_edited(body.context, body.message_id)
    except SessionBusyError as exc:
        raise HTTPException(409, str(exc))
    if result is None:
        return {"reextracted": False}
    await session.save(db)
    return {"reextracted": True, "result": TurnResponse.from_result(result, session)}


@router.post("/{chat_key}/message-deleted/{message_id}")
async def message_deleted(
    message_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    count = session.on_message_deleted(message_id)
    await session.save(db)
    return {"deleted": count}


@router.post("/{chat_key}/swipe-deleted")
async def swipe_deleted(
    body: SwipeDeletedRequest,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    shifted = session.on_swipe_deleted(body.message_id, body.swipe_id)
    await session.save(db)
    return {"shifted": shifted}


@router.post("/{chat_key}/truncated/{last_message_id}")
async def chat_truncated(
    last_message_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    count = session.on_chat_truncated(last_message_id)
    await session.save(db)
    return {"deleted": count}

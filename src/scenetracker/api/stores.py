"""Store queries and manual edits for one chat's event store."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from scenetracker.api.dependencies import get_registry, get_tracker_session
from scenetracker.db import repository
from scenetracker.db.database import get_session
from scenetracker.errors import MigrationError, StoreError
from scenetracker.models.common import MessageAndSwipe
from scenetracker.models.context import SwipeContext
from scenetracker.models.events import Event
from scenetracker.models.state import Snapshot
from scenetracker.orchestration.session import SessionRegistry, TrackerSession
from scenetracker.store.store import EventStore

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stores", tags=["stores"])


def swipe_selection(
    swipes: str = Query("", description="Selected swipes as 'message:swipe' pairs, e.g. '3:1,5:2'"),
    default_swipe: int = Query(0, ge=0),
) -> SwipeContext:
    mapping: Dict[int, int] = {}
    for item in filter(None, (s.strip() for s in swipes.split(","))):
        try:
            mid, sid = (int(p) for p in item.split(":", 1))
        except ValueError:
            raise HTTPException(422, f"Bad swipe selection '{item}'")
        mapping[mid] = sid
    return SwipeContext.from_mapping(mapping, default=default_swipe)


class EventsBody(BaseModel):
    events: List[Event]


class ReindexBody(BaseModel):
    message_id: int
    removed_swipe_id: int


# ── Queries ─────────────────────────────────────────────────────────────


@router.get("/{chat_key}/projection/{message_id}")
def get_projection(
    message_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    swipe: SwipeContext = Depends(swipe_selection),
):
    """Scene state after ``message_id`` on the selected branch."""
    projection = session.store.project_state_at_message(message_id, swipe)
    if projection is None:
        raise HTTPException(404, f"No tracked state at message {message_id}")
    return projection


@router.get("/{chat_key}/milestones/{message_id}")
def get_milestones(
    message_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    swipe: SwipeContext = Depends(swipe_selection),
):
    return session.store.get_milestones_at_message(message_id, swipe)


@router.get("/{chat_key}/pairs/{a}/{b}/milestones")
def get_pair_milestones(
    a: str,
    b: str,
    up_to: Optional[int] = None,
    session: TrackerSession = Depends(get_tracker_session),
    swipe: SwipeContext = Depends(swipe_selection),
):
    return session.store.get_milestones_for_pair((a, b), swipe, up_to)


@router.get("/{chat_key}/narrative/{message_id}")
def get_narrative(
    message_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    swipe: SwipeContext = Depends(swipe_selection),
):
    return session.store.get_narrative_events(message_id, swipe)


@router.get("/{chat_key}/chapters/{message_id}")
def get_chapters(
    message_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    swipe: SwipeContext = Depends(swipe_selection),
):
    if not session.store.has_snapshot:
        raise HTTPException(404, "No tracked state for this chat")
    return session.store.get_chapters(message_id, swipe)


@router.get("/{chat_key}/messages")
def get_message_ids(session: TrackerSession = Depends(get_tracker_session)):
    """Message ids that carry at least one active event."""
    return {"message_ids": session.store.get_message_ids_with_events()}


@router.get("/{chat_key}/events/{message_id}/{swipe_id}")
def get_events(message_id: int, swipe_id: int, session: TrackerSession = Depends(get_tracker_session)):
    return session.store.get_events_at(MessageAndSwipe(message_id=message_id, swipe_id=swipe_id))


@router.get("/{chat_key}/export")
def export_store(session: TrackerSession = Depends(get_tracker_session)):
    return session.store.serialize()


# ── Commands ────────────────────────────────────────────────────────────


@router.post("/{chat_key}/events", status_code=201)
async def append_events(
    body: EventsBody,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    """Append hand-written events (manual editors)."""
    try:
        session.store.append_events(body.events)
    except StoreError as exc:
        raise HTTPException(400, str(exc))
    await session.save(db)
    return {"appended": len(body.events)}


@router.put("/{chat_key}/events/{message_id}/{swipe_id}")
async def replace_events(
    message_id: int,
    swipe_id: int,
    body: EventsBody,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    coordinate = MessageAndSwipe(message_id=message_id, swipe_id=swipe_id)
    try:
        session.store.replace_events_at_message(coordinate, body.events)
    except StoreError as exc:
        raise HTTPException(400, str(exc))
    await session.save(db)
    return {"replaced": len(body.events)}


@router.delete("/{chat_key}/events/{message_id}/{swipe_id}")
async def delete_events_at(
    message_id: int,
    swipe_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    count = session.store.delete_events_at_message(
        MessageAndSwipe(message_id=message_id, swipe_id=swipe_id)
    )
    await session.save(db)
    return {"deleted": count}


@router.delete("/{chat_key}/events/{message_id}")
async def delete_message_events(
    message_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    count = session.store.delete_all_events_for_message(message_id)
    await session.save(db)
    return {"deleted": count}


@router.delete("/{chat_key}/events-after/{message_id}")
async def delete_events_after(
    message_id: int,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    count = session.store.delete_events_after_message(message_id)
    await session.save(db)
    return {"deleted": count}


@router.post("/{chat_key}/reindex")
async def reindex_swipes(
    body: ReindexBody,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    shifted = session.store.reindex_swipes_after_deletion(body.message_id, body.removed_swipe_id)
    await session.save(db)
    return {"shifted": shifted}


@router.put("/{chat_key}/snapshot")
async def put_snapshot(
    body: Snapshot,
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    """Replace the baseline, e.g. after the user corrects the opening state."""
    session.store.replace_initial_snapshot(body)
    await session.save(db)
    return {"source": body.source}


@router.put("/{chat_key}/import")
async def import_store(
    body: Dict[str, Any],
    session: TrackerSession = Depends(get_tracker_session),
    db: AsyncSession = Depends(get_session),
):
    """Replace the whole store with a document, migrating it if it is older."""
    try:
        store = EventStore.deserialize(body)
    except (MigrationError, ValueError, KeyError, TypeError) as exc:
        raise HTTPException(400, f"Cannot import document: {exc}")
    session.store = store
    session.history.forget_after(-1)
    await session.save(db)
    log.info("Imported store for %s: %d events", session.chat_key, len(store.log.all_events()))
    return {"events": len(store.log.all_events()), "has_snapshot": store.has_snapshot}


@router.delete("/{chat_key}")
async def reset_store(
    chat_key: str,
    registry: SessionRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_session),
):
    registry.drop(chat_key)
    deleted = await repository.delete_document(db, chat_key)
    if not deleted:
        raise HTTPException(404, f"No store for chat '{chat_key}'")
    return {"deleted": chat_key}


@router.get("")
async def list_stores(db: AsyncSession = Depends(get_session)):
    return {"chat_keys": await repository.list_chat_keys(db)}

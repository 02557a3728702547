"""Load and save store documents, one row per chat key."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from scenetracker.db.tables import DBStoreDocument

log = logging.getLogger(__name__)


async def load_document(db: AsyncSession, chat_key: str) -> Optional[str]:
    """Raw JSON of the stored document, or None if the chat has none yet."""
    row = await db.scalar(select(DBStoreDocument).where(DBStoreDocument.chat_key == chat_key))
    return row.document_json if row is not None else None


async def save_document(db: AsyncSession, chat_key: str, document: Dict[str, Any]) -> None:
    payload = json.dumps(document)
    row = await db.scalar(select(DBStoreDocument).where(DBStoreDocument.chat_key == chat_key))
    if row is None:
        row = DBStoreDocument(chat_key=chat_key, version=document.get("version", 0), document_json=payload)
        db.add(row)
    else:
        row.version = document.get("version", row.version)
        row.document_json = payload
    await db.commit()
    log.info("Saved store document for %s (%d bytes)", chat_key, len(payload))


async def delete_document(db: AsyncSession, chat_key: str) -> bool:
    result = await db.execute(delete(DBStoreDocument).where(DBStoreDocument.chat_key == chat_key))
    await db.commit()
    return bool(result.rowcount)


async def list_chat_keys(db: AsyncSession) -> List[str]:
    rows = await db.scalars(select(DBStoreDocument.chat_key).order_by(DBStoreDocument.chat_key))
    return list(rows)

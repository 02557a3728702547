"""Versioned store document.

The persisted form of a store holds the Snapshot, the whole event log
(deleted and off-branch events included, so history stays recoverable) and
a version tag.  Loading always runs the migration chain first.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from scenetracker.errors import MigrationError
from scenetracker.models.events import Event
from scenetracker.models.state import Snapshot
from scenetracker.store.migrations import CURRENT_VERSION, migrate


class StoreDocument(BaseModel):
    version: int = CURRENT_VERSION
    snapshot: Optional[Snapshot] = None
    events: List[Event] = Field(default_factory=list)  # type: ignore[valid-type]


def to_document(snapshot: Optional[Snapshot], events: List[Any]) -> Dict[str, Any]:
    doc = StoreDocument(snapshot=snapshot, events=events)
    return doc.model_dump(mode="json")


def from_document(data: Union[str, bytes, Dict[str, Any]]) -> StoreDocument:
    """Parse and migrate a persisted document.

    Raises ``MigrationError`` or pydantic's ``ValidationError``; callers
    that must not fail use ``EventStore.from_document`` instead.
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise MigrationError(f"Store document is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MigrationError(f"Store document must be an object, got {type(data).__name__}")
    migrated = migrate(data)
    return StoreDocument.model_validate(migrated)

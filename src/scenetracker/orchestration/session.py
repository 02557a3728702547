"""Per-chat session controller and the registry that owns the sessions.

Each chat gets one :class:`TrackerSession` holding its own ``EventStore``.
Nothing is shared between chats; switching chats means asking the registry
for another session, which is loaded from the database on first use.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from scenetracker.db import repository
from scenetracker.errors import SessionBusyError, TrackerError
from scenetracker.extractors.base import ExtractorRun, JudgmentFailed
from scenetracker.extractors.initial import InitialSnapshotExtractor
from scenetracker.extractors.strategies import ExtractorHistory
from scenetracker.llm.judgment import JudgmentService
from scenetracker.models.context import ExtractionContext
from scenetracker.orchestration.cancellation import CancellationToken
from scenetracker.orchestration.orchestrator import ExtractionOrchestrator, ExtractionResult, Phase
from scenetracker.prompts.loader import PromptLoader
from scenetracker.store.store import EventStore

log = logging.getLogger(__name__)


class TrackerSession:
    def __init__(
        self,
        chat_key: str,
        judgment: Optional[JudgmentService],
        *,
        store: Optional[EventStore] = None,
        prompts: Optional[PromptLoader] = None,
        phases: Optional[Sequence[Phase]] = None,
    ):
        self.chat_key = chat_key
        self.store = store or EventStore()
        self.prompts = prompts or PromptLoader()
        self.orchestrator = ExtractionOrchestrator(judgment, self.prompts, phases)
        self.bootstrapper = InitialSnapshotExtractor()
        self.history = ExtractorHistory()
        self.busy = False

    @property
    def judgment(self) -> Optional[JudgmentService]:
        return self.orchestrator.judgment

    @judgment.setter
    def judgment(self, judgment: JudgmentService) -> None:
        self.orchestrator.judgment = judgment

    # ── Extraction ──────────────────────────────────────────────────────

    async def extract_turn(
        self, context: ExtractionContext, token: Optional[CancellationToken] = None
    ) -> ExtractionResult:
        """Extract the newest message of ``context``.

        The first extraction of a chat builds the Snapshot instead of
        running the event phases.
        """
        if self.busy:
            raise SessionBusyError(f"Session {self.chat_key} is running a batch extraction")
        return await self._extract(context, token or CancellationToken())

    async def extract_range(
        self,
        contexts: Iterable[ExtractionContext],
        token: Optional[CancellationToken] = None,
    ) -> List[ExtractionResult]:
        """Extract several turns back to back, stopping at the first abort."""
        if self.busy:
            raise SessionBusyError(f"Session {self.chat_key} is already extracting")
        token = token or CancellationToken()
        results: List[ExtractionResult] = []
        self.busy = True
        try:
            for context in contexts:
                result = await self._extract(context, token)
                results.append(result)
                if result.aborted:
                    break
        finally:
            self.busy = False
        log.info("Batch extraction for %s finished: %d turns", self.chat_key, len(results))
        return results

    async def _extract(self, context: ExtractionContext, token: CancellationToken) -> ExtractionResult:
        current = context.current_message
        if current is None:
            return ExtractionResult()
        if self.judgment is None:
            raise TrackerError("No judgment service configured")
        swipe = context.swipe_context()
        if not self.store.has_snapshot:
            return await self._bootstrap(context, token)
        return await self.orchestrator.run_turn(
            self.store, context, current, swipe, token, self.history
        )

    async def _bootstrap(self, context: ExtractionContext, token: CancellationToken) -> ExtractionResult:
        run = ExtractorRun(
            judgment=self.judgment,
            prompts=self.prompts,
            store=self.store,
            context=context,
            current=context.current_message,  # type: ignore[arg-type]
            swipe=context.swipe_context(),
            token=token,
            history=self.history,
        )
        if token.cancelled:
            return ExtractionResult(aborted=True)
        try:
            snapshot = await self.bootstrapper.build(run)
        except JudgmentFailed as exc:
            log.warning("Initial snapshot for %s failed: %s", self.chat_key, exc)
            return ExtractionResult(errors=[(self.bootstrapper.name, str(exc))])
        if token.cancelled:
            return ExtractionResult(aborted=True)
        self.store.replace_initial_snapshot(snapshot)
        return ExtractionResult()

    # ── Host callbacks ──────────────────────────────────────────────────

    def on_message_deleted(self, message_id: int) -> int:
        count = self.store.delete_all_events_for_message(message_id)
        log.info("Message %d deleted in %s: %d events removed", message_id, self.chat_key, count)
        return count

    def on_swipe_deleted(self, message_id: int, swipe_id: int) -> int:
        return self.store.reindex_swipes_after_deletion(message_id, swipe_id)

    def on_chat_truncated(self, last_valid_message_id: int) -> int:
        """Drop everything after the last message that still exists (branching)."""
        self.history.forget_after(last_valid_message_id)
        return self.store.delete_events_after_message(last_valid_message_id)

    async def on_message_edited(
        self,
        context: ExtractionContext,
        message_id: int,
        token: Optional[CancellationToken] = None,
    ) -> Optional[ExtractionResult]:
        """Re-extract an edited message if it is one of the last two.

        Older edits leave the store alone; the opening message is covered by
        the Snapshot and is never re-extracted.
        """
        last = len(context.chat) - 1
        if message_id == 0 or message_id < last - 1 or not self.store.has_snapshot:
            return None
        self.history.forget_after(message_id - 1)
        return await self.extract_turn(context.truncated(message_id), token)

    # ── Persistence ─────────────────────────────────────────────────────

    async def load(self, db: AsyncSession) -> None:
        data = await repository.load_document(db, self.chat_key)
        self.store = EventStore.from_document(data)
        self.history = ExtractorHistory()

    async def save(self, db: AsyncSession) -> None:
        await repository.save_document(db, self.chat_key, self.store.serialize())

    def reset(self) -> None:
        self.store = EventStore()
        self.history = ExtractorHistory()


class SessionRegistry:
    """Owns one TrackerSession per chat key."""

    def __init__(self, judgment: Optional[JudgmentService] = None, prompts: Optional[PromptLoader] = None):
        self._judgment = judgment
        self._prompts = prompts or PromptLoader()
        self._sessions: Dict[str, TrackerSession] = {}

    def __contains__(self, chat_key: str) -> bool:
        return chat_key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, chat_key: str) -> TrackerSession:
        if chat_key not in self._sessions:
            self._sessions[chat_key] = TrackerSession(chat_key, self._judgment, prompts=self._prompts)
        return self._sessions[chat_key]

    async def open(self, chat_key: str, db: AsyncSession) -> TrackerSession:
        """Session for ``chat_key``, loading its stored document the first time."""
        if chat_key in self._sessions:
            return self._sessions[chat_key]
        session = self.get(chat_key)
        await session.load(db)
        log.info("Opened session %s (snapshot=%s, %d events)", chat_key,
                 session.store.has_snapshot, len(session.store.log.all_events()))
        return session

    def drop(self, chat_key: str) -> None:
        self._sessions.pop(chat_key, None)

    def use_judgment(self, judgment: JudgmentService) -> None:
        self._judgment = judgment
        for session in self._sessions.values():
            session.judgment = judgment

"""Chat session: the single owner of a conversation's edits and checkpoints.

Wires the turn store, the journal, the event bus, the ledger and the
checkpoint engine together. Every mutating call is serialized through one
``asyncio.Lock`` and runs its filesystem work in a worker thread, so callers
never block their event loop and two operations of the same session never
interleave writes.

Sessions are resumable: on construction the journal is replayed into the
ledger and the checkpoint cursor.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import structlog

from core.bus import EventBus
from core.checkpoint import CheckpointEngine, GenerationControl
from core.errors import EditError
from core.ledger import FileEditLedger
from projections.base import replay
from projections.diff_view import DiffViewer
from projections.session_state import SessionState
from schemas import events as ev
from schemas.file_edit import ChatContext, ConversationTurn, FileEdit, Role, ToolKind, normalize_path
from schemas.settings import Settings
from storage.event_store import EventStore
from storage.turn_store import TurnStore
from tools.edit_tools import tool_for
from tools.file_ops import FileSystem, LocalFileSystem

logger = structlog.get_logger(__name__)


class ChatSession:
    """Session orchestrator.

    Args:
        settings: Database location and write behaviour.
        fs: Filesystem capability (defaults to the local disk).
        generation: Optional control for the in-flight model response.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        fs: Optional[FileSystem] = None,
        generation: Optional[GenerationControl] = None,
    ) -> None:
        self.settings = settings
        self.fs: FileSystem = fs or LocalFileSystem()
        self.bus = EventBus()
        self.turns = TurnStore(settings.db_path)
        self.events: Optional[EventStore] = EventStore(settings.db_path) if settings.journal else None
        self.ledger = FileEditLedger(
            self.fs, self.bus, skip_unchanged_writes=settings.skip_unchanged_writes
        )
        self.checkpoints = CheckpointEngine(
            self.turns,
            self.fs,
            self.ledger,
            bus=self.bus,
            generation=generation,
            skip_unchanged_writes=settings.skip_unchanged_writes,
        )
        self._lock = asyncio.Lock()
        if self.events is not None:
            self._resume(self.events)
            self.bus.subscribe(self.events.append)

    def _resume(self, events: EventStore) -> None:
        state = SessionState()
        last = replay(state, events)
        if last == 0:
            return
        self.ledger.restore(state.entries)
        self.checkpoints.cursor.pending_message_id = state.pending_message_id
        self.checkpoints.cursor.saved_context = state.saved_context
        self.checkpoints.context = state.context
        logger.debug(
            "session_resumed",
            entries=len(state.entries),
            pending=state.pending_message_id,
            last_event=last,
        )

    @property
    def context(self) -> ChatContext:
        return self.checkpoints.context

    @context.setter
    def context(self, value: ChatContext) -> None:
        self.checkpoints.context = value

    def diff_viewer(self) -> DiffViewer:
        """Return a comparison view kept in sync with the working set."""
        viewer = DiffViewer(self.ledger.snapshot())
        self.bus.subscribe(viewer.on_ledger_changed, ev.LedgerChanged)
        return viewer

    # -----------------------------
    # Conversation
    # -----------------------------

    async def add_turn(
        self, role: Role | str, content: str = "", references: Iterable[str] = ()
    ) -> ConversationTurn:
        """Append a turn. A new user turn first commits any active checkpoint."""
        async with self._lock:
            if Role(role) == Role.USER:
                await asyncio.to_thread(self.checkpoints.discard_checkpoint)
            return self.turns.append(role, content, list(references))

    async def apply_edit(
        self, turn_id: str, kind: ToolKind | str, path: Path | str, content: str
    ) -> FileEdit:
        """Run an agent edit tool, record it and attach it to ``turn_id``.

        Raises:
            KeyError: unknown turn.
            AlreadyExistsError: create target already exists (nothing recorded).
        """
        async with self._lock:
            return await asyncio.to_thread(
                self._apply_edit, turn_id, ToolKind(kind), normalize_path(path), content
            )

    def _apply_edit(self, turn_id: str, kind: ToolKind, path: Path, content: str) -> FileEdit:
        if self.turns.get(turn_id) is None:
            raise KeyError(turn_id)
        tool = tool_for(kind, skip_unchanged=self.settings.skip_unchanged_writes)
        edit = tool.apply(self.fs, path, content)
        self.ledger.record(edit)
        self.turns.attach_file_edit(turn_id, edit)
        logger.info("edit_applied", turn_id=turn_id, path=str(path), kind=kind.value)
        return edit

    # -----------------------------
    # Working set
    # -----------------------------

    async def keep(self, paths: Iterable[Path | str]) -> List[ev.PassFailure]:
        async with self._lock:
            return self._each(self.ledger.keep, paths)

    async def undo(self, paths: Iterable[Path | str]) -> List[ev.PassFailure]:
        async with self._lock:
            return await asyncio.to_thread(self._each, self.ledger.undo, paths)

    async def discard(self, paths: Iterable[Path | str]) -> List[ev.PassFailure]:
        async with self._lock:
            return await asyncio.to_thread(self._each, self.ledger.discard, paths)

    async def reset(self) -> None:
        async with self._lock:
            self.ledger.reset()

    def _each(self, op: Callable[[Path], None], paths: Iterable[Path | str]) -> List[ev.PassFailure]:
        failures: List[ev.PassFailure] = []
        for p in paths:
            path = normalize_path(p)
            try:
                op(path)
            except EditError as e:
                logger.error("edit_operation_failed", op=op.__name__, path=str(path), error=str(e))
                failures.append(ev.PassFailure(path=path, error=str(e)))
        return failures

    # -----------------------------
    # Checkpoints
    # -----------------------------

    async def restore_checkpoint(self, turn_id: str) -> Optional[ev.CheckpointPassCompleted]:
        async with self._lock:
            return await asyncio.to_thread(self.checkpoints.restore_checkpoint, turn_id)

    async def undo_checkpoint(self) -> Optional[ev.CheckpointPassCompleted]:
        async with self._lock:
            return await asyncio.to_thread(self.checkpoints.undo_checkpoint)

    async def discard_checkpoint(self) -> List[str]:
        async with self._lock:
            return await asyncio.to_thread(self.checkpoints.discard_checkpoint)

    def close(self) -> None:
        self.turns.close()
        if self.events is not None:
            self.events.close()


__all__ = ["ChatSession"]

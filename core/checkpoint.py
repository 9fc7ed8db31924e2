"""Conversation checkpoints: jump back in history and undo the jump.

A checkpoint restore hides every turn after the chosen one and reverts the
file edits those turns made. Undoing the restore re-applies them; discarding
it commits to the jump and deletes the hidden turns.

Ordering rules for a pass over the hidden turns:

- revert walks oldest to newest and only the first edit seen per path is
  reverted, so each file ends at the content it had before the earliest
  hidden turn touched it;
- redo walks newest to oldest, again first seen per path, so each file ends
  at the content produced by the latest hidden turn.

Passes are best-effort: a failing file is logged and reported, the remaining
files are still processed.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Set

import structlog

from core.bus import EventBus
from core.errors import EditError
from core.ledger import FileEditLedger
from schemas import events as ev
from schemas.file_edit import ChatContext, ConversationTurn, FileEdit, Role, ToolKind
from tools.edit_tools import tool_for
from tools.file_ops import FileSystem

logger = structlog.get_logger(__name__)

REDO_KINDS = frozenset({ToolKind.CREATE_FILE, ToolKind.INSERT_OR_REPLACE})


class ConversationStore(Protocol):
    def get(self, turn_id: str) -> Optional[ConversationTurn]:  # pragma: no cover
        ...

    def list_turns(self) -> List[ConversationTurn]:  # pragma: no cover
        ...

    def turns_after(self, turn_id: str) -> List[ConversationTurn]:  # pragma: no cover
        ...

    def delete_turns(self, ids: Iterable[str]) -> int:  # pragma: no cover
        ...

    def file_edits_of(self, turn: ConversationTurn) -> List[FileEdit]:  # pragma: no cover
        ...


class GenerationControl(Protocol):
    def is_active(self) -> bool:  # pragma: no cover - Protocol definition only
        ...

    def cancel_active_generation(self) -> None:  # pragma: no cover
        ...


@dataclass
class CheckpointCursor:
    """Turn treated as the end of history while a restore is active."""

    pending_message_id: Optional[str] = None
    saved_context: Optional[ChatContext] = None

    def clear(self) -> None:
        self.pending_message_id = None
        self.saved_context = None


class CheckpointEngine:
    """Idle/Restored state machine over a conversation store.

    Args:
        store: Conversation history with per-turn file edit snapshots.
        fs: Filesystem the passes write to.
        ledger: Working set rebuilt after each transition.
        bus: Optional event bus for state and pass notifications.
        generation: Optional control used to stop a running response.
        skip_unchanged_writes: Skip writes when content already matches.
    """

    def __init__(
        self,
        store: ConversationStore,
        fs: FileSystem,
        ledger: FileEditLedger,
        *,
        bus: Optional[EventBus] = None,
        generation: Optional[GenerationControl] = None,
        skip_unchanged_writes: bool = True,
    ) -> None:
        self._store = store
        self._fs = fs
        self._ledger = ledger
        self._bus = bus
        self._generation = generation
        self._skip_unchanged = skip_unchanged_writes
        self.cursor = CheckpointCursor()
        # Draft input of the chat; snapshotted on the first restore
        self.context = ChatContext()

    # -----------------------------
    # Queries
    # -----------------------------

    @property
    def is_restored(self) -> bool:
        return self.cursor.pending_message_id is not None

    def messages_after_checkpoint(self) -> List[ConversationTurn]:
        if self.cursor.pending_message_id is None:
            return []
        return self._store.turns_after(self.cursor.pending_message_id)

    def visible_turns(self) -> List[ConversationTurn]:
        """History up to and including the pending turn (all turns when idle)."""
        turns = self._store.list_turns()
        pending = self.cursor.pending_message_id
        for i, turn in enumerate(turns):
            if turn.id == pending:
                return turns[: i + 1]
        return turns

    def has_subsequent_file_edits(self, turn_id: str) -> bool:
        """True if a visible turn after ``turn_id`` carries file edits.

        Restoring to such a turn would rewrite files, so callers ask for
        confirmation first.
        """
        turns = self.visible_turns()
        ids = [t.id for t in turns]
        if turn_id not in ids:
            return False
        return any(t.file_edits for t in turns[ids.index(turn_id) + 1 :])

    # -----------------------------
    # Transitions
    # -----------------------------

    def restore_checkpoint(self, turn_id: str) -> Optional[ev.CheckpointPassCompleted]:
        """Treat ``turn_id`` as the end of history and revert later file edits.

        Returns:
            The revert pass report, or None when the target is unknown or hidden.
        """
        turns = self._store.list_turns()
        ids = [t.id for t in turns]
        if turn_id not in ids:
            logger.warning("checkpoint_unknown_turn", turn_id=turn_id)
            return None
        index = ids.index(turn_id)
        pending = self.cursor.pending_message_id
        if pending is not None and pending in ids and index > ids.index(pending):
            logger.warning("checkpoint_target_hidden", turn_id=turn_id, pending=pending)
            return None

        if pending is None:
            self.cursor.saved_context = self.context.model_copy(deep=True)
        self.cursor.pending_message_id = turn_id

        after = turns[index + 1 :]
        if after and after[0].role == Role.USER:
            # Put the hidden user message back into the input for editing
            self.context = ChatContext(text=after[0].content, references=list(after[0].references))

        report = self._revert(after, target_id=turn_id)
        self._ledger.load(self._store.file_edits_of(turns[index]))

        if self._generation is not None and self._generation.is_active():
            logger.info("generation_cancelled_for_checkpoint", turn_id=turn_id)
            self._generation.cancel_active_generation()

        self._publish_state()
        self._publish(report)
        return report

    def undo_checkpoint(self) -> Optional[ev.CheckpointPassCompleted]:
        """Re-apply the hidden turns' edits and leave the restored state.

        Returns:
            The redo pass report, or None when no checkpoint is active.
        """
        if self.cursor.pending_message_id is None:
            return None
        target = self.cursor.pending_message_id
        if self.cursor.saved_context is not None:
            self.context = self.cursor.saved_context
        after = self.messages_after_checkpoint()
        self.cursor.clear()

        report = self._redo(list(reversed(after)), target_id=target)
        if after:
            self._ledger.load(self._store.file_edits_of(after[-1]))

        self._publish_state()
        self._publish(report)
        return report

    def discard_checkpoint(self) -> List[str]:
        """Commit to the restore: forget the cursor and delete hidden turns.

        Files are not touched. Returns the ids of the deleted turns.
        """
        if self.cursor.pending_message_id is None:
            return []
        after = self.messages_after_checkpoint()
        self.cursor.clear()
        ids = [t.id for t in after]
        if ids:
            self._store.delete_turns(ids)
            logger.info("checkpoint_turns_deleted", count=len(ids))
            self._publish(ev.TurnsDeleted(turn_ids=ids))
        self._publish_state()
        return ids

    # -----------------------------
    # Passes
    # -----------------------------

    def _revert(
        self, turns: Sequence[ConversationTurn], *, target_id: str
    ) -> ev.CheckpointPassCompleted:
        report = ev.CheckpointPassCompleted(direction="revert", target_id=target_id)
        seen: Set[Path] = set()
        for turn in turns:
            for edit in self._store.file_edits_of(turn):
                if edit.path in seen:
                    continue
                seen.add(edit.path)
                tool = tool_for(edit.tool_kind, skip_unchanged=self._skip_unchanged)
                self._run(report, edit, lambda: tool.revert(self._fs, edit))
        return report

    def _redo(
        self, turns: Sequence[ConversationTurn], *, target_id: str
    ) -> ev.CheckpointPassCompleted:
        report = ev.CheckpointPassCompleted(direction="redo", target_id=target_id)
        seen: Set[Path] = set()
        for turn in turns:
            for edit in self._store.file_edits_of(turn):
                if edit.path in seen:
                    continue
                seen.add(edit.path)
                if edit.tool_kind not in REDO_KINDS:
                    report.skipped.append(edit.path)
                    continue
                tool = tool_for(edit.tool_kind, skip_unchanged=self._skip_unchanged)
                self._run(report, edit, lambda: tool.reapply(self._fs, edit))
        return report

    def _run(self, report: ev.CheckpointPassCompleted, edit: FileEdit, op) -> None:
        try:
            touched = op()
        except (EditError, OSError) as e:
            logger.error(
                "checkpoint_file_failed",
                direction=report.direction,
                path=str(edit.path),
                error=str(e),
            )
            report.failures.append(ev.PassFailure(path=edit.path, error=str(e)))
            return
        (report.processed if touched else report.skipped).append(edit.path)

    def _publish_state(self) -> None:
        self._publish(
            ev.CheckpointStateChanged(
                pending_message_id=self.cursor.pending_message_id,
                saved_context=self.cursor.saved_context,
                context=self.context.model_copy(deep=True),
            )
        )

    def _publish(self, event) -> None:
        if self._bus is not None:
            self._bus.publish(event)


__all__ = [
    "CheckpointCursor",
    "CheckpointEngine",
    "ConversationStore",
    "GenerationControl",
]

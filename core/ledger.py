"""Working-set ledger of agent file edits.

The ledger is the single source of truth for what the agent changed in the
current session and whether each change is pending, kept or undone. Entries
are keyed by file path and keep insertion order.

Calls are expected to be issued defensively: operations on missing entries or
entries in the wrong status are silent no-ops. Filesystem errors from a single
file undo propagate to the caller.
"""

from __future__ import annotations

from collections import OrderedDict
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple

import structlog

from core.bus import EventBus
from schemas import events as ev
from schemas.file_edit import EditStatus, FileEdit, normalize_path
from tools.edit_tools import NoopTool, tool_for
from tools.file_ops import FileSystem

logger = structlog.get_logger(__name__)


class FileEditLedger:
    """Ordered mapping ``path -> FileEdit`` with accept/undo state.

    Args:
        fs: Filesystem used for reversals.
        bus: Optional event bus; receives ``LedgerChanged`` after each change.
        skip_unchanged_writes: Skip reversal writes when content already matches.
    """

    def __init__(
        self,
        fs: FileSystem,
        bus: Optional[EventBus] = None,
        *,
        skip_unchanged_writes: bool = True,
    ) -> None:
        self._fs = fs
        self._bus = bus
        self._skip_unchanged = skip_unchanged_writes
        self._edits: "OrderedDict[Path, FileEdit]" = OrderedDict()

    # -----------------------------
    # Read access
    # -----------------------------

    def get(self, path: Path | str) -> Optional[FileEdit]:
        return self._edits.get(normalize_path(path))

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return normalize_path(path) in self._edits

    def __len__(self) -> int:
        return len(self._edits)

    def __iter__(self) -> Iterator[FileEdit]:
        return iter(list(self._edits.values()))

    def snapshot(self) -> Tuple[FileEdit, ...]:
        """Return copies of all entries in insertion order."""
        return tuple(e.model_copy() for e in self._edits.values())

    def pending(self) -> list[FileEdit]:
        return [e for e in self._edits.values() if e.status == EditStatus.PENDING]

    # -----------------------------
    # Mutations
    # -----------------------------

    def record(self, edit: FileEdit) -> None:
        """Insert ``edit`` or merge it into the existing entry for its path."""
        existing = self._edits.get(edit.path)
        if existing is None:
            self._edits[edit.path] = edit.model_copy()
        else:
            self._edits[edit.path] = existing.merged_with(edit)
        self._changed()

    def undo(self, path: Path | str) -> None:
        """Revert a pending edit on disk and mark it undone."""
        edit = self.get(path)
        if edit is None or edit.status != EditStatus.PENDING:
            return
        tool = tool_for(edit.tool_kind, skip_unchanged=self._skip_unchanged)
        if isinstance(tool, NoopTool):
            # Nothing to reverse: the entry stays pending
            return
        # Raises on filesystem failure; the entry stays pending.
        tool.revert(self._fs, edit)
        self._edits[edit.path] = edit.model_copy(update={"status": EditStatus.UNDONE})
        logger.info("edit_undone", path=str(edit.path), kind=edit.tool_kind.value)
        self._changed()

    def keep(self, path: Path | str) -> None:
        edit = self.get(path)
        if edit is None or edit.status != EditStatus.PENDING:
            return
        self._edits[edit.path] = edit.model_copy(update={"status": EditStatus.KEPT})
        self._changed()

    def discard(self, path: Path | str) -> None:
        """Undo the edit, then drop its entry even if the undo failed."""
        key = normalize_path(path)
        try:
            self.undo(key)
        finally:
            if self._edits.pop(key, None) is not None:
                self._changed()

    def reset(self) -> None:
        """Forget all entries without touching the filesystem."""
        if not self._edits:
            return
        self._edits.clear()
        self._changed()

    def load(self, edits: Iterable[FileEdit]) -> None:
        """Replace the working set with ``edits`` (reset, then record each)."""
        self._edits.clear()
        for edit in edits:
            existing = self._edits.get(edit.path)
            self._edits[edit.path] = (
                existing.merged_with(edit) if existing is not None else edit.model_copy()
            )
        self._changed()

    def restore(self, edits: Iterable[FileEdit]) -> None:
        """Adopt a stored snapshot verbatim, statuses included. No notification."""
        self._edits = OrderedDict((e.path, e.model_copy()) for e in edits)

    def _changed(self) -> None:
        if self._bus is not None:
            self._bus.publish(ev.LedgerChanged(entries=list(self.snapshot())))


__all__ = ["FileEditLedger"]

"""Diff view reconciliation.

Keeps an open comparison view consistent with the working set. The decision
is a pure function of the previous ledger snapshot, the new snapshot and the
file currently displayed; ``DiffViewer`` is the stateful observer that feeds
it from ``LedgerChanged`` events.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from schemas.events import LedgerChanged
from schemas.file_edit import EditStatus, FileEdit, ToolKind, normalize_path


@dataclass(frozen=True)
class NoOp:
    pass


@dataclass(frozen=True)
class Refresh:
    edit: FileEdit


@dataclass(frozen=True)
class Close:
    pass


DiffAction = Union[NoOp, Refresh, Close]


def _by_path(entries: Iterable[FileEdit]) -> Dict[Path, FileEdit]:
    return {e.path: e for e in entries}


def reconcile(
    previous: Iterable[FileEdit],
    current: Iterable[FileEdit],
    displayed: Optional[Path],
) -> DiffAction:
    """Decide what the comparison view must do after a ledger change.

    - empty working set: close;
    - nothing displayed: nothing to do;
    - displayed file gone from the working set: close;
    - displayed entry unchanged: nothing to do;
    - displayed entry undone and it was a file creation: close;
    - otherwise refresh with the new entry.
    """
    now = _by_path(current)
    if not now:
        return Close()
    if displayed is None:
        return NoOp()
    key = normalize_path(displayed)
    updated = now.get(key)
    if updated is None:
        return Close()
    if _by_path(previous).get(key) == updated:
        return NoOp()
    if updated.status == EditStatus.UNDONE and updated.tool_kind == ToolKind.CREATE_FILE:
        return Close()
    return Refresh(updated)


class DiffViewer:
    """Observer holding the displayed edit; subscribe ``on_ledger_changed``."""

    def __init__(self, entries: Iterable[FileEdit] = ()) -> None:
        self.shown: Optional[FileEdit] = None
        self._last: tuple[FileEdit, ...] = tuple(entries)

    @property
    def is_shown(self) -> bool:
        return self.shown is not None

    def open(self, path: Path | str) -> bool:
        edit = _by_path(self._last).get(normalize_path(path))
        if edit is None:
            return False
        self.shown = edit
        return True

    def close(self) -> None:
        self.shown = None

    def on_ledger_changed(self, event: LedgerChanged) -> DiffAction:
        previous, self._last = self._last, tuple(event.entries)
        if self.shown is None:
            return NoOp()
        action = reconcile(previous, self._last, self.shown.path)
        if isinstance(action, Close):
            self.close()
        elif isinstance(action, Refresh):
            self.shown = action.edit
        return action

from __future__ import annotations

from pathlib import Path

import pytest

from core.bus import EventBus
from core.errors import FileIOError
from core.ledger import FileEditLedger
from schemas import events as ev
from schemas.file_edit import EditStatus, FileEdit, ToolKind
from tools.file_ops import LocalFileSystem


def _edit(path: Path, original: str, modified: str, kind: ToolKind) -> FileEdit:
    return FileEdit(path=path, original_content=original, modified_content=modified, tool_kind=kind)


def test_record_merge_keeps_first_original(workspace: Path) -> None:
    ledger = FileEditLedger(LocalFileSystem())
    path = workspace / "m.txt"
    ledger.record(_edit(path, "v0", "v1", ToolKind.INSERT_OR_REPLACE))
    ledger.record(_edit(path, "v1", "v2", ToolKind.INSERT_OR_REPLACE))
    ledger.record(_edit(path, "v2", "v3", ToolKind.INSERT_OR_REPLACE))

    entry = ledger.get(path)
    assert len(ledger) == 1
    assert entry.original_content == "v0"
    assert entry.modified_content == "v3"


def test_record_merge_keeps_first_tool_kind(workspace: Path) -> None:
    ledger = FileEditLedger(LocalFileSystem())
    path = workspace / "fresh.txt"
    path.write_text("later")
    ledger.record(_edit(path, "", "first", ToolKind.CREATE_FILE))
    ledger.record(_edit(path, "first", "later", ToolKind.INSERT_OR_REPLACE))

    assert ledger.get(path).tool_kind is ToolKind.CREATE_FILE
    # Undo removes the freshly created file instead of writing back ""
    ledger.undo(path)
    assert not path.exists()


def test_record_preserves_insertion_order(workspace: Path) -> None:
    ledger = FileEditLedger(LocalFileSystem())
    names = ["c.txt", "a.txt", "b.txt"]
    for n in names:
        ledger.record(_edit(workspace / n, "", n, ToolKind.OTHER))
    ledger.record(_edit(workspace / "c.txt", "", "again", ToolKind.OTHER))
    assert [e.path.name for e in ledger] == names


def test_keep_then_undo_is_noop(workspace: Path) -> None:
    ledger = FileEditLedger(LocalFileSystem())
    path = workspace / "a.txt"
    path.write_text("hello")
    ledger.record(_edit(path, "", "hello", ToolKind.CREATE_FILE))
    assert ledger.get(path).status is EditStatus.PENDING

    ledger.keep(path)
    assert ledger.get(path).status is EditStatus.KEPT
    ledger.undo(path)
    assert ledger.get(path).status is EditStatus.KEPT
    assert path.read_text() == "hello"


def test_undo_restores_original_and_is_idempotent(make_tree) -> None:
    ws = make_tree({"b.txt": "bar"})
    ledger = FileEditLedger(LocalFileSystem())
    ledger.record(_edit(ws / "b.txt", "foo", "bar", ToolKind.INSERT_OR_REPLACE))

    ledger.undo(ws / "b.txt")
    assert (ws / "b.txt").read_text() == "foo"
    assert ledger.get(ws / "b.txt").status is EditStatus.UNDONE

    (ws / "b.txt").write_text("user typed this")
    ledger.undo(ws / "b.txt")
    assert (ws / "b.txt").read_text() == "user typed this"
    assert ledger.get(ws / "b.txt").status is EditStatus.UNDONE


def test_undo_unknown_path_is_silent(workspace: Path) -> None:
    ledger = FileEditLedger(LocalFileSystem())
    ledger.undo(workspace / "nope.txt")
    ledger.keep(workspace / "nope.txt")
    assert len(ledger) == 0


def test_failed_undo_stays_pending(make_tree, flaky_fs) -> None:
    ws = make_tree({"b.txt": "bar"})
    ledger = FileEditLedger(flaky_fs)
    ledger.record(_edit(ws / "b.txt", "foo", "bar", ToolKind.INSERT_OR_REPLACE))
    flaky_fs.fail_paths.add(ws / "b.txt")

    with pytest.raises(FileIOError):
        ledger.undo(ws / "b.txt")
    assert ledger.get(ws / "b.txt").status is EditStatus.PENDING
    assert (ws / "b.txt").read_text() == "bar"

    flaky_fs.fail_paths.clear()
    ledger.undo(ws / "b.txt")
    assert (ws / "b.txt").read_text() == "foo"


def test_discard_removes_entry_even_when_undo_fails(make_tree, flaky_fs) -> None:
    ws = make_tree({"b.txt": "bar"})
    ledger = FileEditLedger(flaky_fs)
    ledger.record(_edit(ws / "b.txt", "foo", "bar", ToolKind.INSERT_OR_REPLACE))
    flaky_fs.fail_paths.add(ws / "b.txt")

    with pytest.raises(FileIOError):
        ledger.discard(ws / "b.txt")
    assert ws / "b.txt" not in ledger


def test_undo_other_kind_stays_pending(make_tree) -> None:
    ws = make_tree({"o.txt": "agent"})
    bus = EventBus()
    seen: list = []
    ledger = FileEditLedger(LocalFileSystem(), bus)
    ledger.record(_edit(ws / "o.txt", "before", "agent", ToolKind.OTHER))
    bus.subscribe(seen.append, ev.LedgerChanged)

    ledger.undo(ws / "o.txt")
    assert ledger.get(ws / "o.txt").status is EditStatus.PENDING
    assert (ws / "o.txt").read_text() == "agent"
    assert seen == []


def test_discard_other_kind_leaves_filesystem(make_tree) -> None:
    ws = make_tree({"o.txt": "agent wrote"})
    ledger = FileEditLedger(LocalFileSystem())
    ledger.record(_edit(ws / "o.txt", "before", "agent wrote", ToolKind.OTHER))

    ledger.discard(ws / "o.txt")
    assert ws / "o.txt" not in ledger
    assert (ws / "o.txt").read_text() == "agent wrote"


def test_discard_reverts_pending_edit(make_tree) -> None:
    ws = make_tree({"b.txt": "bar"})
    ledger = FileEditLedger(LocalFileSystem())
    ledger.record(_edit(ws / "b.txt", "foo", "bar", ToolKind.INSERT_OR_REPLACE))
    ledger.discard(ws / "b.txt")
    assert (ws / "b.txt").read_text() == "foo"
    assert len(ledger) == 0


def test_reset_has_no_filesystem_effect(make_tree) -> None:
    ws = make_tree({"a.txt": "new"})
    ledger = FileEditLedger(LocalFileSystem())
    ledger.record(_edit(ws / "a.txt", "", "new", ToolKind.CREATE_FILE))
    ledger.reset()
    assert len(ledger) == 0
    assert (ws / "a.txt").read_text() == "new"


def test_changes_are_published(workspace: Path) -> None:
    bus = EventBus()
    seen: list[ev.LedgerChanged] = []
    bus.subscribe(seen.append, ev.LedgerChanged)
    ledger = FileEditLedger(LocalFileSystem(), bus)

    path = workspace / "x.txt"
    ledger.record(_edit(path, "", "x", ToolKind.OTHER))
    ledger.keep(path)
    ledger.keep(path)  # no change, no event
    ledger.reset()

    assert [len(e.entries) for e in seen] == [1, 1, 0]
    assert seen[1].entries[0].status is EditStatus.KEPT


def test_load_replaces_working_set(workspace: Path) -> None:
    ledger = FileEditLedger(LocalFileSystem())
    ledger.record(_edit(workspace / "old.txt", "", "o", ToolKind.OTHER))
    ledger.load([_edit(workspace / "new.txt", "a", "b", ToolKind.INSERT_OR_REPLACE)])
    assert [e.path.name for e in ledger] == ["new.txt"]

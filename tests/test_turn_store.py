from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from schemas.file_edit import FileEdit, Role, ToolKind
from storage.turn_store import TurnStore


def _db_path(tmp_path: Path) -> Path:
    return tmp_path / "turns.db"


def test_append_orders_turns(tmp_path: Path) -> None:
    store = TurnStore(_db_path(tmp_path))
    try:
        t1 = store.append(Role.USER, "hi", ["a.py"])
        t2 = store.append("assistant", "hello")
        t3 = store.append(Role.USER, "more", turn_id="fixed-id")

        turns = store.list_turns()
        assert [t.id for t in turns] == [t1.id, t2.id, "fixed-id"]
        assert t1.seq < t2.seq < t3.seq
        assert turns[0].references == ["a.py"]
        assert turns[1].role is Role.ASSISTANT
        assert [t.id for t in store.turns_after(t1.id)] == [t2.id, "fixed-id"]
        assert store.turns_after("fixed-id") == []
        assert store.turns_after("unknown") == []
    finally:
        store.close()


def test_attach_file_edit_merges_per_path(tmp_path: Path) -> None:
    store = TurnStore(_db_path(tmp_path))
    try:
        t = store.append(Role.ASSISTANT)
        a = tmp_path / "a.txt"
        store.attach_file_edit(
            t.id,
            FileEdit(path=a, original_content="0", modified_content="1", tool_kind=ToolKind.INSERT_OR_REPLACE),
        )
        store.attach_file_edit(
            t.id,
            FileEdit(path=a, original_content="1", modified_content="2", tool_kind=ToolKind.INSERT_OR_REPLACE),
        )
        store.attach_file_edit(
            t.id, FileEdit(path=tmp_path / "b.txt", modified_content="b", tool_kind=ToolKind.CREATE_FILE)
        )

        edits = store.file_edits_of(t.id)
        assert [e.path.name for e in edits] == ["a.txt", "b.txt"]
        assert edits[0].original_content == "0"
        assert edits[0].modified_content == "2"
        assert store.verify() == []
    finally:
        store.close()


def test_attach_to_unknown_turn_raises(tmp_path: Path) -> None:
    store = TurnStore(_db_path(tmp_path))
    try:
        with pytest.raises(KeyError):
            store.attach_file_edit(
                "nope", FileEdit(path=tmp_path / "x", modified_content="", tool_kind=ToolKind.OTHER)
            )
    finally:
        store.close()


def test_delete_turns_keeps_order_of_rest(tmp_path: Path) -> None:
    store = TurnStore(_db_path(tmp_path))
    try:
        ids = [store.append(Role.USER, str(i)).id for i in range(4)]
        assert store.delete_turns(ids[1:3]) == 2
        assert store.delete_turns([]) == 0
        assert [t.id for t in store.list_turns()] == [ids[0], ids[3]]
        # Seq numbers are not reused
        assert store.append(Role.USER, "new").seq > store.get(ids[3]).seq
    finally:
        store.close()


def test_snapshots_survive_reopen(tmp_path: Path) -> None:
    store = TurnStore(_db_path(tmp_path))
    t = store.append(Role.ASSISTANT)
    edit = FileEdit(path=tmp_path / "c.txt", original_content="x", modified_content="y", tool_kind=ToolKind.INSERT_OR_REPLACE)
    store.attach_file_edit(t.id, edit)
    store.close()

    again = TurnStore(_db_path(tmp_path))
    try:
        (stored,) = again.file_edits_of(again.get(t.id))
        assert stored == edit
    finally:
        again.close()


def test_verify_reports_tampered_turns(tmp_path: Path) -> None:
    store = TurnStore(_db_path(tmp_path))
    try:
        t1 = store.append(Role.ASSISTANT)
        t2 = store.append(Role.ASSISTANT)
        for t in (t1, t2):
            store.attach_file_edit(
                t.id, FileEdit(path=tmp_path / "a.txt", modified_content="a", tool_kind=ToolKind.CREATE_FILE)
            )
    finally:
        store.close()

    conn = sqlite3.connect(str(_db_path(tmp_path)))
    conn.execute("UPDATE turns SET file_edits = ? WHERE id = ?", (b"[]", t2.id))
    conn.commit()
    conn.close()

    again = TurnStore(_db_path(tmp_path))
    try:
        assert again.verify() == [t2.id]
    finally:
        again.close()

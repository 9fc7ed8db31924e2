"""SQLite-backed conversation turn store.

Stores the ordered conversation history together with the file edit
snapshots attached to each turn. Snapshots are serialized as JSON with a
checksum and are read back verbatim.
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from schemas.file_edit import ConversationTurn, FileEdit, Role
from storage.event_store import compute_checksum_bytes, connect

SCHEMA_VERSION = 1


class TurnStore:
    """Append-ordered conversation history.

    Turns are ordered by ``seq``, a monotonically increasing integer assigned
    on append. Deleting turns never renumbers the remaining ones.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: Path) -> None:
        self._conn = connect(Path(db_path))
        self._conn.execute(
            (
                "CREATE TABLE IF NOT EXISTS turns (\n"
                "  seq INTEGER PRIMARY KEY AUTOINCREMENT,\n"
                "  id TEXT NOT NULL UNIQUE,\n"
                "  role TEXT NOT NULL,\n"
                "  content TEXT NOT NULL,\n"
                "  refs BLOB NOT NULL,\n"
                "  file_edits BLOB NOT NULL,\n"
                "  checksum TEXT NOT NULL,\n"
                "  schema_ver INTEGER NOT NULL\n"
                ")"
            )
        )
        self._conn.commit()

    @staticmethod
    def _edits_bytes(edits: Sequence[FileEdit]) -> bytes:
        payload = [e.model_dump(mode="json") for e in edits]
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def _row_to_turn(self, r: tuple) -> ConversationTurn:
        return ConversationTurn(
            seq=int(r[0]),
            id=str(r[1]),
            role=Role(r[2]),
            content=str(r[3]),
            references=json.loads(r[4]),
            file_edits=[FileEdit.model_validate(e) for e in json.loads(r[5])],
        )

    def append(
        self,
        role: Role | str,
        content: str = "",
        references: Iterable[str] = (),
        *,
        turn_id: Optional[str] = None,
    ) -> ConversationTurn:
        """Append a turn and return it with its assigned ``seq``."""
        tid = turn_id or uuid.uuid4().hex
        refs = json.dumps(list(references)).encode("utf-8")
        edits = self._edits_bytes([])
        self._conn.execute(
            "INSERT INTO turns (id, role, content, refs, file_edits, checksum, schema_ver)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                tid,
                Role(role).value,
                content,
                refs,
                edits,
                compute_checksum_bytes(tid, edits),
                SCHEMA_VERSION,
            ),
        )
        self._conn.commit()
        return self.get(tid)  # type: ignore[return-value]

    def attach_file_edit(self, turn_id: str, edit: FileEdit) -> ConversationTurn:
        """Attach ``edit`` to a turn, merging with an earlier edit of the same file.

        Raises:
            KeyError: if the turn does not exist.
        """
        turn = self.get(turn_id)
        if turn is None:
            raise KeyError(turn_id)
        edits = list(turn.file_edits)
        for i, existing in enumerate(edits):
            if existing.path == edit.path:
                edits[i] = existing.merged_with(edit)
                break
        else:
            edits.append(edit.model_copy())
        data = self._edits_bytes(edits)
        self._conn.execute(
            "UPDATE turns SET file_edits = ?, checksum = ? WHERE id = ?",
            (data, compute_checksum_bytes(turn_id, data), turn_id),
        )
        self._conn.commit()
        return turn.model_copy(update={"file_edits": edits})

    def get(self, turn_id: str) -> Optional[ConversationTurn]:
        cur = self._conn.execute(
            "SELECT seq, id, role, content, refs, file_edits FROM turns WHERE id = ?",
            (turn_id,),
        )
        row = cur.fetchone()
        return self._row_to_turn(row) if row is not None else None

    def list_turns(self) -> List[ConversationTurn]:
        cur = self._conn.execute(
            "SELECT seq, id, role, content, refs, file_edits FROM turns ORDER BY seq ASC"
        )
        return [self._row_to_turn(r) for r in cur.fetchall()]

    def turns_after(self, turn_id: str) -> List[ConversationTurn]:
        """Turns strictly after ``turn_id`` in arrival order ([] if unknown)."""
        anchor = self.get(turn_id)
        if anchor is None:
            return []
        cur = self._conn.execute(
            "SELECT seq, id, role, content, refs, file_edits FROM turns WHERE seq > ? ORDER BY seq ASC",
            (anchor.seq,),
        )
        return [self._row_to_turn(r) for r in cur.fetchall()]

    def delete_turns(self, ids: Iterable[str]) -> int:
        """Permanently delete turns; returns the number of rows removed."""
        ids = list(ids)
        if not ids:
            return 0
        marks = ",".join("?" for _ in ids)
        cur = self._conn.execute(f"DELETE FROM turns WHERE id IN ({marks})", ids)
        self._conn.commit()
        return int(cur.rowcount)

    def file_edits_of(self, turn: ConversationTurn | str) -> List[FileEdit]:
        if isinstance(turn, ConversationTurn):
            return list(turn.file_edits)
        found = self.get(turn)
        return list(found.file_edits) if found is not None else []

    def verify(self) -> List[str]:
        """Return ids of turns whose stored checksum does not match their edits."""
        cur = self._conn.execute("SELECT id, file_edits, checksum FROM turns ORDER BY seq ASC")
        return [
            str(tid)
            for tid, data, checksum in cur.fetchall()
            if compute_checksum_bytes(str(tid), bytes(data)) != checksum
        ]

    def close(self) -> None:
        self._conn.close()


__all__ = ["TurnStore"]

"""SQLite-backed append-only session journal.

Provides durable, append-only persistence for session events with integrity
checks. The journal shares the session database with the turn store.
"""

from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping

from blake3 import blake3

SCHEMA_VERSION = 1


def _hash_bytes(data: bytes) -> str:
    return blake3(data).hexdigest()


def connect(db_path: Path) -> sqlite3.Connection:
    """Open ``db_path`` in WAL mode, creating parent directories as needed."""
    db_path = Path(db_path)
    if str(db_path) != ":memory:" and not db_path.parent.exists():
        db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


@dataclass(frozen=True)
class EventRecord:
    """Stored event row."""

    id: int
    ts: int
    type: str
    data: Mapping[str, Any]
    checksum: str
    schema_ver: int


class EventStore:
    """SQLite append-only store.

    Creates the `events` table if it does not exist. Uses WAL for durability.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._conn = connect(self._db_path)
        self._conn.execute(
            (
                "CREATE TABLE IF NOT EXISTS events (\n"
                "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
                "  ts INTEGER NOT NULL,\n"
                "  type TEXT NOT NULL,\n"
                "  data BLOB NOT NULL,\n"
                "  checksum TEXT NOT NULL,\n"
                "  schema_ver INTEGER NOT NULL\n"
                ")"
            )
        )
        self._conn.commit()

    def _event_to_type_and_bytes(self, event: Any) -> tuple[str, bytes]:
        if hasattr(event, "model_dump") and callable(getattr(event, "model_dump")):
            payload = event.model_dump(mode="json")
            event_type = event.__class__.__name__
        elif isinstance(event, Mapping) and "type" in event and "data" in event:
            event_type = str(event["type"])
            payload = event["data"]
        else:
            raise TypeError(f"cannot journal event of type {type(event).__name__}")
        data_bytes = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return event_type, data_bytes

    def append(self, event: Any) -> int:
        """Append a single event.

        Args:
            event: Pydantic model instance (preferred) or ``{"type", "data"}`` mapping.

        Returns:
            Inserted row id.
        """
        event_type, data_bytes = self._event_to_type_and_bytes(event)
        ts = int(time.time() * 1000)
        checksum = compute_checksum_bytes(event_type, data_bytes)
        cur = self._conn.execute(
            "INSERT INTO events (ts, type, data, checksum, schema_ver) VALUES (?, ?, ?, ?, ?)",
            (ts, event_type, data_bytes, checksum, SCHEMA_VERSION),
        )
        self._conn.commit()
        return int(cur.lastrowid)

    def read_since(self, last_id: int) -> List[EventRecord]:
        """Read events with id greater than the provided value."""
        cur = self._conn.execute(
            "SELECT id, ts, type, data, checksum, schema_ver FROM events WHERE id > ? ORDER BY id ASC",
            (last_id,),
        )
        out: List[EventRecord] = []
        for r in cur.fetchall():
            out.append(
                EventRecord(
                    id=int(r[0]),
                    ts=int(r[1]),
                    type=str(r[2]),
                    data=json.loads(r[3]),
                    checksum=str(r[4]),
                    schema_ver=int(r[5]),
                )
            )
        return out

    def read_all(self) -> List[EventRecord]:
        """Read all events in id order."""
        return self.read_since(0)

    def last_id(self) -> int:
        """Return the last inserted event id, or 0 if empty."""
        cur = self._conn.execute("SELECT COALESCE(MAX(id), 0) FROM events")
        (val,) = cur.fetchone()
        return int(val)

    def verify(self) -> List[int]:
        """Return ids of events whose stored checksum does not match their data."""
        return [r.id for r in self.read_all() if compute_checksum(r.type, dict(r.data)) != r.checksum]

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._conn.close()


def compute_checksum_bytes(event_type: str, data_bytes: bytes) -> str:
    return _hash_bytes(event_type.encode("utf-8") + data_bytes)


def compute_checksum(event_type: str, payload: dict) -> str:
    """Compute checksum for tests and utilities.

    Args:
        event_type: Name of the event type/class.
        payload: JSON-serializable mapping.

    Returns:
        Hex digest string (blake3).
    """
    data_bytes = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return compute_checksum_bytes(event_type, data_bytes)

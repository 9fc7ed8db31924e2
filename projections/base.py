"""Journal replay helper.

Session views (working set, checkpoint cursor) are rebuilt by feeding the
journal's records, in id order, to an object exposing ``apply(record)``.
"""

from __future__ import annotations

from typing import Protocol

from storage.event_store import EventRecord, EventStore


class AppliesEvent(Protocol):
    def apply(self, event: EventRecord) -> None:  # pragma: no cover - Protocol definition only
        ...


def replay(view: AppliesEvent, journal: EventStore, since_id: int = 0, *types: str) -> int:
    """Feed journal records after ``since_id`` into ``view``.

    Args:
        view: Object exposing an ``apply(record)`` method.
        journal: EventStore to read from.
        since_id: Starting id (exclusive); pass the last applied id.
        types: Optional event type names; other records are skipped.

    Returns:
        The last record id read (``since_id`` when nothing was read).
    """
    last = since_id
    for rec in journal.read_since(since_id):
        if not types or rec.type in types:
            view.apply(rec)
        last = rec.id
    return last

"""Session state projection.

Rebuilds the working set, the checkpoint cursor and the draft input from the
journal so a session can be resumed by a later process. The view is
deterministic: it only reflects event data, and later snapshots replace
earlier ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from schemas.file_edit import ChatContext, FileEdit
from storage.event_store import EventRecord


@dataclass
class SessionState:
    """Materialized view of the latest ledger snapshot and cursor."""

    entries: List[FileEdit] = field(default_factory=list)
    pending_message_id: Optional[str] = None
    saved_context: Optional[ChatContext] = None
    context: ChatContext = field(default_factory=ChatContext)

    def apply(self, event: EventRecord) -> None:
        et = event.type
        data = event.data
        if et == "LedgerChanged":
            self.entries = [FileEdit.model_validate(e) for e in data.get("entries") or []]
        elif et == "CheckpointStateChanged":
            self.pending_message_id = data.get("pending_message_id")
            saved = data.get("saved_context")
            self.saved_context = ChatContext.model_validate(saved) if saved is not None else None
            self.context = ChatContext.model_validate(data.get("context") or {})

"""Pydantic event models and JSON helpers.

Defines session event models with a stable ``type`` field and provides
``to_json``/``from_json`` helpers for round-trip serialization. These are the
payloads published on the session event bus and appended to the journal.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from schemas.file_edit import ChatContext, FileEdit


class _JsonMixin(BaseModel):
    """Common JSON helpers for schemas.

    Uses Pydantic v2 ``model_dump_json`` / ``model_validate_json``.
    """

    def to_json(self) -> str:
        """Serialize the model to a JSON string."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str):  # type: ignore[override]
        """Deserialize a JSON string into the model type."""
        return cls.model_validate_json(data)


class LedgerChanged(_JsonMixin):
    """Full snapshot of the working set after a ledger mutation."""

    type: str = "LedgerChanged"
    entries: List[FileEdit] = Field(default_factory=list)


class CheckpointStateChanged(_JsonMixin):
    """Checkpoint cursor plus the draft input as of the transition."""

    type: str = "CheckpointStateChanged"
    pending_message_id: Optional[str] = None
    saved_context: Optional[ChatContext] = None
    context: ChatContext = Field(default_factory=ChatContext)


class PassFailure(_JsonMixin):
    path: Path
    error: str


class CheckpointPassCompleted(_JsonMixin):
    """Diagnostics for one revert or redo pass over the hidden turns."""

    type: str = "CheckpointPassCompleted"
    direction: Literal["revert", "redo"]
    target_id: Optional[str] = None
    processed: List[Path] = Field(default_factory=list)
    skipped: List[Path] = Field(default_factory=list)
    failures: List[PassFailure] = Field(default_factory=list)


class TurnsDeleted(_JsonMixin):
    type: str = "TurnsDeleted"
    turn_ids: List[str]


__all__ = [
    "LedgerChanged",
    "CheckpointStateChanged",
    "PassFailure",
    "CheckpointPassCompleted",
    "TurnsDeleted",
]

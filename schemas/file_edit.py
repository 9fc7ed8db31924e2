"""File edit and conversation schemas with JSON helpers.

``FileEdit`` is the unit tracked by the ledger and attached to conversation
turns. Paths are normalised to absolute form so they can be used as the edit's
identity.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, TypeVar

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T", bound="_JsonMixin")


class _JsonMixin(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls: type[T], data: str) -> T:
        return cls.model_validate_json(data)


class ToolKind(str, Enum):
    CREATE_FILE = "create_file"
    INSERT_OR_REPLACE = "insert_or_replace"
    OTHER = "other"


class EditStatus(str, Enum):
    PENDING = "pending"
    KEPT = "kept"
    UNDONE = "undone"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def normalize_path(path: Path | str) -> Path:
    """Return the identity form of ``path`` (absolute, no symlink resolution)."""
    return Path(path).expanduser().absolute()


class FileEdit(_JsonMixin):
    """One agent-proposed mutation to a single file.

    Attributes:
        path: Target file; the edit's identity.
        original_content: Text before any mutation in this session ("" for new files).
        modified_content: Text after the mutation was applied.
        tool_kind: Edit operation that produced the record.
        status: Accept/undo lifecycle tag.
    """

    path: Path
    original_content: str = ""
    modified_content: str
    tool_kind: ToolKind
    status: EditStatus = EditStatus.PENDING

    @field_validator("path")
    @classmethod
    def _absolute(cls, v: Path) -> Path:
        return normalize_path(v)

    def merged_with(self, newer: "FileEdit") -> "FileEdit":
        """Merge a newer edit of the same file into this one.

        The first original content and tool kind survive; the modified content
        comes from ``newer`` and the merged record is pending again.
        """
        return FileEdit(
            path=self.path,
            original_content=self.original_content,
            modified_content=newer.modified_content,
            tool_kind=self.tool_kind,
            status=EditStatus.PENDING,
        )


class ChatContext(_JsonMixin):
    """Transient input state of the chat (draft text and attached references)."""

    text: str = ""
    references: List[str] = Field(default_factory=list)


class ConversationTurn(_JsonMixin):
    id: str
    seq: int
    role: Role
    content: str = ""
    references: List[str] = Field(default_factory=list)
    file_edits: List[FileEdit] = Field(default_factory=list)


__all__ = [
    "ToolKind",
    "EditStatus",
    "Role",
    "FileEdit",
    "ChatContext",
    "ConversationTurn",
    "normalize_path",
]

"""Settings schema and JSON helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T", bound="_JsonMixin")


def default_db_path() -> Path:
    """Return the default session database path (``~/.rewind/rewind.db``)."""
    return Path.home() / ".rewind" / "rewind.db"


class _JsonMixin(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls: type[T], data: str) -> T:
        return cls.model_validate_json(data)


class Settings(_JsonMixin):
    db_path: Path = Field(default_factory=default_db_path)
    # Skip revert/redo writes when the file already holds the target content
    skip_unchanged_writes: bool = True
    # Append every session event to the journal table
    journal: bool = True
    log_level: Literal["debug", "info", "warning", "error"] = "info"

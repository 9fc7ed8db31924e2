"""Error types raised by the filesystem capability and edit tools."""

from __future__ import annotations

from pathlib import Path


class EditError(Exception):
    """Base class for recoverable, per-file edit failures."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = Path(path)


class AlreadyExistsError(EditError):
    def __init__(self, path: Path) -> None:
        super().__init__(path, "file already exists")


class NotFoundError(EditError):
    def __init__(self, path: Path) -> None:
        super().__init__(path, "file not found")


class FileIOError(EditError):
    """Wraps an ``OSError`` or a decode error raised while reading, writing or deleting."""

    def __init__(self, path: Path, cause: OSError | UnicodeError) -> None:
        reason = getattr(cause, "strerror", None) or cause
        super().__init__(path, f"I/O error ({reason})")
        self.cause = cause


__all__ = ["EditError", "AlreadyExistsError", "NotFoundError", "FileIOError"]

"""Edit tools: forward and reverse semantics per edit kind.

Each tool knows how to apply an agent edit to the filesystem and how to
reverse or re-apply a recorded ``FileEdit``. The ledger and the checkpoint
engine only ever go through ``tool_for(kind)``; they never branch on the
filesystem mechanics themselves.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from core.errors import AlreadyExistsError, FileIOError, NotFoundError
from schemas.file_edit import FileEdit, ToolKind
from tools.file_ops import FileSystem

logger = structlog.get_logger(__name__)


def _holds(fs: FileSystem, path: Path, content: str) -> bool:
    """Return True if ``path`` is a regular file whose text equals ``content``."""
    if not fs.is_file(path):
        return False
    try:
        return fs.read_text(path) == content
    except NotFoundError:
        return False
    except FileIOError as e:
        # Undecodable text never equals the target; let the write replace it
        if isinstance(e.cause, UnicodeError):
            return False
        raise


class EditTool:
    """Base tool: every operation is a no-op.

    Subclasses override ``apply`` (agent invocation), ``revert`` (restore the
    recorded original) and ``reapply`` (write the recorded modification back).
    ``revert`` and ``reapply`` return True when they touched the filesystem.
    """

    kind: ToolKind = ToolKind.OTHER

    def __init__(self, *, skip_unchanged: bool = True) -> None:
        self.skip_unchanged = skip_unchanged

    def apply(self, fs: FileSystem, path: Path, content: str) -> FileEdit:
        # Bookkeeping only: the producing tool already wrote the file
        return FileEdit(path=path, modified_content=content, tool_kind=self.kind)

    def revert(self, fs: FileSystem, edit: FileEdit) -> bool:
        return False

    def reapply(self, fs: FileSystem, edit: FileEdit) -> bool:
        return False

    def _write(self, fs: FileSystem, path: Path, content: str) -> bool:
        if self.skip_unchanged and _holds(fs, path, content):
            logger.debug("write_skipped_unchanged", path=str(path))
            return False
        fs.write_text(path, content)
        return True


class NoopTool(EditTool):
    """Bookkeeping-only edits; reversal is not supported."""


class CreateFileTool(EditTool):
    kind = ToolKind.CREATE_FILE

    def apply(self, fs: FileSystem, path: Path, content: str) -> FileEdit:
        if fs.exists(path):
            logger.info("create_file_exists", path=str(path))
            raise AlreadyExistsError(path)
        fs.create_directories(Path(path).parent)
        fs.write_text(path, content)
        written = fs.read_text(path)
        return FileEdit(
            path=path,
            original_content="",
            modified_content=written,
            tool_kind=self.kind,
        )

    def revert(self, fs: FileSystem, edit: FileEdit) -> bool:
        # Only regular files are removed; directories are never deleted here
        if not fs.is_file(edit.path):
            return False
        fs.delete(edit.path)
        return True

    def reapply(self, fs: FileSystem, edit: FileEdit) -> bool:
        return self._write(fs, edit.path, edit.modified_content)


class InsertOrReplaceTool(EditTool):
    kind = ToolKind.INSERT_OR_REPLACE

    def apply(self, fs: FileSystem, path: Path, content: str) -> FileEdit:
        original = fs.read_text(path)
        fs.write_text(path, content)
        return FileEdit(
            path=path,
            original_content=original,
            modified_content=content,
            tool_kind=self.kind,
        )

    def revert(self, fs: FileSystem, edit: FileEdit) -> bool:
        return self._write(fs, edit.path, edit.original_content)

    def reapply(self, fs: FileSystem, edit: FileEdit) -> bool:
        return self._write(fs, edit.path, edit.modified_content)


_TOOLS: dict[ToolKind, type[EditTool]] = {
    ToolKind.CREATE_FILE: CreateFileTool,
    ToolKind.INSERT_OR_REPLACE: InsertOrReplaceTool,
    ToolKind.OTHER: NoopTool,
}


def tool_for(kind: ToolKind | str, *, skip_unchanged: bool = True) -> EditTool:
    """Return the tool for ``kind``; unknown kinds get the no-op tool."""
    try:
        cls = _TOOLS[ToolKind(kind)]
    except ValueError:
        cls = NoopTool
    return cls(skip_unchanged=skip_unchanged)


__all__ = ["EditTool", "NoopTool", "CreateFileTool", "InsertOrReplaceTool", "tool_for"]

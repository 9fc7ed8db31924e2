"""Whole-file filesystem operations used by the edit tools.

Provides the narrow capability the ledger and checkpoint engine need (exists,
read, write, delete, create directories). Writes are atomic via a sibling temp
file and ``os.replace`` so a file either holds the old or the new content.

All failures are raised as ``core.errors`` types.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

import structlog

from core.errors import FileIOError, NotFoundError

logger = structlog.get_logger(__name__)


class FileSystem(Protocol):
    def exists(self, path: Path) -> bool:  # pragma: no cover - Protocol definition only
        ...

    def is_file(self, path: Path) -> bool:  # pragma: no cover - Protocol definition only
        ...

    def read_text(self, path: Path) -> str:  # pragma: no cover - Protocol definition only
        ...

    def write_text(self, path: Path, text: str) -> None:  # pragma: no cover
        ...

    def delete(self, path: Path) -> None:  # pragma: no cover - Protocol definition only
        ...

    def create_directories(self, path: Path) -> None:  # pragma: no cover
        ...


def ensure_parent(dst: Path) -> None:
    Path(dst).parent.mkdir(parents=True, exist_ok=True)


def _atomic_write_text(path: Path, data: str) -> None:
    """Write text to ``path`` atomically.

    Uses a sibling ``.tmp`` file and ``os.replace`` to ensure the file either
    exists entirely or not at all.
    """
    path = Path(path)
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        tmp.write_text(data, encoding="utf-8")
        # os.replace is atomic on both Windows and POSIX
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


class LocalFileSystem:
    """``FileSystem`` backed by the local disk."""

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def is_file(self, path: Path) -> bool:
        return Path(path).is_file()

    def read_text(self, path: Path) -> str:
        p = Path(path)
        try:
            return p.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(p) from None
        except OSError as e:
            raise FileIOError(p, e) from e
        except UnicodeDecodeError as e:
            logger.debug("file_not_utf8", path=str(p))
            raise FileIOError(p, e) from e

    def write_text(self, path: Path, text: str) -> None:
        p = Path(path)
        try:
            ensure_parent(p)
            _atomic_write_text(p, text)
        except OSError as e:
            raise FileIOError(p, e) from e
        logger.debug("file_written", path=str(p), size=len(text))

    def delete(self, path: Path) -> None:
        p = Path(path)
        try:
            p.unlink()
        except FileNotFoundError:
            raise NotFoundError(p) from None
        except OSError as e:
            raise FileIOError(p, e) from e
        logger.debug("file_deleted", path=str(p))

    def create_directories(self, path: Path) -> None:
        p = Path(path)
        try:
            p.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileIOError(p, e) from e


__all__ = ["FileSystem", "LocalFileSystem", "ensure_parent"]

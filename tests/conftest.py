"""Pytest configuration and shared fixtures.

Ensures the repository root is importable (so tests can import packages like
`cli`, `core`, `tools` without an editable install), and provides session
factories, a workspace tree helper and a filesystem that can be told to fail.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make repo root importable for tests (avoid requiring `pip install -e .`).
_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from core.errors import FileIOError  # noqa: E402
from schemas.settings import Settings  # noqa: E402
from tools.file_ops import LocalFileSystem  # noqa: E402


class FlakyFileSystem(LocalFileSystem):
    """Local filesystem whose writes and deletes fail for selected paths."""

    def __init__(self) -> None:
        self.fail_paths: set[Path] = set()

    def _check(self, path: Path) -> None:
        if Path(path) in self.fail_paths:
            raise FileIOError(Path(path), OSError(13, "Permission denied"))

    def write_text(self, path: Path, text: str) -> None:
        self._check(path)
        super().write_text(path, text)

    def delete(self, path: Path) -> None:
        self._check(path)
        super().delete(path)


class FakeGeneration:
    def __init__(self, active: bool = True) -> None:
        self.active = active
        self.cancelled = 0

    def is_active(self) -> bool:
        return self.active

    def cancel_active_generation(self) -> None:
        self.cancelled += 1
        self.active = False


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "state" / "rewind.db")


@pytest.fixture
def flaky_fs() -> FlakyFileSystem:
    return FlakyFileSystem()


@pytest.fixture
def generation() -> FakeGeneration:
    return FakeGeneration(active=True)


@pytest.fixture
def make_tree(workspace: Path):
    """Factory to create files under ``workspace``.

    Example:
        make_tree({"a.txt": "hello", "pkg/": None})
    """

    def _make(spec: dict[str, str | None]) -> Path:
        for rel, content in spec.items():
            p = workspace / rel
            if rel.endswith("/"):
                p.mkdir(parents=True, exist_ok=True)
                continue
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(content or "", encoding="utf-8")
        return workspace

    return _make

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from tools.config_loader import load_settings


def test_defaults_without_file(tmp_path: Path) -> None:
    s = load_settings(None)
    assert s.db_path.name == "rewind.db"
    assert s.skip_unchanged_writes is True
    assert s.journal is True
    assert load_settings(tmp_path / "missing.yaml") == s


def test_yaml_file_and_overrides(tmp_path: Path) -> None:
    cfg = tmp_path / "rewind.yaml"
    cfg.write_text(
        "db_path: /tmp/from-file.db\nskip_unchanged_writes: false\nlog_level: debug\n",
        encoding="utf-8",
    )
    s = load_settings(cfg)
    assert s.db_path == Path("/tmp/from-file.db")
    assert s.skip_unchanged_writes is False
    assert s.log_level == "debug"

    s2 = load_settings(cfg, db_path=tmp_path / "cli.db", journal=None)
    assert s2.db_path == tmp_path / "cli.db"
    assert s2.journal is True


def test_json_file(tmp_path: Path) -> None:
    cfg = tmp_path / "rewind.json"
    cfg.write_text(json.dumps({"journal": False}), encoding="utf-8")
    assert load_settings(cfg).journal is False


def test_invalid_documents(tmp_path: Path) -> None:
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(TypeError):
        load_settings(cfg)

    cfg.write_text("log_level: loud\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_settings(cfg)

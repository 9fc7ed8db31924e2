"""Settings loader for YAML or JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from schemas.settings import Settings


def load_settings(path: Optional[Path] = None, **overrides: Any) -> Settings:
    """Load settings from ``path`` and apply non-None ``overrides``.

    Behavior:
    - No path (or a missing file): defaults.
    - ``.json`` extension, or content that looks like JSON: parsed as JSON.
    - Otherwise parsed with ``yaml.safe_load``.

    Raises:
        TypeError: if the document is not a mapping at top-level.
    """
    data: dict = {}
    if path is not None and Path(path).exists():
        text = Path(path).read_text(encoding="utf-8")
        looks_json = text.lstrip().startswith("{")
        if Path(path).suffix.lower() == ".json" or looks_json:
            obj = json.loads(text)
        else:
            obj = yaml.safe_load(text) or {}
        if not isinstance(obj, dict):
            raise TypeError("Settings must be a mapping at top-level")
        data = obj
    data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings.model_validate(data)


__all__ = ["load_settings"]

"""Whole-document JSON persistence helpers."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)


def read_json(path: Path, default: Any) -> Any:
    """Return the decoded document at ``path``.

    Missing, unreadable, or corrupt files yield ``default`` instead of raising.
    """
    if not path.is_file():
        return default
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, ValueError) as exc:
        LOGGER.warning("Failed to read data file %s: %s", path, exc)
        return default


def write_json(path: Path, data: Any) -> bool:
    """Atomically replace the document at ``path`` with ``data``.

    The payload is written to a sibling temporary file and renamed over the
    target. Failures are logged and reported through the return value.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        descriptor, temp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        try:
            with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
    except (OSError, TypeError, ValueError) as exc:
        LOGGER.error("Failed to save data file %s: %s", path, exc)
        return False
    return True


__all__ = ["read_json", "write_json"]

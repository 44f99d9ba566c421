"""
JSON document persistence.

Writes go to a temporary sibling file first and are moved into place with
``os.replace`` so readers never observe a half-written document.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from pharma_kg.errors import PersistenceError


def write_json(path: Path, data: Any) -> None:
    """
    Atomically write ``data`` as JSON.

    Raises:
        PersistenceError: The document could not be written
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise PersistenceError(f"Failed to write {path}: {e}") from e


def read_json(path: Path, default: Any = None) -> Any:
    """
    Read a JSON document, returning ``default`` when it does not exist.

    Raises:
        PersistenceError: The document exists but is unreadable
    """
    if not path.exists():
        return default
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise PersistenceError(f"Failed to read {path}: {e}") from e

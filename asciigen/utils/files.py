"""File system helpers for generation artifacts."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


def ensure_dir(path: str | Path) -> Path:
    """Create the directory if it does not exist."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def atomic_write_text(path: str | Path, content: str) -> Path:
    """Write UTF-8 text through a temporary file so readers never see partial output."""
    target = Path(path)
    ensure_dir(target.parent)
    temp_path = target.with_suffix(target.suffix + ".tmp")
    temp_path.write_text(content, encoding="utf-8")
    os.replace(temp_path, target)
    return target


def json_default(obj: Any) -> Any:
    """Fallback serializer for dataclasses, enums and timestamps."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, set):
        return sorted(obj)
    return str(obj)


def write_json(path: str | Path, data: Any) -> Path:
    """Serialize a Python object as JSON to disk."""
    payload = json.dumps(data, indent=2, ensure_ascii=False, default=json_default)
    return atomic_write_text(path, payload)

"""Coercion helpers for node payloads.

Node outputs are plain dicts that spread their input. These helpers turn
whatever arrives into that shape and convert configuration values that may
come in as strings from the editor.
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Any


def as_mapping(value: Any) -> dict[str, Any]:
    """Input as a dict to spread into an output. Non-dicts land under 'value'."""
    if isinstance(value, dict):
        return dict(value)
    if value is None:
        return {}
    return {"value": value}


def to_number(value: Any) -> float | int:
    """Parse a number, keeping ints as ints. Raises ValueError."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError("Empty value is not a number")
    try:
        return int(text)
    except ValueError:
        return float(text)


def to_int(value: Any, default: int) -> int:
    try:
        return int(to_number(value))
    except (TypeError, ValueError):
        return default


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def json_size(value: Any) -> int:
    try:
        return len(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return 0


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)

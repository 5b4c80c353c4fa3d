from __future__ import annotations

import json
import math
import time
from typing import Any


def now_ms() -> float:
    """Wall-clock milliseconds since the epoch."""
    return time.time() * 1000.0


def stable_json_dumps(obj: Any) -> str:
    """Deterministic JSON serialization (stable key order)."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def parse_event_id(value: Any) -> int | None:
    """Coerce a numeric id (int, float or numeric string) to int, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        s = value.strip()
        # int() and float() accept digit separators; feed ids never carry them.
        if "_" in s:
            return None
        try:
            return int(s)
        except ValueError:
            pass
        try:
            f = float(s)
        except ValueError:
            return None
        return int(f) if math.isfinite(f) else None
    return None

"""
Small input-normalization helpers shared by the repositories and routes.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, List


def clamp_int(value: Any, default: int, minimum: int, maximum: int) -> int:
    """
    Parse `value` as an int and clamp it into `[minimum, maximum]`.

    Unparseable or missing values fall back to `default` (which is clamped too).
    """
    try:
        parsed = int(str(value).strip()) if value is not None else default
    except ValueError:
        parsed = default
    return max(minimum, min(maximum, parsed))


def norm_text(value: Any) -> str:
    """`str(value).strip()`, with None mapped to the empty string."""
    return "" if value is None else str(value).strip()


def norm_key(value: Any) -> str:
    """Trimmed, lower-cased form used for case-insensitive identity matches."""
    return " ".join(norm_text(value).lower().split())


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def safe_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (5.5 -> 6, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def is_truthy_flag(value: Any) -> bool:
    return norm_text(value).lower() in ("1", "true", "yes", "on")


__all__ = [
    "clamp_int",
    "is_truthy_flag",
    "norm_key",
    "norm_text",
    "now_iso",
    "round_half_up",
    "safe_list",
    "today_iso",
]

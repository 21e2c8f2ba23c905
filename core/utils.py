"""
Small numeric and time helpers shared by the validator and scorers.
"""

import math
from datetime import datetime, timezone
from typing import Any, Optional


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def is_number(value: Any) -> bool:
    """True for finite real numbers (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an instant into an aware UTC datetime.

    Accepts datetime objects, ISO-8601 strings (with or without a trailing Z)
    and epoch seconds. Naive values are taken as UTC. Returns None when the
    value cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif is_number(value):
        try:
            parsed = datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(moment: Optional[datetime]) -> datetime:
    """Return `moment` as an aware datetime, defaulting to the current time."""
    if moment is None:
        return utc_now()
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment

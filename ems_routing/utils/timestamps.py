"""
Timestamp coercion helpers.

Case and hospital records reach the engine with timestamps in several shapes:
datetime objects, ISO-8601 strings, epoch seconds or milliseconds, and
document-store objects such as {"_seconds": ...}. Everything is converted to a
timezone-aware UTC datetime, or None when it cannot be read.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Epoch values above this are treated as milliseconds (year 2286 in seconds)
_MILLISECOND_THRESHOLD = 10_000_000_000


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Convert a raw timestamp into an aware UTC datetime.

    Args:
        value: datetime, ISO string, epoch number or {"_seconds"|"seconds": n} mapping.

    Returns:
        Aware datetime in UTC, or None if the value is missing or unparseable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, dict):
        for key in ("_seconds", "seconds"):
            if key in value:
                return to_datetime(value[key])
        return None

    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        seconds = value / 1000 if abs(value) > _MILLISECOND_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_datetime(datetime.fromisoformat(text))
        except ValueError:
            pass
        try:
            return to_datetime(float(text))
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None

    return None


def seconds_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    """Elapsed seconds from start to end, or None if either is missing or end precedes start."""
    start, end = to_datetime(start), to_datetime(end)
    if start is None or end is None:
        return None
    elapsed = (end - start).total_seconds()
    return elapsed if elapsed >= 0 else None

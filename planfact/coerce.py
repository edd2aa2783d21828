"""Normalization of loosely-typed input into the strict internal model.

Everything that enters the store from a collaborator or from an older saved
blob passes through these helpers, so the model never carries a string
minute count or an out-of-range priority.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any

QUALITIES = ("A", "B", "C", "D")
TIME_TYPES = ("to-goal", "to-time")
TIME_QUALITIES = ("pure", "not-pure")

DEFAULT_PRIORITY = 5


def to_count(value: Any) -> int:
    """Coerce a count (XP, streak, level, milliseconds) to a non-negative int.

    Accepts ints, floats and numeric strings ("45", " 30 ", "12.5").
    Anything unparsable becomes 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return 0
        return max(0, int(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return max(0, int(text))
        except ValueError:
            pass
        try:
            return to_count(float(text))
        except ValueError:
            return 0
    return 0


def to_minutes(value: Any) -> int:
    """Coerce a duration in minutes; same rules as to_count."""
    return to_count(value)


def to_priority(value: Any) -> int:
    """Coerce a priority to an int within 1-10 (1 is highest)."""
    if value is None or isinstance(value, bool):
        return DEFAULT_PRIORITY
    try:
        p = int(float(value)) if isinstance(value, str) else int(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_PRIORITY
    return min(10, max(1, p))


def to_choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    text = str(value).strip() if value is not None else ""
    if text in choices:
        return text
    # Grades are commonly typed lowercase
    if text.upper() in choices:
        return text.upper()
    return default


def to_datetime(value: Any) -> datetime | None:
    """Rehydrate a datetime from its serialized form.

    Accepts datetime, date (midnight), ISO strings including a trailing 'Z',
    and epoch milliseconds. Returns None for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def to_date(value: Any) -> date | None:
    """Rehydrate a calendar date; datetimes keep their own calendar date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            dt = to_datetime(text)
            return dt.date() if dt else None
    dt = to_datetime(value)
    return dt.date() if dt else None


def iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None

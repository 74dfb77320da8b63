"""
Purpose: Time-of-day and day-of-week helpers.
What it does:
- Parses "HH:mm" 24-hour strings into minutes since midnight.
- Converts datetimes to ISO weekdays (1 = Monday ... 7 = Sunday).
- Normalises naive timestamps so they compare with aware ones.

Rule: Pure functions only.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import FrozenSet

WEEKDAYS: FrozenSet[int] = frozenset({1, 2, 3, 4, 5})
WEEKEND: FrozenSet[int] = frozenset({6, 7})


def parse_hhmm(value: str) -> int:
    """
    Convert "HH:mm" into minutes since midnight.

    Raises ValueError for anything that is not a valid 24-hour time.
    """
    if not isinstance(value, str):
        raise ValueError(f"time must be a string in HH:mm format, got {value!r}")

    parts = value.strip().split(":")
    if len(parts) != 2 or not parts[0].isdigit() or not parts[1].isdigit():
        raise ValueError(f"time must be in HH:mm format, got {value!r}")

    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"time out of range: {value!r}")

    return hour * 60 + minute


def hour_of(value: str) -> int:
    return parse_hhmm(value) // 60


def iso_weekday(moment: datetime) -> int:
    # Sunday maps to 7
    return moment.isoweekday()


def local_now() -> datetime:
    # timezone-aware, so it compares safely with stored UTC timestamps
    return datetime.now().astimezone()


def as_aware(moment: datetime) -> datetime:
    # naive timestamps are treated as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment

"""
Time-of-day helpers for slot scheduling.

Slot times are stored as ``HH:MM`` strings (24h clock, same calendar day).
Everything here is purely lexical: no timezone is involved, a time is just an
offset in minutes from midnight.
"""

import re
from datetime import date, timedelta
from typing import Iterable, Iterator, Optional, Protocol, TypeVar, Union

from core.exceptions import ValidationError

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")

TimeValue = Union[str, int]


class HasInterval(Protocol):
    start_time: str
    end_time: str


IntervalT = TypeVar("IntervalT", bound=HasInterval)


def time_to_minutes(value: TimeValue) -> int:
    """
    Convert an ``HH:MM`` string into minutes after midnight.

    Integers are accepted as already-converted minute offsets and returned as is.

    Raises:
        ValidationError: If the string is not a valid 24h time
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid time value: {value!r}")
    if isinstance(value, int):
        if not 0 <= value <= MINUTES_PER_DAY:
            raise ValidationError(f"Minute offset out of range: {value}")
        return value
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time value: {value!r}")

    match = _TIME_RE.match(value)
    if not match:
        raise ValidationError(f"Invalid time format (expected HH:MM): {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValidationError(f"Invalid time format (expected HH:MM): {value!r}")
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    """Convert minutes after midnight back to a zero padded ``HH:MM`` string."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValidationError(f"Minute offset out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: TimeValue) -> str:
    """Return the canonical ``HH:MM`` form, e.g. ``"9:05"`` -> ``"09:05"``."""
    return minutes_to_time(time_to_minutes(value))


def intervals_overlap(a_start: TimeValue, a_end: TimeValue, b_start: TimeValue, b_end: TimeValue) -> bool:
    """
    Check whether two half-open intervals ``[a_start, a_end)`` and ``[b_start, b_end)`` intersect.

    Covers partial overlap on either side and containment in both directions.
    Touching endpoints (``a_end == b_start``) do not overlap.
    """
    return time_to_minutes(a_start) < time_to_minutes(b_end) and time_to_minutes(b_start) < time_to_minutes(a_end)


def validate_time_range(start_time: Optional[str], end_time: Optional[str]) -> tuple[str, str]:
    """
    Validate and normalize a same-day time range.

    Returns:
        Tuple of normalized ``(start_time, end_time)``

    Raises:
        ValidationError: If either value is missing or malformed, or end is not after start
    """
    if not start_time or not end_time:
        raise ValidationError("Start time and end time are required")
    start, end = normalize_time(start_time), normalize_time(end_time)
    if time_to_minutes(end) <= time_to_minutes(start):
        raise ValidationError(
            f"End time must be after start time ({start}-{end})",
            details={"start_time": start, "end_time": end},
        )
    return start, end


def find_overlapping(intervals: Iterable[IntervalT], start_time: TimeValue, end_time: TimeValue) -> Optional[IntervalT]:
    """Return the first interval that overlaps ``[start_time, end_time)``, if any."""
    for interval in intervals:
        if intervals_overlap(start_time, end_time, interval.start_time, interval.end_time):
            return interval
    return None


def format_interval(start_time: str, end_time: str) -> str:
    return f"{start_time}-{end_time}"


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    """Yield every calendar day in ``[start_date, end_date]`` inclusive."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)

"""
Datetime utilities for consistent timezone handling across the application.

Slots are stored as a calendar date plus ``HH:MM`` strings in the clinic
timezone; audit and lifecycle timestamps are stored timezone-aware in UTC.
These helpers convert between the two and the RFC3339 strings used by the
Google Calendar API.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from utils.time_utils import normalize_time

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def combine_date_time(day: date, hhmm: str, tz: tzinfo) -> datetime:
    """Build an aware datetime from a slot date and its ``HH:MM`` time."""
    hours, minutes = (int(part) for part in normalize_time(hhmm).split(":"))
    return datetime.combine(day, time(hours, minutes), tzinfo=tz)


def day_start(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def day_end(day: date, tz: tzinfo) -> datetime:
    """Exclusive end of ``day`` (midnight of the following day)."""
    return day_start(day + timedelta(days=1), tz)


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC3339 timestamp as returned by the Google Calendar API.

    Raises:
        ValueError: If the string cannot be parsed
    """
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid RFC3339 datetime: {value!r}") from e


def format_rfc3339(dt: datetime) -> str:
    """Format an aware datetime as RFC3339, keeping its offset."""
    if dt.tzinfo is None:
        raise ValueError("Cannot format naive datetime as RFC3339")
    iso_str = dt.isoformat()
    if iso_str.endswith("+00:00"):
        return iso_str[:-6] + "Z"
    return iso_str


def format_datetime(dt: datetime) -> str:
    """
    Format datetime for user-facing messages, e.g. ``"Mon, Jan 05 2026 at 9:30 AM"``.

    Used for notification and email text so dates read the same everywhere.
    """
    hour_12 = dt.hour % 12 or 12
    period = "AM" if dt.hour < 12 else "PM"
    return f"{dt.strftime('%a, %b %d %Y')} at {hour_12}:{dt.minute:02d} {period}"


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD or YYYY/MM/DD format.

    Automatically normalizes single-digit months/days.

    Raises:
        ValueError: If date string cannot be parsed
    """
    if not date_str or not date_str.strip():
        raise ValueError("Date string cannot be empty")

    date_str = date_str.strip()
    separator = "/" if "/" in date_str else "-"
    parts = date_str.split(separator)
    if len(parts) != 3:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    normalized = f"{parts[0].zfill(4)}-{parts[1].zfill(2)}-{parts[2].zfill(2)}"
    try:
        return datetime.strptime(normalized, "%Y-%m-%d").date()
    except ValueError as e:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}") from e

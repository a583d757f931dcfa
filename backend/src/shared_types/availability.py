"""
Shared types for availability-related functionality.

This module contains the data classes passed between the slot generator,
the availability service and the external calendar bridge.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class TimeWindow:
    """A working window on one day, e.g. 09:00-12:00."""
    start_time: str  # Format: "HH:MM"
    end_time: str  # Format: "HH:MM"


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days."""
    start_date: date
    end_date: date

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError(f"end_date {self.end_date} is before start_date {self.start_date}")


@dataclass(frozen=True)
class CandidateSlot:
    """
    A slot the generator wants to create.

    Not yet persisted; the availability service turns these into TimeSlot rows.
    """
    doctor_id: int
    date: date
    start_time: str
    end_time: str


@dataclass
class RemoteEvent:
    """
    A calendar event as returned by the external calendar.

    ``start``/``end`` are None when the event has no dateTime (all-day events).
    """
    id: str
    summary: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass
class CalendarEventSpec:
    """Event body the bridge inserts for an exported slot."""
    summary: str
    description: str
    start: datetime
    end: datetime
    color_id: str = "2"
    transparent: bool = True  # Does not block the doctor's free/busy time
    use_default_reminders: bool = False


@dataclass
class MeetingSpec:
    """Calendar event with a video conference for a virtual appointment."""
    summary: str
    description: str
    start: datetime
    end: datetime
    attendees: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Meeting:
    """A created or updated video meeting: its calendar event and join link."""
    event_id: str
    link: str


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": self.errors,
            "details": self.details,
        }


@dataclass
class ExportResult:
    exported: int = 0
    skipped: int = 0
    errors: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exported": self.exported,
            "skipped": self.skipped,
            "errors": self.errors,
            "details": self.details,
        }


@dataclass
class SyncResult:
    """
    Outcome of a two-way sync.

    ``updated`` and ``deleted`` are always 0: sync only ever creates, in both
    directions.
    """
    created: int = 0
    updated: int = 0
    deleted: int = 0
    errors: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "errors": self.errors,
            "details": self.details,
        }

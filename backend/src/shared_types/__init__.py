"""
Shared type definitions for the scheduling backend.

This module contains dataclasses and interfaces used across multiple services.
"""

from shared_types.availability import (
    CalendarEventSpec,
    CandidateSlot,
    DateRange,
    ExportResult,
    ImportResult,
    Meeting,
    MeetingSpec,
    RemoteEvent,
    SyncResult,
    TimeWindow,
)
from shared_types.collaborators import AuditSink, CalendarBridge, CalendarBridgeFactory, Directory, NotificationSink

__all__ = [
    "AuditSink",
    "CalendarBridge",
    "CalendarBridgeFactory",
    "CalendarEventSpec",
    "CandidateSlot",
    "DateRange",
    "Directory",
    "ExportResult",
    "ImportResult",
    "Meeting",
    "MeetingSpec",
    "NotificationSink",
    "RemoteEvent",
    "SyncResult",
    "TimeWindow",
]

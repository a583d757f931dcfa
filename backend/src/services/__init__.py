"""
Services package for the scheduling business logic.

This package contains the service classes the API routers and the
background scheduler call into.
"""

from .appointment_service import AppointmentService
from .availability_service import AvailabilityService
from .calendar_sync_service import CalendarSyncService
from .reminder_service import ReminderScheduler

__all__ = [
    "AppointmentService",
    "AvailabilityService",
    "CalendarSyncService",
    "ReminderScheduler",
]

"""
Composition root for the HTTP layer.

Builds the scheduling configuration and the services once per process and
exposes them as FastAPI dependencies. Tests swap them through
``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Header

from core.config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, SchedulingConfig, load_scheduling_config
from core.database import SessionLocal
from core.exceptions import ValidationError
from services.appointment_service import AppointmentService
from services.audit_service import AuditService
from services.availability_service import AvailabilityService
from services.directory_service import DirectoryService
from services.google_calendar_service import GoogleCalendarService
from services.notification_service import NotificationService


@lru_cache()
def get_scheduling_config() -> SchedulingConfig:
    return load_scheduling_config()


def _google_calendar(config: SchedulingConfig) -> GoogleCalendarService:
    return GoogleCalendarService(
        calendar_id=config.calendar_id,
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
    )


@lru_cache()
def get_availability_service() -> AvailabilityService:
    config = get_scheduling_config()
    return AvailabilityService(
        config,
        session_factory=SessionLocal,
        directory=DirectoryService(),
        audit=AuditService(),
        calendar_bridge_factory=lambda: _google_calendar(config),
    )


@lru_cache()
def get_appointment_service() -> AppointmentService:
    config = get_scheduling_config()
    return AppointmentService(
        config,
        session_factory=SessionLocal,
        directory=DirectoryService(),
        audit=AuditService(),
        notifications=NotificationService(),
        calendar_bridge_factory=lambda: _google_calendar(config),
    )


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[int]:
    """
    Acting user for audit entries, from the ``X-Actor-Id`` header.

    Authentication happens in front of this service; a missing header means
    the call is attributed to the system.
    """
    if x_actor_id is None or x_actor_id == "":
        return None
    try:
        return int(x_actor_id)
    except ValueError:
        raise ValidationError("X-Actor-Id must be an integer user ID")

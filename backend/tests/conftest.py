"""
Test configuration and shared fixtures for the CareSync test suite.

Uses an in-memory SQLite database per test. All sessions (the ones the
services open and the ``db_session`` used by tests for arranging and
inspecting data) are bound to a single connection inside an outer
transaction, and each session works in its own SAVEPOINT. Service commits
release their savepoint, so tests see committed data immediately, and the
whole test is rolled back at the end.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Generator, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import SchedulingConfig
from core.database import Base
from core.exceptions import ExternalServiceError
import models  # noqa: F401  (registers all tables on Base.metadata)
from services.appointment_service import AppointmentService
from services.audit_service import AuditService
from services.availability_service import AvailabilityService
from services.directory_service import DirectoryService
from services.email_service import EmailDeliveryError, EmailService
from services.notification_service import NotificationService
from shared_types.availability import CalendarEventSpec, Meeting, MeetingSpec, RemoteEvent
from shared_types.collaborators import CalendarBridge
from tests.factories import create_doctor, create_patient

# Monday
FIXED_NOW = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)
TODAY = date(2026, 1, 5)


class FakeCalendarBridge(CalendarBridge):
    """
    In-memory calendar used in place of Google Calendar.

    Meetings get ids ``mtg-N`` and links ``https://meet.google.com/mtg-N``.
    """

    def __init__(self, events: Optional[List[RemoteEvent]] = None) -> None:
        self.events: List[RemoteEvent] = list(events or [])
        self.inserted: List[Tuple[str, CalendarEventSpec]] = []
        self.list_calls: List[Tuple[str, datetime, datetime]] = []
        self.fail_listing = False
        self.fail_insert_for: set[str] = set()  # start times (HH:MM) whose insert fails
        self.meetings: Dict[str, MeetingSpec] = {}
        self.meeting_credentials: List[str] = []
        self.deleted_meetings: List[str] = []
        self.fail_meetings = False
        self._meeting_seq = 0

    def list_events(self, credential: str, range_start: datetime, range_end: datetime) -> List[RemoteEvent]:
        self.list_calls.append((credential, range_start, range_end))
        if self.fail_listing:
            raise ExternalServiceError("Failed to list calendar events: backend unavailable")
        return list(self.events)

    def insert_event(self, credential: str, event_spec: CalendarEventSpec) -> str:
        if event_spec.start.strftime("%H:%M") in self.fail_insert_for:
            raise ExternalServiceError("Failed to create calendar event: quota exceeded")
        event_id = f"evt-{len(self.inserted) + 1}"
        self.inserted.append((event_id, event_spec))
        return event_id

    def create_meeting(self, credential: str, meeting_spec: MeetingSpec) -> Meeting:
        if self.fail_meetings:
            raise ExternalServiceError("Failed to create meeting: Google Meet is disabled")
        self._meeting_seq += 1
        event_id = f"mtg-{self._meeting_seq}"
        self.meetings[event_id] = meeting_spec
        self.meeting_credentials.append(credential)
        return Meeting(event_id=event_id, link=f"https://meet.google.com/{event_id}")

    def update_meeting(self, credential: str, event_id: str, meeting_spec: MeetingSpec) -> Meeting:
        if self.fail_meetings or event_id not in self.meetings:
            raise ExternalServiceError(f"Failed to update meeting: {event_id} not found")
        self.meetings[event_id] = meeting_spec
        return Meeting(event_id=event_id, link=f"https://meet.google.com/{event_id}")

    def delete_meeting(self, credential: str, event_id: str) -> None:
        if self.fail_meetings:
            raise ExternalServiceError(f"Failed to delete meeting: {event_id}")
        self.meetings.pop(event_id, None)
        self.deleted_meetings.append(event_id)


class RecordingEmailService(EmailService):
    """Renders templates like the real service but records instead of sending."""

    def __init__(self) -> None:
        super().__init__(smtp_host="")
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []
        self.fail = False

    def send(self, to: str, template_name: str, payload: Dict[str, Any]) -> bool:
        self.render(template_name, payload)
        if self.fail:
            raise EmailDeliveryError(f"SMTP delivery to {to} failed: connection refused")
        self.sent.append((to, template_name, payload))
        return True

    def templates_sent(self) -> List[str]:
        return [template for _, template, _ in self.sent]


@pytest.fixture
def db_connection() -> Generator[Connection, None, None]:
    """
    Single connection to a fresh in-memory database, inside an outer transaction.

    pysqlite's own transaction handling breaks SAVEPOINTs, so it is disabled
    and BEGIN is emitted explicitly.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):  # type: ignore
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):  # type: ignore
        conn.exec_driver_sql("BEGIN")

    connection = engine.connect()
    transaction = connection.begin()
    Base.metadata.create_all(bind=connection)

    yield connection

    transaction.rollback()
    connection.close()
    engine.dispose()


@pytest.fixture
def session_factory(db_connection: Connection) -> sessionmaker:
    """Session factory handed to the services under test."""
    return sessionmaker(
        bind=db_connection,
        join_transaction_mode="create_savepoint",
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Session for arranging and inspecting data.

    Call ``expire_all()`` before reading rows a service has changed.
    """
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def scheduling_config() -> SchedulingConfig:
    return SchedulingConfig(timezone="UTC", availability_markers=["Available", "CareSync"])


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def calendar_bridge() -> FakeCalendarBridge:
    return FakeCalendarBridge()


@pytest.fixture
def email_service() -> RecordingEmailService:
    return RecordingEmailService()


@pytest.fixture
def availability_service(session_factory, scheduling_config, calendar_bridge, clock) -> AvailabilityService:
    return AvailabilityService(
        scheduling_config,
        session_factory=session_factory,
        directory=DirectoryService(),
        audit=AuditService(),
        calendar_bridge_factory=lambda: calendar_bridge,
        clock=clock,
    )


@pytest.fixture
def appointment_service(session_factory, scheduling_config, email_service, calendar_bridge, clock) -> AppointmentService:
    return AppointmentService(
        scheduling_config,
        session_factory=session_factory,
        directory=DirectoryService(),
        audit=AuditService(),
        notifications=NotificationService(email_service=email_service),
        calendar_bridge_factory=lambda: calendar_bridge,
        clock=clock,
    )


@pytest.fixture
def doctor(db_session: Session):
    doctor = create_doctor(db_session, first_name="Jane", last_name="Smith", google_refresh_token="refresh-token")
    db_session.commit()
    return doctor


@pytest.fixture
def patient(db_session: Session):
    patient = create_patient(db_session, first_name="John", last_name="Doe")
    db_session.commit()
    return patient

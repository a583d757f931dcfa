"""
Interfaces of the collaborators the scheduling services depend on.

Services receive concrete implementations through their constructors; tests
substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from shared_types.availability import CalendarEventSpec, Meeting, MeetingSpec, RemoteEvent


class Directory(ABC):
    """Lookup of doctors, patients and users. Each finder returns the entity or None."""

    @abstractmethod
    def find_doctor_by_id(self, db: Session, doctor_id: int) -> Any:
        pass

    @abstractmethod
    def find_patient_by_id(self, db: Session, patient_id: int) -> Any:
        pass

    @abstractmethod
    def find_user_by_id(self, db: Session, user_id: int) -> Any:
        pass


class AuditSink(ABC):
    """Append-only audit log. A failed write must not change the caller's outcome."""

    @abstractmethod
    def record(
        self,
        db: Session,
        actor_id: Optional[int],
        action: str,
        resource: str,
        resource_id: Optional[int],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        pass


class NotificationSink(ABC):
    """In-app notifications plus outbound email. Email failures are never raised."""

    @abstractmethod
    def create_in_app(
        self,
        db: Session,
        user_id: int,
        title: str,
        message: str,
        related_entity: Optional[Tuple[str, int]] = None,
        notification_type: str = "appointment",
    ) -> Any:
        pass

    @abstractmethod
    def send_email(self, template_name: str, payload: Dict[str, Any]) -> bool:
        pass


class CalendarBridge(ABC):
    """
    Narrow adapter over an external calendar.

    Availability events have no update or delete; sync treats "no local
    mapping yet" as create. Video meetings of virtual appointments are
    created, moved and removed as a whole.
    """

    @abstractmethod
    def list_events(self, credential: str, range_start: datetime, range_end: datetime) -> List[RemoteEvent]:
        pass

    @abstractmethod
    def insert_event(self, credential: str, event_spec: CalendarEventSpec) -> str:
        """Insert the event and return its remote id."""
        pass

    @abstractmethod
    def create_meeting(self, credential: str, meeting_spec: MeetingSpec) -> Meeting:
        """Create an event with a video conference attached."""
        pass

    @abstractmethod
    def update_meeting(self, credential: str, event_id: str, meeting_spec: MeetingSpec) -> Meeting:
        """Move or retitle an existing meeting event."""
        pass

    @abstractmethod
    def delete_meeting(self, credential: str, event_id: str) -> None:
        """Delete a meeting event. An event that is already gone is not an error."""
        pass


CalendarBridgeFactory = Callable[[], CalendarBridge]

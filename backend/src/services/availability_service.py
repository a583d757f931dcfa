"""
Availability service: doctor time slots and their external calendar mirror.

Public operations list, create, update and delete slots, regenerate slots
from a doctor's schedule and drive the Google Calendar import/export/sync.
Every mutation runs inside one unit of work; overlap checks run in the same
transaction as the write, after locking the doctor row.

Two overlap policies coexist on purpose:
- manual creation, updates and imports reject any overlap with a slot of any status;
- generation only avoids booked slots, because regeneration first clears the
  doctor's non-booked slots for each day.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from core.config import SchedulingConfig
from core.constants import (
    AUDIT_RESOURCE_TIMESLOT,
    SLOT_STATUS_AVAILABLE,
    SLOT_STATUS_BOOKED,
    SLOT_STATUSES,
)
from core.database import SessionLocal, unit_of_work
from core.exceptions import ConflictError, NotFoundError, ValidationError, translate_errors
from models import Doctor, TimeSlot
from services.audit_service import AuditService
from services.calendar_sync_service import CalendarSyncService
from services.directory_service import DirectoryService
from services.google_calendar_service import GoogleCalendarService
from services.slot_generator import SlotGenerator
from shared_types.availability import DateRange, ExportResult, ImportResult, SyncResult
from shared_types.collaborators import AuditSink, CalendarBridgeFactory, Directory
from utils.datetime_utils import parse_date_string
from utils.slot_queries import find_conflicting_slot, get_slot_by_id, get_slots_in_range, lock_doctor
from utils.time_utils import format_interval, validate_time_range

logger = logging.getLogger(__name__)

DateInput = Union[date, str, None]

UPDATABLE_SLOT_FIELDS = ("date", "start_time", "end_time", "status")


def coerce_date(value: DateInput, field_name: str = "date") -> Optional[date]:
    """
    Accept a ``date``, a ``datetime`` or a ``YYYY-MM-DD`` string.

    Raises:
        ValidationError: If the string cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return parse_date_string(value)
    except (ValueError, AttributeError) as e:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from e


def conflict_message(slot: TimeSlot) -> str:
    return (
        f"Time slot overlaps with existing {slot.status} slot on {slot.date.isoformat()} "
        f"{format_interval(slot.start_time, slot.end_time)}"
    )


class AvailabilityService:
    """
    Service for doctor availability.

    Attributes:
        config: Scheduling configuration
        session_factory: Factory for new sessions (one per operation)
        directory: Doctor/patient lookup
        audit: Audit sink
        calendar_sync: Import/export/sync against the external calendar
    """

    def __init__(
        self,
        config: SchedulingConfig,
        session_factory: Union[sessionmaker, Callable[[], Session]] = SessionLocal,
        directory: Optional[Directory] = None,
        audit: Optional[AuditSink] = None,
        calendar_bridge_factory: Optional[CalendarBridgeFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.session_factory = session_factory
        self.directory = directory or DirectoryService()
        self.audit = audit or AuditService()
        self.generator = SlotGenerator(config)
        self.calendar_sync = CalendarSyncService(
            config,
            calendar_bridge_factory or (lambda: GoogleCalendarService(calendar_id=config.calendar_id)),
        )
        self.clock = clock or config.now

    # ===== Helpers =====

    def _today(self) -> date:
        return self.clock().date()

    def _resolve_range(self, start_date: DateInput, end_date: DateInput, default_days: int) -> DateRange:
        """Fill in ``[today, today + default_days]`` defaults and validate the order."""
        start = coerce_date(start_date, "start_date") or self._today()
        end = coerce_date(end_date, "end_date") or start + timedelta(days=default_days)
        if end < start:
            raise ValidationError(f"end_date {end.isoformat()} is before start_date {start.isoformat()}")
        return DateRange(start, end)

    def _require_doctor(self, db: Session, doctor_id: int) -> Doctor:
        doctor = self.directory.find_doctor_by_id(db, doctor_id)
        if doctor is None:
            raise NotFoundError("Doctor not found", details={"doctor_id": doctor_id})
        return doctor

    @staticmethod
    def _require_slot(db: Session, slot_id: int, for_update: bool = False) -> TimeSlot:
        slot = get_slot_by_id(db, slot_id, for_update=for_update)
        if slot is None:
            raise NotFoundError("Time slot not found", details={"slot_id": slot_id})
        return slot

    @staticmethod
    def _flush(db: Session, conflict_detail: str) -> None:
        try:
            db.flush()
        except IntegrityError as e:
            raise ConflictError(conflict_detail) from e

    def _credential_for(self, doctor: Doctor, credential: Optional[str]) -> str:
        token = credential or doctor.google_refresh_token
        if not token:
            raise ValidationError("Doctor has not connected a Google Calendar", details={"doctor_id": doctor.id})
        return token

    # ===== Queries =====

    def list_slots(self, doctor_id: int, start_date: DateInput = None, end_date: DateInput = None) -> List[TimeSlot]:
        """
        List all slots of a doctor, ordered by date then start time.

        Args:
            doctor_id: Doctor ID
            start_date: First day (default today)
            end_date: Last day, inclusive (default start + 7 days)

        Returns:
            TimeSlot objects of every status

        Raises:
            NotFoundError: If the doctor does not exist
            ValidationError: If the dates are malformed or out of order
        """
        date_range = self._resolve_range(start_date, end_date, self.config.list_range_days)
        with translate_errors("list time slots"), unit_of_work(self.session_factory) as uow:
            self._require_doctor(uow.session, doctor_id)
            return get_slots_in_range(uow.session, doctor_id, date_range.start_date, date_range.end_date)

    def list_available_slots(
        self, doctor_id: int, start_date: DateInput = None, end_date: DateInput = None
    ) -> List[TimeSlot]:
        """Same as ``list_slots`` restricted to ``available`` slots."""
        date_range = self._resolve_range(start_date, end_date, self.config.list_range_days)
        with translate_errors("list available time slots"), unit_of_work(self.session_factory) as uow:
            self._require_doctor(uow.session, doctor_id)
            return get_slots_in_range(
                uow.session, doctor_id, date_range.start_date, date_range.end_date, status=SLOT_STATUS_AVAILABLE
            )

    def get_slot(self, slot_id: int) -> TimeSlot:
        with translate_errors("get time slot"), unit_of_work(self.session_factory) as uow:
            return self._require_slot(uow.session, slot_id)

    # ===== Mutations =====

    def create_slot(
        self,
        doctor_id: int,
        date: DateInput,
        start_time: Optional[str],
        end_time: Optional[str],
        status: str = SLOT_STATUS_AVAILABLE,
        actor_id: Optional[int] = None,
    ) -> TimeSlot:
        """
        Create a single slot.

        Args:
            doctor_id: Owning doctor
            date: Calendar day
            start_time: ``HH:MM``
            end_time: ``HH:MM``, strictly after start_time
            status: 'available' or 'blocked'
            actor_id: User performing the change, for the audit log

        Returns:
            The created TimeSlot

        Raises:
            ValidationError: Missing or malformed fields, or status 'booked'
            NotFoundError: If the doctor does not exist
            ConflictError: If the slot overlaps any existing slot of the doctor on that day
        """
        if not doctor_id:
            raise ValidationError("Doctor ID is required")
        slot_date = coerce_date(date)
        if slot_date is None:
            raise ValidationError("Date is required")
        start, end = validate_time_range(start_time, end_time)
        if status not in SLOT_STATUSES:
            raise ValidationError(f"Invalid slot status: {status}")
        if status == SLOT_STATUS_BOOKED:
            raise ValidationError("Slots can only be booked by creating an appointment")

        with translate_errors("create time slot"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            self._require_doctor(db, doctor_id)
            lock_doctor(db, doctor_id)

            conflict = find_conflicting_slot(db, doctor_id, slot_date, start, end)
            if conflict is not None:
                raise ConflictError(conflict_message(conflict), details={"conflicting_slot": conflict.to_dict()})

            slot = TimeSlot(doctor_id=doctor_id, date=slot_date, start_time=start, end_time=end, status=status)
            db.add(slot)
            self._flush(db, f"A slot starting at {start} on {slot_date.isoformat()} already exists")

            self.audit.record(db, actor_id, "create", AUDIT_RESOURCE_TIMESLOT, slot.id, slot.to_dict())
            logger.info(f"Created slot {slot.id} for doctor {doctor_id} on {slot_date} {start}-{end}")
            return slot

    def update_slot(self, slot_id: int, patch: Dict[str, Any], actor_id: Optional[int] = None) -> TimeSlot:
        """
        Update a slot's date, times or status.

        Rules:
        - date/time changes are rejected while the slot is booked;
        - the overlap check excludes the slot itself;
        - status can never be moved to or from 'booked' here, only through appointments.

        Raises:
            ValidationError: Unknown fields or malformed values
            NotFoundError: If the slot does not exist
            ConflictError: Booked-slot mutation or overlap
        """
        unknown = set(patch) - set(UPDATABLE_SLOT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown slot fields: {', '.join(sorted(unknown))}")
        new_date = coerce_date(patch.get("date")) if "date" in patch else None
        new_status = patch.get("status")
        if new_status is not None and new_status not in SLOT_STATUSES:
            raise ValidationError(f"Invalid slot status: {new_status}")

        with translate_errors("update time slot"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            slot = self._require_slot(db, slot_id, for_update=True)
            lock_doctor(db, slot.doctor_id)

            target_date = new_date or slot.date
            target_start, target_end = validate_time_range(
                patch.get("start_time") or slot.start_time,
                patch.get("end_time") or slot.end_time,
            )
            time_changed = (target_date, target_start, target_end) != (slot.date, slot.start_time, slot.end_time)

            if time_changed and slot.status == SLOT_STATUS_BOOKED:
                raise ConflictError(
                    "Cannot change the date or time of a booked slot",
                    details={"slot": slot.to_dict()},
                )
            if new_status is not None and new_status != slot.status and SLOT_STATUS_BOOKED in (new_status, slot.status):
                raise ConflictError(
                    f"Slot status cannot change from '{slot.status}' to '{new_status}' directly; "
                    "booking state is managed through appointments",
                    details={"current_status": slot.status, "requested_status": new_status},
                )

            changes: Dict[str, Tuple[Any, Any]] = {}
            if time_changed:
                conflict = find_conflicting_slot(
                    db, slot.doctor_id, target_date, target_start, target_end, exclude_slot_id=slot.id
                )
                if conflict is not None:
                    raise ConflictError(conflict_message(conflict), details={"conflicting_slot": conflict.to_dict()})
                for field, value in (("date", target_date), ("start_time", target_start), ("end_time", target_end)):
                    if getattr(slot, field) != value:
                        changes[field] = (str(getattr(slot, field)), str(value))
                        setattr(slot, field, value)
            if new_status is not None and new_status != slot.status:
                changes["status"] = (slot.status, new_status)
                slot.status = new_status

            self._flush(db, f"A slot starting at {target_start} on {target_date.isoformat()} already exists")
            if changes:
                self.audit.record(
                    db, actor_id, "update", AUDIT_RESOURCE_TIMESLOT, slot.id,
                    {field: {"from": old, "to": new} for field, (old, new) in changes.items()},
                )
                logger.info(f"Updated slot {slot.id}: {', '.join(changes)}")
            return slot

    def delete_slot(self, slot_id: int, actor_id: Optional[int] = None) -> None:
        """
        Delete a slot.

        Raises:
            NotFoundError: If the slot does not exist
            ConflictError: If the slot is booked
        """
        with translate_errors("delete time slot"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            slot = self._require_slot(db, slot_id, for_update=True)
            if slot.status == SLOT_STATUS_BOOKED:
                raise ConflictError("Cannot delete a booked time slot", details={"slot": slot.to_dict()})
            snapshot = slot.to_dict()
            db.delete(slot)
            db.flush()
            self.audit.record(db, actor_id, "delete", AUDIT_RESOURCE_TIMESLOT, slot_id, snapshot)
            logger.info(f"Deleted slot {slot_id} of doctor {snapshot['doctor_id']}")

    def generate_slots_from_schedule(
        self,
        doctor_id: int,
        start_date: DateInput = None,
        end_date: DateInput = None,
        actor_id: Optional[int] = None,
    ) -> List[TimeSlot]:
        """
        Regenerate the doctor's slots for a date range in one transaction.

        Non-booked slots of each day are replaced; booked slots are kept and
        generated intervals overlapping them are skipped.

        Args:
            doctor_id: Doctor ID
            start_date: First day (default today)
            end_date: Last day, inclusive (default start + 30 days)
            actor_id: User performing the change

        Returns:
            The newly created slots
        """
        date_range = self._resolve_range(start_date, end_date, self.config.generation_range_days)
        with translate_errors("generate time slots"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            self._require_doctor(db, doctor_id)
            doctor = lock_doctor(db, doctor_id)
            created = self.generator.regenerate(db, doctor, date_range)
            self.audit.record(
                db, actor_id, "create", AUDIT_RESOURCE_TIMESLOT, None,
                {
                    "doctor_id": doctor_id,
                    "start_date": date_range.start_date.isoformat(),
                    "end_date": date_range.end_date.isoformat(),
                    "slots_generated": len(created),
                },
            )
            return created

    # ===== External calendar =====

    def import_from_external_calendar(
        self,
        doctor_id: int,
        start_date: DateInput = None,
        end_date: DateInput = None,
        actor_id: Optional[int] = None,
        credential: Optional[str] = None,
    ) -> ImportResult:
        """
        Import calendar events as available slots (default range today..+30 days).

        The whole import is one transaction. ``credential`` defaults to the
        doctor's stored refresh token.

        Raises:
            NotFoundError: If the doctor does not exist
            ValidationError: If no calendar credential is available
            ExternalServiceError: If the calendar cannot be read
        """
        date_range = self._resolve_range(start_date, end_date, self.config.import_range_days)
        with translate_errors("import from external calendar"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            doctor = self._require_doctor(db, doctor_id)
            token = self._credential_for(doctor, credential)
            lock_doctor(db, doctor_id)
            result = self.calendar_sync.import_events(db, doctor, token, date_range)
            self._audit_batch(db, actor_id, "import", doctor_id, date_range, result.to_dict())
            return result

    def export_to_external_calendar(
        self,
        doctor_id: int,
        start_date: DateInput = None,
        end_date: DateInput = None,
        actor_id: Optional[int] = None,
        credential: Optional[str] = None,
    ) -> ExportResult:
        """
        Export every untagged slot in range (default today..+30 days) as a calendar event.

        Failures on individual slots are reported in the result and do not abort the batch.
        """
        date_range = self._resolve_range(start_date, end_date, self.config.import_range_days)
        with translate_errors("export to external calendar"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            doctor = self._require_doctor(db, doctor_id)
            token = self._credential_for(doctor, credential)
            result = self.calendar_sync.export_slots(db, doctor, token, date_range)
            self._audit_batch(db, actor_id, "export", doctor_id, date_range, result.to_dict())
            return result

    def sync_with_external_calendar(
        self,
        doctor_id: int,
        start_date: DateInput = None,
        end_date: DateInput = None,
        actor_id: Optional[int] = None,
        credential: Optional[str] = None,
    ) -> SyncResult:
        """
        Two-way sync (default range today..+7 days) in one transaction.

        See ``CalendarSyncService.sync`` for the create-only reconciliation rules.
        """
        date_range = self._resolve_range(start_date, end_date, self.config.sync_range_days)
        with translate_errors("sync with external calendar"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            doctor = self._require_doctor(db, doctor_id)
            token = self._credential_for(doctor, credential)
            lock_doctor(db, doctor_id)
            result = self.calendar_sync.sync(db, doctor, token, date_range)
            self._audit_batch(db, actor_id, "sync", doctor_id, date_range, result.to_dict())
            return result

    def _audit_batch(
        self,
        db: Session,
        actor_id: Optional[int],
        action: str,
        doctor_id: int,
        date_range: DateRange,
        result: Dict[str, Any],
    ) -> None:
        details = {key: value for key, value in result.items() if key != "details"}
        details.update({
            "doctor_id": doctor_id,
            "start_date": date_range.start_date.isoformat(),
            "end_date": date_range.end_date.isoformat(),
            "calendar": "google",
        })
        self.audit.record(db, actor_id, action, AUDIT_RESOURCE_TIMESLOT, None, details)

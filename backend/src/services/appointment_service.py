"""
Appointment lifecycle service.

Creates, updates and deletes appointments together with the slot they
occupy, enforces the status machine and fans out notifications. Also hosts
the two batch jobs run by the reminder scheduler: upcoming-visit reminders
and the no-show sweep.

Every mutation runs in one unit of work: the appointment row, the slot
status flip, the audit entry and the in-app notifications either all commit
or all roll back. Emails are registered as after-commit callbacks and can
never undo the change.

Virtual appointments get a Google Meet meeting on the doctor's calendar.
The booking commits with a generated meeting link; once committed, the
meeting is created and its Meet link replaces the generated one. Moving the
appointment moves the meeting; cancelling it, deleting it or switching it to
in-person removes the meeting. Calendar failures are logged and leave the
generated link in place.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session, sessionmaker

from core.config import SchedulingConfig
from core.constants import (
    APPOINTMENT_CANCELLED,
    APPOINTMENT_NO_SHOW,
    APPOINTMENT_SCHEDULED,
    APPOINTMENT_STATUS_TRANSITIONS,
    APPOINTMENT_STATUSES,
    APPOINTMENT_TYPES,
    AUDIT_RESOURCE_APPOINTMENT,
    DEFAULT_APPOINTMENT_TYPE,
    DEFAULT_CANCEL_REASON,
    EMAIL_TEMPLATE_CANCELLATION,
    EMAIL_TEMPLATE_CONFIRMATION,
    EMAIL_TEMPLATE_REMINDER,
    SLOT_STATUS_AVAILABLE,
    SLOT_STATUS_BOOKED,
)
from core.database import SessionLocal, UnitOfWork, unit_of_work
from core.exceptions import ConflictError, ExternalServiceError, NotFoundError, ValidationError, translate_errors
from models import Appointment, AppointmentReminder, Assessment, TimeSlot, User
from services.audit_service import AuditService
from services.directory_service import DirectoryService
from services.google_calendar_service import GoogleCalendarService
from services.notification_service import NotificationService
from shared_types.availability import MeetingSpec
from shared_types.collaborators import AuditSink, CalendarBridgeFactory, Directory, NotificationSink
from utils import appointment_queries
from utils.appointment_queries import appointment_to_dict
from utils.datetime_utils import combine_date_time, format_datetime, utc_now
from utils.slot_queries import get_slot_by_id
from utils.video_link import generate_video_conference_link

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("notes", "type", "reason_for_visit", "is_virtual")
UPDATABLE_FIELDS = EDITABLE_FIELDS + ("status", "cancel_reason", "time_slot_id")
TERMINAL_STATUSES = tuple(status for status, targets in APPOINTMENT_STATUS_TRANSITIONS.items() if not targets)

# event -> (title, patient message, doctor message)
NOTIFICATION_TEMPLATES: Dict[str, tuple[str, str, str]] = {
    "created": (
        "New Appointment Scheduled",
        "Your appointment with {doctor_name} on {when} has been scheduled.",
        "New appointment with {patient_name} on {when}.",
    ),
    "cancelled": (
        "Appointment Cancelled",
        "Your appointment with {doctor_name} on {when} has been cancelled.",
        "Appointment with {patient_name} on {when} has been cancelled.",
    ),
    "checked-in": (
        "Patient Checked In",
        "You have checked in for your appointment with {doctor_name} on {when}.",
        "{patient_name} has checked in for the appointment on {when}.",
    ),
    "in-progress": (
        "Appointment In Progress",
        "Your appointment with {doctor_name} is now in progress.",
        "Your appointment with {patient_name} is now in progress.",
    ),
    "completed": (
        "Appointment Completed",
        "Your appointment with {doctor_name} on {day} has been completed.",
        "Your appointment with {patient_name} on {day} has been completed.",
    ),
    "no-show": (
        "Missed Appointment",
        "You missed your appointment with {doctor_name} on {when}.",
        "{patient_name} did not show up for the appointment on {when}.",
    ),
}
EMAIL_TEMPLATES = {
    "created": EMAIL_TEMPLATE_CONFIRMATION,
    "cancelled": EMAIL_TEMPLATE_CANCELLATION,
}
REMINDER_TITLE = "Upcoming Appointment Reminder"


def is_valid_transition(current: str, target: str) -> bool:
    """Check a status change against the appointment status machine."""
    return target in APPOINTMENT_STATUS_TRANSITIONS.get(current, ())


class AppointmentService:
    """
    Service for appointment lifecycle operations.

    Attributes:
        config: Scheduling configuration
        session_factory: Factory for new sessions (one per operation)
        directory: Doctor/patient/user lookup
        audit: Audit sink
        notifications: In-app notification and email sink
        calendar_bridge_factory: Builds the calendar client holding video meetings
        clock: Returns the current aware datetime in the clinic timezone
    """

    def __init__(
        self,
        config: SchedulingConfig,
        session_factory: Union[sessionmaker, Callable[[], Session]] = SessionLocal,
        directory: Optional[Directory] = None,
        audit: Optional[AuditSink] = None,
        notifications: Optional[NotificationSink] = None,
        calendar_bridge_factory: Optional[CalendarBridgeFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.session_factory = session_factory
        self.directory = directory or DirectoryService()
        self.audit = audit or AuditService()
        self.notifications = notifications or NotificationService()
        self.calendar_bridge_factory = calendar_bridge_factory or (
            lambda: GoogleCalendarService(calendar_id=config.calendar_id)
        )
        self.clock = clock or config.now

    # ===== Helpers =====

    def _today(self) -> date:
        return self.clock().date()

    def _starts_at(self, appointment: Appointment) -> datetime:
        return combine_date_time(appointment.date, appointment.start_time, self.config.tzinfo)

    @staticmethod
    def _require_appointment(db: Session, appointment_id: int, for_update: bool = False) -> Appointment:
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        appointment = query.first()
        if appointment is None:
            raise NotFoundError("Appointment not found", details={"appointment_id": appointment_id})
        return appointment

    @staticmethod
    def _reserve_slot(db: Session, slot: TimeSlot) -> None:
        """Flip a slot to booked. Runs after the appointment row is written."""
        slot.status = SLOT_STATUS_BOOKED
        db.flush()

    @staticmethod
    def _release_slot(db: Session, slot_id: Optional[int]) -> None:
        if slot_id is None:
            return
        slot = get_slot_by_id(db, slot_id, for_update=True)
        if slot is not None and slot.status == SLOT_STATUS_BOOKED:
            slot.status = SLOT_STATUS_AVAILABLE
            db.flush()

    def _participants(self, db: Session, appointment: Appointment) -> tuple[Optional[User], Optional[User]]:
        patient = self.directory.find_patient_by_id(db, appointment.patient_id)
        doctor = self.directory.find_doctor_by_id(db, appointment.doctor_id)
        patient_user = self.directory.find_user_by_id(db, patient.user_id) if patient else None
        doctor_user = self.directory.find_user_by_id(db, doctor.user_id) if doctor else None
        return patient_user, doctor_user

    def _notify(self, uow: UnitOfWork, appointment: Appointment, event: str) -> None:
        """
        Create in-app notifications for both parties and queue the email, if any.

        In-app rows join the current transaction. The email (``created`` and
        ``cancelled`` only) is sent after commit; its failure is logged by the
        notification sink and never propagates.
        """
        db = uow.session
        patient_user, doctor_user = self._participants(db, appointment)
        if patient_user is None or doctor_user is None:
            logger.error(f"Failed to find users for appointment {appointment.id} notifications")
            return

        title, patient_template, doctor_template = NOTIFICATION_TEMPLATES.get(
            event,
            (
                "Appointment Update",
                "Your appointment with {doctor_name} on {when} has been updated.",
                "Your appointment with {patient_name} on {when} has been updated.",
            ),
        )
        values = {
            "doctor_name": f"Dr. {doctor_user.last_name}",
            "patient_name": patient_user.full_name,
            "when": format_datetime(self._starts_at(appointment)),
            "day": appointment.date.isoformat(),
        }
        related = (AUDIT_RESOURCE_APPOINTMENT, appointment.id)
        self.notifications.create_in_app(db, patient_user.id, title, patient_template.format(**values), related)
        self.notifications.create_in_app(db, doctor_user.id, title, doctor_template.format(**values), related)

        template_name = EMAIL_TEMPLATES.get(event)
        if template_name:
            # Payload is built at send time so it carries a Meet link attached after commit
            uow.after_commit(lambda: self.notifications.send_email(
                template_name, self._email_payload(appointment, patient_user, doctor_user)
            ))

    @staticmethod
    def _email_payload(appointment: Appointment, patient_user: User, doctor_user: User) -> Dict[str, Any]:
        return {
            "to": patient_user.email,
            "appointment": appointment_to_dict(appointment),
            "patient": DirectoryService.get_contact(patient_user),
            "doctor": DirectoryService.get_contact(doctor_user),
        }

    # ===== Video meetings =====

    def _meeting_credential(self, db: Session, appointment: Appointment) -> Optional[str]:
        doctor = self.directory.find_doctor_by_id(db, appointment.doctor_id)
        return doctor.google_refresh_token if doctor is not None else None

    def _meeting_spec(self, appointment: Appointment, patient_user: User, doctor_user: User) -> MeetingSpec:
        return MeetingSpec(
            summary=f"Appointment: {patient_user.full_name} with Dr. {doctor_user.full_name}",
            description=appointment.reason_for_visit or "Medical appointment",
            start=self._starts_at(appointment),
            end=combine_date_time(appointment.date, appointment.end_time, self.config.tzinfo),
            attendees=[email for email in (doctor_user.email, patient_user.email) if email],
        )

    def _queue_meeting_upsert(self, uow: UnitOfWork, appointment: Appointment) -> None:
        """After commit, create the appointment's meeting or move the existing one."""
        db = uow.session
        credential = self._meeting_credential(db, appointment)
        if not credential:
            logger.info(f"Doctor {appointment.doctor_id} has no calendar connected; keeping generated video link")
            return
        patient_user, doctor_user = self._participants(db, appointment)
        if patient_user is None or doctor_user is None:
            return
        meeting_spec = self._meeting_spec(appointment, patient_user, doctor_user)
        event_id = appointment.meeting_event_id
        uow.after_commit(lambda: self._upsert_meeting(appointment, credential, meeting_spec, event_id))

    def _queue_meeting_removal(self, uow: UnitOfWork, appointment: Appointment) -> bool:
        """
        Detach the appointment's meeting and delete it after commit.

        Returns:
            True if the appointment had a meeting
        """
        event_id = appointment.meeting_event_id
        if not event_id:
            return False
        appointment.meeting_event_id = None
        credential = self._meeting_credential(uow.session, appointment)
        if not credential:
            logger.warning(f"Cannot delete meeting {event_id}: doctor {appointment.doctor_id} has no calendar connected")
            return True
        uow.after_commit(lambda: self._delete_meeting(credential, event_id))
        return True

    def _upsert_meeting(
        self, appointment: Appointment, credential: str, meeting_spec: MeetingSpec, event_id: Optional[str]
    ) -> None:
        bridge = self.calendar_bridge_factory()
        try:
            if event_id:
                meeting = bridge.update_meeting(credential, event_id, meeting_spec)
            else:
                meeting = bridge.create_meeting(credential, meeting_spec)
        except ExternalServiceError as e:
            logger.warning(f"Google Meet sync failed for appointment {appointment.id}, keeping current link: {e.message}")
            return

        with unit_of_work(self.session_factory) as uow:
            stored = self._require_appointment(uow.session, appointment.id, for_update=True)
            if stored.status == APPOINTMENT_CANCELLED or not stored.is_virtual:
                # Changed while the meeting was being created
                uow.after_commit(lambda: self._delete_meeting(credential, meeting.event_id))
                return
            stored.video_conference_link = meeting.link
            stored.meeting_event_id = meeting.event_id
        appointment.video_conference_link = meeting.link
        appointment.meeting_event_id = meeting.event_id
        logger.info(f"Attached Google Meet {meeting.event_id} to appointment {appointment.id}")

    def _delete_meeting(self, credential: str, event_id: str) -> None:
        try:
            self.calendar_bridge_factory().delete_meeting(credential, event_id)
        except ExternalServiceError as e:
            logger.warning(f"Failed to delete Google Meet event {event_id}: {e.message}")

    # ===== Queries =====

    def get_appointment(self, appointment_id: int) -> Appointment:
        with translate_errors("get appointment"), unit_of_work(self.session_factory) as uow:
            return self._require_appointment(uow.session, appointment_id)

    def list_appointments(self, page: int = 1, limit: int = 10, **filters: Any) -> Dict[str, Any]:
        """Filtered, paginated listing; see ``utils.appointment_queries.list_appointments``."""
        with translate_errors("list appointments"), unit_of_work(self.session_factory) as uow:
            return appointment_queries.list_appointments(uow.session, page=page, limit=limit, **filters)

    def get_patient_upcoming_appointments(self, patient_id: int) -> List[Dict[str, Any]]:
        with translate_errors("list upcoming appointments"), unit_of_work(self.session_factory) as uow:
            if self.directory.find_patient_by_id(uow.session, patient_id) is None:
                raise NotFoundError("Patient not found", details={"patient_id": patient_id})
            return appointment_queries.get_patient_upcoming_appointments(uow.session, patient_id, self._today())

    def get_doctor_upcoming_appointments(self, doctor_id: int) -> List[Dict[str, Any]]:
        with translate_errors("list upcoming appointments"), unit_of_work(self.session_factory) as uow:
            if self.directory.find_doctor_by_id(uow.session, doctor_id) is None:
                raise NotFoundError("Doctor not found", details={"doctor_id": doctor_id})
            return appointment_queries.get_doctor_upcoming_appointments(uow.session, doctor_id, self._today())

    def get_today_appointments(self, doctor_id: Optional[int] = None) -> List[Dict[str, Any]]:
        with translate_errors("list today's appointments"), unit_of_work(self.session_factory) as uow:
            return appointment_queries.get_today_appointments(uow.session, self._today(), doctor_id=doctor_id)

    # ===== Mutations =====

    def create_appointment(
        self,
        patient_id: int,
        doctor_id: int,
        time_slot_id: int,
        attrs: Optional[Dict[str, Any]] = None,
        actor_id: Optional[int] = None,
    ) -> Appointment:
        """
        Book an available slot.

        Args:
            patient_id: Patient booking the visit
            doctor_id: Doctor owning the slot
            time_slot_id: Slot to occupy
            attrs: Optional ``type``, ``reason_for_visit``, ``notes``, ``is_virtual``
                (default True) and ``preliminary_assessment`` (dict of assessment fields)
            actor_id: User performing the booking

        Returns:
            The created Appointment

        Raises:
            ValidationError: Missing ids or invalid attributes, or slot belongs to another doctor
            NotFoundError: Patient, doctor or slot does not exist
            ConflictError: Slot is not available
        """
        attrs = dict(attrs or {})
        if not patient_id or not doctor_id or not time_slot_id:
            raise ValidationError("Patient, doctor and time slot are required")
        appointment_type = attrs.get("type") or DEFAULT_APPOINTMENT_TYPE
        if appointment_type not in APPOINTMENT_TYPES:
            raise ValidationError(f"Invalid appointment type: {appointment_type}")
        is_virtual = bool(attrs.get("is_virtual", True))
        assessment_data = attrs.get("preliminary_assessment")
        if assessment_data is not None and not isinstance(assessment_data, dict):
            raise ValidationError("preliminary_assessment must be an object")

        with translate_errors("create appointment"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            if self.directory.find_patient_by_id(db, patient_id) is None:
                raise NotFoundError("Patient not found", details={"patient_id": patient_id})
            if self.directory.find_doctor_by_id(db, doctor_id) is None:
                raise NotFoundError("Doctor not found", details={"doctor_id": doctor_id})
            slot = get_slot_by_id(db, time_slot_id, for_update=True)
            if slot is None:
                raise NotFoundError("Time slot not found", details={"slot_id": time_slot_id})
            if slot.doctor_id != doctor_id:
                raise ValidationError("Time slot does not belong to this doctor")
            if slot.status != SLOT_STATUS_AVAILABLE:
                raise ConflictError(
                    f"Time slot is not available (status: {slot.status})",
                    details={"slot": slot.to_dict()},
                )

            assessment = None
            if assessment_data is not None:
                assessment = Assessment(
                    patient_id=patient_id,
                    symptoms=assessment_data.get("symptoms", []),
                    generated_questions=assessment_data.get("generated_questions", []),
                    responses=assessment_data.get("responses", []),
                    ai_generated_report=assessment_data.get("ai_generated_report"),
                    severity=assessment_data.get("severity", "low"),
                    status="completed",
                    completion_date=utc_now(),
                )
                db.add(assessment)
                db.flush()

            appointment = Appointment(
                patient_id=patient_id,
                doctor_id=doctor_id,
                time_slot_id=slot.id,
                date=slot.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                type=appointment_type,
                status=APPOINTMENT_SCHEDULED,
                reason_for_visit=attrs.get("reason_for_visit"),
                notes=attrs.get("notes"),
                preliminary_assessment_id=assessment.id if assessment else None,
                is_virtual=is_virtual,
                video_conference_link=(
                    generate_video_conference_link(self.config.video_conference_base_url) if is_virtual else None
                ),
                created_by=actor_id,
            )
            db.add(appointment)
            db.flush()
            if assessment is not None:
                assessment.appointment_id = appointment.id

            self._reserve_slot(db, slot)

            self.audit.record(
                db, actor_id, "create", AUDIT_RESOURCE_APPOINTMENT, appointment.id,
                {
                    "patient_id": patient_id,
                    "doctor_id": doctor_id,
                    "time_slot_id": slot.id,
                    "date": slot.date.isoformat(),
                    "start_time": slot.start_time,
                },
            )
            if is_virtual:
                self._queue_meeting_upsert(uow, appointment)
            self._notify(uow, appointment, "created")
            logger.info(
                f"Created appointment {appointment.id} for patient {patient_id} with doctor {doctor_id} "
                f"on {slot.date} {slot.start_time}"
            )
            return appointment

    def update_appointment(
        self,
        appointment_id: int,
        patch: Dict[str, Any],
        actor_id: Optional[int] = None,
    ) -> Appointment:
        """
        Update status, slot or editable fields of an appointment.

        - ``status`` must be a legal transition; cancelling stamps ``cancelled_at``
          and ``cancel_reason`` and releases the slot.
        - ``time_slot_id`` moves the appointment: the new slot must be available and
          belong to the same doctor; the old slot is released and the new one booked.
        - ``is_virtual`` toggles keep the video link present only for virtual visits.
        - The Google Meet meeting follows the appointment: moved with it, created
          when it becomes virtual, removed when it is cancelled or goes in-person.
        - Notifications go out only when the status value actually changed.

        Raises:
            ValidationError: Unknown fields or invalid values
            NotFoundError: Appointment or new slot does not exist
            ConflictError: Illegal transition, unavailable slot or moving a closed appointment
        """
        unknown = set(patch) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown appointment fields: {', '.join(sorted(unknown))}")
        new_status = patch.get("status")
        if new_status is not None and new_status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Invalid appointment status: {new_status}")
        if patch.get("type") is not None and patch["type"] not in APPOINTMENT_TYPES:
            raise ValidationError(f"Invalid appointment type: {patch['type']}")

        with translate_errors("update appointment"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            appointment = self._require_appointment(db, appointment_id, for_update=True)
            previous_status = appointment.status
            updated_fields: List[str] = []

            status_changed = new_status is not None and new_status != previous_status
            if status_changed and not is_valid_transition(previous_status, new_status):
                raise ConflictError(
                    f"Invalid status transition from {previous_status} to {new_status}",
                    details={"current_status": previous_status, "requested_status": new_status},
                )

            new_slot_id = patch.get("time_slot_id")
            if new_slot_id is not None and new_slot_id != appointment.time_slot_id:
                resulting_status = new_status or previous_status
                if resulting_status in TERMINAL_STATUSES:
                    raise ConflictError(f"Cannot move a {resulting_status} appointment to another slot")
                new_slot = get_slot_by_id(db, new_slot_id, for_update=True)
                if new_slot is None:
                    raise NotFoundError("New time slot not found", details={"slot_id": new_slot_id})
                if new_slot.doctor_id != appointment.doctor_id:
                    raise ValidationError("New time slot does not belong to the appointment's doctor")
                if new_slot.status != SLOT_STATUS_AVAILABLE:
                    raise ConflictError(
                        f"New time slot is not available (status: {new_slot.status})",
                        details={"slot": new_slot.to_dict()},
                    )
                self._release_slot(db, appointment.time_slot_id)
                appointment.time_slot_id = new_slot.id
                appointment.date = new_slot.date
                appointment.start_time = new_slot.start_time
                appointment.end_time = new_slot.end_time
                db.flush()
                self._reserve_slot(db, new_slot)
                updated_fields += ["time_slot_id", "date", "start_time", "end_time"]

            if status_changed:
                appointment.status = new_status
                updated_fields.append("status")
                if new_status == APPOINTMENT_CANCELLED:
                    appointment.cancelled_at = utc_now()
                    appointment.cancel_reason = patch.get("cancel_reason") or DEFAULT_CANCEL_REASON
                    self._release_slot(db, appointment.time_slot_id)
                    updated_fields += ["cancelled_at", "cancel_reason"]

            for field in EDITABLE_FIELDS:
                if field in patch and patch[field] is not None:
                    setattr(appointment, field, patch[field])
                    updated_fields.append(field)
            link_generated = False
            if appointment.is_virtual and not appointment.video_conference_link:
                appointment.video_conference_link = generate_video_conference_link(
                    self.config.video_conference_base_url
                )
                link_generated = True
                updated_fields.append("video_conference_link")
            elif not appointment.is_virtual and appointment.video_conference_link:
                appointment.video_conference_link = None
                updated_fields.append("video_conference_link")

            if appointment.status == APPOINTMENT_CANCELLED or not appointment.is_virtual:
                if self._queue_meeting_removal(uow, appointment):
                    updated_fields.append("meeting_event_id")
            elif link_generated or "time_slot_id" in updated_fields:
                self._queue_meeting_upsert(uow, appointment)

            db.flush()
            self.audit.record(
                db, actor_id, "update", AUDIT_RESOURCE_APPOINTMENT, appointment.id,
                {
                    "updated_fields": updated_fields,
                    "previous_status": previous_status,
                    "new_status": appointment.status,
                },
            )
            if status_changed:
                self._notify(uow, appointment, appointment.status)
                logger.info(f"Appointment {appointment.id} status {previous_status} -> {appointment.status}")
            return appointment

    def delete_appointment(self, appointment_id: int, actor_id: Optional[int] = None) -> None:
        """
        Delete an appointment, release its slot and remove its Google Meet meeting.

        Raises:
            NotFoundError: If the appointment does not exist
        """
        with translate_errors("delete appointment"), unit_of_work(self.session_factory) as uow:
            db = uow.session
            appointment = self._require_appointment(db, appointment_id, for_update=True)
            details = {
                "patient_id": appointment.patient_id,
                "doctor_id": appointment.doctor_id,
                "date": appointment.date.isoformat(),
                "status": appointment.status,
            }
            if appointment.status != APPOINTMENT_CANCELLED:
                self._release_slot(db, appointment.time_slot_id)
            self._queue_meeting_removal(uow, appointment)
            if appointment.preliminary_assessment_id is not None:
                # Break the assessment back-reference before the row goes away
                assessment = db.get(Assessment, appointment.preliminary_assessment_id)
                if assessment is not None:
                    assessment.appointment_id = None
                    db.flush()
            db.delete(appointment)
            db.flush()
            self.audit.record(db, actor_id, "delete", AUDIT_RESOURCE_APPOINTMENT, appointment_id, details)
            logger.info(f"Deleted appointment {appointment_id}")

    # ===== Batch jobs =====

    def schedule_reminders(self) -> int:
        """
        Send reminders for scheduled appointments starting within the lead time.

        Only appointments with no reminder entries are picked. Each one gets an
        in-app notification and its reminder log entries in its own short
        transaction; one failure does not affect the others. The email goes out
        after that commit, and its log entry moves from ``pending`` to ``sent``
        or ``failed``.

        Returns:
            Number of appointments reminded
        """
        now = self.clock()
        window_end = now + timedelta(hours=self.config.reminder_lead_hours)

        with unit_of_work(self.session_factory) as uow:
            candidates = (
                uow.session.query(Appointment.id, Appointment.date, Appointment.start_time)
                .filter(
                    Appointment.status == APPOINTMENT_SCHEDULED,
                    Appointment.date >= now.date(),
                    Appointment.date <= window_end.date(),
                    ~Appointment.reminders_sent.any(),
                )
                .order_by(Appointment.date, Appointment.start_time)
                .all()
            )
        due = [
            row.id for row in candidates
            if now <= combine_date_time(row.date, row.start_time, self.config.tzinfo) <= window_end
        ]
        if due:
            logger.info(f"Found {len(due)} appointment(s) needing reminders")

        sent = 0
        for appointment_id in due:
            try:
                self._send_reminder(appointment_id)
                sent += 1
            except Exception as e:
                logger.error(f"Failed to send reminder for appointment {appointment_id}: {e}", exc_info=True)
        return sent

    def _send_reminder(self, appointment_id: int) -> None:
        with unit_of_work(self.session_factory) as uow:
            db = uow.session
            appointment = self._require_appointment(db, appointment_id, for_update=True)
            if appointment.status != APPOINTMENT_SCHEDULED or appointment.reminders_sent:
                return
            patient_user, doctor_user = self._participants(db, appointment)
            if patient_user is None or doctor_user is None:
                raise NotFoundError(f"Participants of appointment {appointment_id} not found")

            self.notifications.create_in_app(
                db,
                patient_user.id,
                REMINDER_TITLE,
                f"You have an appointment with Dr. {doctor_user.last_name} on "
                f"{format_datetime(self._starts_at(appointment))}.",
                (AUDIT_RESOURCE_APPOINTMENT, appointment.id),
                notification_type="reminder",
            )
            sent_at = utc_now()
            email_entry = AppointmentReminder(channel="email", sent_at=sent_at, status="pending")
            appointment.reminders_sent.append(AppointmentReminder(channel="in_app", sent_at=sent_at, status="sent"))
            appointment.reminders_sent.append(email_entry)
            db.flush()
            payload = self._email_payload(appointment, patient_user, doctor_user)
            reminder_id = email_entry.id
            uow.after_commit(lambda: self._deliver_reminder_email(appointment_id, reminder_id, payload))

    def _deliver_reminder_email(self, appointment_id: int, reminder_id: int, payload: Dict[str, Any]) -> None:
        """Send a reminder email once its log entry is committed, then record the outcome."""
        delivered = self.notifications.send_email(EMAIL_TEMPLATE_REMINDER, payload)
        with unit_of_work(self.session_factory) as uow:
            entry = uow.session.get(AppointmentReminder, reminder_id)
            if entry is not None:
                entry.status = "sent" if delivered else "failed"
                entry.sent_at = utc_now()
        logger.info(f"Sent reminder for appointment {appointment_id} (email {'sent' if delivered else 'failed'})")

    def handle_no_shows(self) -> int:
        """
        Mark scheduled appointments as no-show once their start is past the grace period.

        Each transition goes through ``update_appointment`` (system actor), so the
        usual audit and notifications apply. Failures are isolated per appointment.

        Returns:
            Number of appointments marked no-show
        """
        now = self.clock()
        cutoff = now - timedelta(minutes=self.config.no_show_grace_minutes)

        with unit_of_work(self.session_factory) as uow:
            candidates = (
                uow.session.query(Appointment.id, Appointment.date, Appointment.start_time)
                .filter(Appointment.status == APPOINTMENT_SCHEDULED, Appointment.date <= cutoff.date())
                .all()
            )
        overdue = [
            row.id for row in candidates
            if combine_date_time(row.date, row.start_time, self.config.tzinfo) < cutoff
        ]

        marked = 0
        for appointment_id in overdue:
            try:
                self.update_appointment(appointment_id, {"status": APPOINTMENT_NO_SHOW}, actor_id=None)
                marked += 1
            except Exception as e:
                logger.error(f"Failed to mark appointment {appointment_id} as no-show: {e}", exc_info=True)
        if marked:
            logger.info(f"Marked {marked} appointment(s) as no-show")
        return marked

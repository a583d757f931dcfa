"""
Appointment model representing a booked visit between a patient and a doctor.

An appointment occupies exactly one time slot. Its date and times are copied
from the slot at booking time (and again when it is moved to another slot),
so listing appointments never needs to join through the slot.
"""

from datetime import date as date_type, datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, String, Text, TIMESTAMP, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import APPOINTMENT_SCHEDULED, DEFAULT_APPOINTMENT_TYPE
from core.database import Base


class Appointment(Base):
    """
    Appointment entity following the status machine::

        scheduled    -> checked-in, cancelled, no-show
        checked-in   -> in-progress, cancelled
        in-progress  -> completed, cancelled

    ``completed``, ``cancelled`` and ``no-show`` are terminal.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the appointment."""

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"))
    """Reference to the patient who booked this appointment."""

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id"))
    """Reference to the doctor seeing the patient."""

    time_slot_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("time_slots.id", ondelete="SET NULL"), nullable=True
    )
    """
    Reference to the slot this appointment occupies.

    At most one non-cancelled appointment may reference a slot; the partial
    unique index below backs the slot's ``booked`` status. A released slot
    may be deleted later, which leaves closed appointments with NULL here.
    """

    date: Mapped[date_type] = mapped_column(Date)
    """Copied from the slot at booking time."""

    start_time: Mapped[str] = mapped_column(String(5))
    """Copied from the slot at booking time, ``HH:MM``."""

    end_time: Mapped[str] = mapped_column(String(5))
    """Copied from the slot at booking time, ``HH:MM``."""

    type: Mapped[str] = mapped_column(String(20), default=DEFAULT_APPOINTMENT_TYPE, nullable=False)
    """Visit type. Valid values: 'initial', 'follow-up', 'virtual', 'in-person'."""

    status: Mapped[str] = mapped_column(String(20), default=APPOINTMENT_SCHEDULED, nullable=False)
    """Current status. See the class docstring for legal transitions."""

    reason_for_visit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    preliminary_assessment_id: Mapped[Optional[int]] = mapped_column(ForeignKey("assessments.id"), nullable=True)
    """Optional pre-visit assessment filled in while booking."""

    is_virtual: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """True for telehealth visits. video_conference_link is set if and only if this is True."""

    video_conference_link: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """
    Join link. The Google Meet link once the doctor's calendar holds the meeting;
    a generated meeting code under the configured base URL until then, or when
    the doctor has no calendar connected.
    """

    meeting_event_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Google Calendar event carrying the Meet conference. NULL when no meeting was created."""

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp when the appointment was cancelled (if applicable)."""

    cancel_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    """User who booked the appointment. NULL when created by the system."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor")
    time_slot = relationship("TimeSlot")
    preliminary_assessment = relationship("Assessment", foreign_keys=[preliminary_assessment_id])

    reminders_sent = relationship(
        "AppointmentReminder",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentReminder.sent_at",
    )
    """Ordered log of reminder dispatches."""

    __table_args__ = (
        Index('idx_appointments_patient', 'patient_id'),
        Index('idx_appointments_doctor_date', 'doctor_id', 'date'),
        # Reminder and no-show sweeps filter by status and date
        Index('idx_appointments_status_date', 'status', 'date'),
        Index(
            'uq_appointments_active_slot',
            'time_slot_id',
            unique=True,
            postgresql_where=text("status != 'cancelled'"),
            sqlite_where=text("status != 'cancelled'"),
        ),
        CheckConstraint(
            "status IN ('scheduled', 'checked-in', 'in-progress', 'completed', 'cancelled', 'no-show')",
            name='check_appointment_status',
        ),
        CheckConstraint(
            "type IN ('initial', 'follow-up', 'virtual', 'in-person')",
            name='check_appointment_type',
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, "
            f"date={self.date}, {self.start_time}-{self.end_time}, status='{self.status}')>"
        )

"""
TimeSlot model representing a bookable interval on a doctor's calendar.

Slots are the single source of truth for booking state. A slot is created
``available``, becomes ``booked`` when an appointment takes it and goes back
to ``available`` when that appointment is cancelled, moved or deleted.
Once booked, its date and times can no longer change.
"""

from datetime import date as date_type, datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import SLOT_STATUS_AVAILABLE
from core.database import Base


class TimeSlot(Base):
    """
    One interval ``[start_time, end_time)`` on a doctor's day.

    For a given doctor and date no two slots overlap. The application checks
    this inside the writing transaction; the unique constraint on
    ``(doctor_id, date, start_time)`` makes two racing writers fail loudly
    instead of silently double-booking.
    """

    __tablename__ = "time_slots"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the slot."""

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id"))
    """Reference to the doctor who owns this slot."""

    date: Mapped[date_type] = mapped_column(Date)
    """Calendar day of the slot in the clinic timezone."""

    start_time: Mapped[str] = mapped_column(String(5))
    """Start of the slot, ``HH:MM`` 24h."""

    end_time: Mapped[str] = mapped_column(String(5))
    """End of the slot, ``HH:MM`` 24h, same day, strictly after start_time."""

    status: Mapped[str] = mapped_column(String(20), default=SLOT_STATUS_AVAILABLE, nullable=False)
    """Booking state. Valid values: 'available', 'booked', 'blocked'."""

    external_event_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """
    Google Calendar event id this slot is mapped to.

    Set when the slot was imported from or exported to the doctor's calendar.
    Sync uses the presence of this tag to decide the slot is already reconciled.
    """

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    doctor = relationship("Doctor", back_populates="time_slots")
    """Relationship to the owning Doctor."""

    __table_args__ = (
        UniqueConstraint('doctor_id', 'date', 'start_time', name='uq_time_slots_doctor_date_start'),
        CheckConstraint("status IN ('available', 'booked', 'blocked')", name='check_time_slot_status'),
        Index('idx_time_slots_doctor_date', 'doctor_id', 'date'),
        Index('idx_time_slots_doctor_status', 'doctor_id', 'status'),
        Index('idx_time_slots_external_event', 'external_event_id'),
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "external_event_id": self.external_event_id,
        }

    def __repr__(self) -> str:
        return (
            f"<TimeSlot(id={self.id}, doctor_id={self.doctor_id}, date={self.date}, "
            f"{self.start_time}-{self.end_time}, status='{self.status}')>"
        )

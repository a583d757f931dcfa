"""
Doctor profile model.

A doctor owns time slots and appointments. The weekly schedule and vacation
days drive slot generation; the stored Google refresh token is the credential
handed to the external calendar bridge.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Doctor(Base):
    """Doctor entity linked one-to-one to a user account."""

    __tablename__ = "doctors"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the doctor."""

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    """Reference to the user account of this doctor."""

    specialization: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Medical specialization shown to patients."""

    appointment_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """
    Slot length in minutes used when generating slots from the weekly schedule.

    NULL means the clinic default (``SchedulingConfig.default_slot_duration_minutes``).
    """

    google_refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """
    OAuth refresh token for the doctor's Google Calendar.

    NULL if the doctor never connected a calendar; import/export/sync require it.
    """

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    user = relationship("User", back_populates="doctor_profile")
    """Relationship to the User account."""

    schedules = relationship(
        "DoctorSchedule",
        back_populates="doctor",
        cascade="all, delete-orphan",
        order_by="DoctorSchedule.day_of_week",
    )
    """Weekly recurring availability windows."""

    vacation_days = relationship("DoctorVacationDay", back_populates="doctor", cascade="all, delete-orphan")
    """Dates the doctor is (or explicitly is not) away."""

    time_slots = relationship("TimeSlot", back_populates="doctor")

    __table_args__ = (
        UniqueConstraint('user_id', name='uq_doctors_user'),
    )

    def __repr__(self) -> str:
        return f"<Doctor(id={self.id}, user_id={self.user_id})>"

"""
Patient model representing individuals who book appointments.

Each patient is linked one-to-one to a user account, which is where
notifications and emails are addressed.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, ForeignKey, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Patient(Base):
    """Patient entity linked to a user account."""

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the patient."""

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    """Reference to the user account of this patient."""

    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    """Optional birthday of the patient (date only, no time)."""

    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    """Optional gender. Valid values: 'male', 'female', 'other'."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    user = relationship("User", back_populates="patient_profile")
    """Relationship to the User account."""

    appointments = relationship("Appointment", back_populates="patient")
    """Relationship to all Appointment entities booked by this patient."""

    __table_args__ = (
        UniqueConstraint('user_id', name='uq_patients_user'),
    )

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, user_id={self.user_id})>"

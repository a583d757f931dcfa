"""
Preliminary assessment model.

An optional questionnaire the patient completes while booking. It is
persisted in the same transaction as the appointment it belongs to.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import ForeignKey, JSON, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class Assessment(Base):
    __tablename__ = "assessments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"))
    """Reference to the patient who completed the assessment."""

    appointment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("appointments.id", use_alter=True, name="fk_assessments_appointment"),
        nullable=True,
    )
    """Back-reference to the appointment, set once the appointment row exists."""

    symptoms: Mapped[list[Any]] = mapped_column(JSON, default=list)
    generated_questions: Mapped[list[Any]] = mapped_column(JSON, default=list)
    responses: Mapped[list[Any]] = mapped_column(JSON, default=list)
    ai_generated_report: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    severity: Mapped[str] = mapped_column(String(20), default="low")
    """Triage severity. Valid values: 'low', 'medium', 'high'."""

    status: Mapped[str] = mapped_column(String(20), default="completed")
    completion_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

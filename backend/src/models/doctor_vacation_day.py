"""Vacation day model: dates on which slot generation skips a doctor."""

from datetime import date as date_type
from typing import Optional

from sqlalchemy import Boolean, Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class DoctorVacationDay(Base):
    __tablename__ = "doctor_vacation_days"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"))
    date: Mapped[date_type] = mapped_column(Date)

    is_work_day: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    """True marks a date that was entered but is still worked; only False days are skipped."""

    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    doctor = relationship("Doctor", back_populates="vacation_days")

    __table_args__ = (
        UniqueConstraint('doctor_id', 'date', name='uq_doctor_vacation_day'),
    )

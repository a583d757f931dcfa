"""
Weekly schedule model for doctors.

Each row is one working window on a weekday. A doctor may have several
windows on the same day (e.g. morning and afternoon).
"""

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class DoctorSchedule(Base):
    """Recurring availability window for one weekday."""

    __tablename__ = "doctor_schedules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"))
    """Reference to the doctor this window belongs to."""

    day_of_week: Mapped[int] = mapped_column(Integer)
    """Day of week: 0=Sunday, 1=Monday, ..., 6=Saturday."""

    start_time: Mapped[str] = mapped_column(String(5))
    """Window start, ``HH:MM``."""

    end_time: Mapped[str] = mapped_column(String(5))
    """Window end, ``HH:MM``."""

    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """False disables the window without deleting it."""

    doctor = relationship("Doctor", back_populates="schedules")

    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_schedule_day_of_week'),
        Index('idx_doctor_schedules_doctor_day', 'doctor_id', 'day_of_week'),
    )

    def __repr__(self) -> str:
        return (
            f"<DoctorSchedule(doctor_id={self.doctor_id}, day_of_week={self.day_of_week}, "
            f"{self.start_time}-{self.end_time})>"
        )

"""Reminder dispatch log entries attached to an appointment."""

from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class AppointmentReminder(Base):
    """One reminder sent for an appointment (e.g. email at 08:00)."""

    __tablename__ = "appointment_reminders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    appointment_id: Mapped[int] = mapped_column(ForeignKey("appointments.id", ondelete="CASCADE"))
    channel: Mapped[str] = mapped_column(String(20))  # 'email', 'in_app'
    sent_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    status: Mapped[str] = mapped_column(String(20), default="sent")  # 'pending', 'sent', 'failed'

    appointment = relationship("Appointment", back_populates="reminders_sent")

    __table_args__ = (
        Index('idx_appointment_reminders_appointment', 'appointment_id'),
    )

    def to_dict(self) -> dict[str, object]:
        return {"channel": self.channel, "sent_at": self.sent_at.isoformat(), "status": self.status}

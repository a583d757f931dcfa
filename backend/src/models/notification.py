"""
In-app notification model.

Notifications are created for both parties of an appointment when it is
booked, when its status changes, and for upcoming-visit reminders.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, ForeignKey, Index, JSON, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Notification(Base):
    """Message shown in a user's notification center."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    """Recipient user."""

    type: Mapped[str] = mapped_column(String(30), default="appointment")
    """Category. Valid values: 'appointment', 'reminder', 'system'."""

    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)

    related_entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[Optional[int]] = mapped_column(nullable=True)

    channels: Mapped[list[Any]] = mapped_column(JSON, default=lambda: ["in_app"])
    delivery_status: Mapped[str] = mapped_column(String(20), default="delivered")
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index('idx_notifications_user_read', 'user_id', 'is_read'),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, title='{self.title}')>"

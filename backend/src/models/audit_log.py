"""
Audit log model.

Append-only record of who changed which slot or appointment. Rows are never
updated; ``details`` holds an operation specific JSON payload.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Index, JSON, String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    actor_id: Mapped[str] = mapped_column(String(64))
    """User id of the actor as a string, or 'system' for batch jobs."""

    action: Mapped[str] = mapped_column(String(20))
    """One of: create, update, delete, import, export, sync."""

    resource: Mapped[str] = mapped_column(String(50))
    """Resource type, e.g. 'timeslot' or 'appointment'."""

    resource_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_audit_logs_actor', 'actor_id'),
        Index('idx_audit_logs_resource', 'resource', 'resource_id'),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(actor_id='{self.actor_id}', action='{self.action}', {self.resource}:{self.resource_id})>"

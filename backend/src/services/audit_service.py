"""
Audit trail for slot and appointment changes.

Each entry is written inside a SAVEPOINT of the caller's transaction: it
commits or rolls back with the change it describes, and a failed audit
write is logged without affecting the caller's outcome.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.constants import SYSTEM_ACTOR
from models import AuditLog
from shared_types.collaborators import AuditSink

logger = logging.getLogger(__name__)


class AuditService(AuditSink):
    """SQL-backed audit sink."""

    def record(
        self,
        db: Session,
        actor_id: Optional[int],
        action: str,
        resource: str,
        resource_id: Optional[int],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Append an audit entry.

        Args:
            db: Database session of the operation being audited
            actor_id: Acting user ID, or None for system jobs
            action: create, update, delete, import, export or sync
            resource: 'timeslot' or 'appointment'
            resource_id: ID of the affected row (None for batch operations)
            details: JSON-serializable operation details
        """
        entry = AuditLog(
            actor_id=str(actor_id) if actor_id is not None else SYSTEM_ACTOR,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details or {},
        )
        try:
            with db.begin_nested():
                db.add(entry)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to record audit entry {action} {resource}:{resource_id}: {e}")

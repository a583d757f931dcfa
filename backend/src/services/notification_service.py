# pyright: reportUnknownMemberType=false, reportMissingTypeStubs=false
"""
Notification sink: in-app notifications and outbound email.

In-app notifications are rows written in the caller's transaction, so they
roll back together with the appointment change that produced them. Email is
best effort: failures are logged and reported as False, never raised.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from models import Notification
from services.email_service import EmailService
from shared_types.collaborators import NotificationSink

logger = logging.getLogger(__name__)


class NotificationService(NotificationSink):
    """Creates in-app notifications and sends emails through EmailService."""

    def __init__(self, email_service: Optional[EmailService] = None) -> None:
        self.email_service = email_service or EmailService()

    def create_in_app(
        self,
        db: Session,
        user_id: int,
        title: str,
        message: str,
        related_entity: Optional[Tuple[str, int]] = None,
        notification_type: str = "appointment",
    ) -> Notification:
        """
        Add an in-app notification to the current transaction.

        Args:
            db: Database session
            user_id: Recipient user ID
            title: Short title, e.g. "Appointment Cancelled"
            message: Body text
            related_entity: Optional ``(entity_type, entity_id)`` pair, e.g. ``("appointment", 12)``
            notification_type: 'appointment', 'reminder' or 'system'

        Returns:
            The flushed Notification row
        """
        entity_type, entity_id = related_entity if related_entity else (None, None)
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            related_entity_type=entity_type,
            related_entity_id=entity_id,
            channels=["in_app"],
            delivery_status="delivered",
        )
        db.add(notification)
        db.flush()
        logger.debug(f"Created in-app notification {notification.id} for user {user_id}: {title}")
        return notification

    def send_email(self, template_name: str, payload: Dict[str, Any]) -> bool:
        """
        Send a templated email to ``payload["to"]``.

        Returns:
            True if the email was delivered, False otherwise
        """
        to = payload.get("to")
        if not to:
            logger.warning(f"No recipient for '{template_name}' email, skipping")
            return False
        try:
            return self.email_service.send(to, template_name, payload)
        except Exception as e:
            logger.warning(f"Failed to send '{template_name}' email to {to}: {e}", exc_info=True)
            return False

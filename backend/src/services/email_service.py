"""
Outbound email for appointment events.

Renders Jinja2 templates from ``backend/templates/email`` and delivers them
over SMTP. When no SMTP host is configured (local development, tests) the
rendered message is logged and dropped.
"""

import logging
import smtplib
import ssl
from datetime import date, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import APP_NAME, EMAIL_FROM, FRONTEND_URL, SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_USER
from core.constants import (
    EMAIL_TEMPLATE_CANCELLATION,
    EMAIL_TEMPLATE_CONFIRMATION,
    EMAIL_TEMPLATE_REMINDER,
)

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent.parent / "templates"

EMAIL_SUBJECTS = {
    EMAIL_TEMPLATE_CONFIRMATION: "Appointment Confirmation - {app_name}",
    EMAIL_TEMPLATE_CANCELLATION: "Appointment Cancelled - {app_name}",
    EMAIL_TEMPLATE_REMINDER: "Appointment Reminder - {app_name}",
}


class EmailDeliveryError(Exception):
    """SMTP delivery failed."""
    pass


def _long_date(value: Any) -> str:
    """Format a date (or ISO date string) as e.g. ``Monday, January 5, 2026``."""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return f"{value.strftime('%A, %B')} {value.day}, {value.year}"
    return str(value)


class EmailService:
    """
    Renders and sends templated emails.

    Attributes:
        is_configured: True when an SMTP host is set
    """

    def __init__(
        self,
        smtp_host: str = SMTP_HOST,
        smtp_port: int = SMTP_PORT,
        smtp_user: str = SMTP_USER,
        smtp_password: str = SMTP_PASSWORD,
        from_address: str = EMAIL_FROM,
        app_name: str = APP_NAME,
        frontend_url: str = FRONTEND_URL,
        template_dir: Optional[Path] = None,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address
        self.app_name = app_name
        self.frontend_url = frontend_url
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(['html', 'xml']),
        )
        self.env.filters['long_date'] = _long_date

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host)

    def render(self, template_name: str, payload: Dict[str, Any]) -> Tuple[str, str]:
        """
        Render a template.

        Args:
            template_name: Template name without extension, e.g. ``appointment_confirmation``
            payload: Template context (appointment, patient, doctor, ...)

        Returns:
            Tuple of (subject, html)

        Raises:
            jinja2.TemplateNotFound: If the template does not exist
        """
        context: Dict[str, Any] = {
            "app_name": self.app_name,
            "frontend_url": self.frontend_url,
            "current_year": datetime.now().year,
            **payload,
        }
        template = self.env.get_template(f"email/{template_name}.html")
        html = template.render(**context)
        subject = EMAIL_SUBJECTS.get(template_name, "{app_name}").format(app_name=context["app_name"])
        return subject, html

    def send(self, to: str, template_name: str, payload: Dict[str, Any]) -> bool:
        """
        Render and deliver an email.

        Returns:
            True if delivered, False if SMTP is not configured

        Raises:
            EmailDeliveryError: If SMTP delivery fails
        """
        subject, html = self.render(template_name, payload)
        if not self.is_configured:
            logger.info(f"SMTP not configured; dropping '{template_name}' email to {to}")
            return False
        self._deliver(to, subject, html)
        logger.info(f"Sent '{template_name}' email to {to}")
        return True

    def _deliver(self, to: str, subject: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        try:
            context = ssl.create_default_context()
            if self.smtp_port == 465:
                server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30)
            else:
                server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30)
                server.starttls(context=context)
            try:
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_address, [to], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"SMTP delivery to {to} failed: {e}") from e

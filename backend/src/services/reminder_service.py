"""
Background jobs for the appointment lifecycle.

Runs the reminder sweep and the no-show sweep of ``AppointmentService``
periodically using APScheduler. The sweeps are synchronous (database and
SMTP), so each run is handed to a worker thread to keep the event loop
free. Each run opens its own sessions through the service, so no session is
held between runs.
"""

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore

from core.constants import REMINDER_SCHEDULER_MAX_INSTANCES
from services.appointment_service import AppointmentService

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """
    Schedules reminder and no-show sweeps.

    Both jobs use the intervals from the service's scheduling config and never
    overlap with themselves.
    """

    def __init__(self, appointment_service: AppointmentService):
        self.appointment_service = appointment_service
        self.scheduler = AsyncIOScheduler(timezone=appointment_service.config.tzinfo)
        self._is_started = False

    async def start_scheduler(self) -> None:
        """
        Start the background scheduler.

        This should be called during application startup. A reminder sweep runs
        immediately to catch up on reminders missed during downtime.
        """
        if self._is_started:
            logger.warning("Reminder scheduler is already started")
            return

        config = self.appointment_service.config
        self.scheduler.add_job(  # type: ignore
            self.send_pending_reminders,
            IntervalTrigger(minutes=config.reminder_interval_minutes),
            id="send_reminders",
            name="Send appointment reminders",
            max_instances=REMINDER_SCHEDULER_MAX_INSTANCES,
            replace_existing=True,
        )
        self.scheduler.add_job(  # type: ignore
            self.mark_no_shows,
            IntervalTrigger(minutes=config.no_show_interval_minutes),
            id="mark_no_shows",
            name="Mark missed appointments as no-show",
            max_instances=REMINDER_SCHEDULER_MAX_INSTANCES,
            replace_existing=True,
        )

        self.scheduler.start()
        self._is_started = True
        logger.info("Appointment reminder scheduler started")

        await self.send_pending_reminders()

    async def stop_scheduler(self) -> None:
        """Stop the background scheduler. Called during application shutdown."""
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Appointment reminder scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_started

    async def send_pending_reminders(self) -> int:
        """Run one reminder sweep. Errors are logged so the job keeps its schedule."""
        try:
            logger.info("Checking for appointments needing reminders...")
            sent = await asyncio.to_thread(self.appointment_service.schedule_reminders)
            logger.info(f"Reminder sweep finished: {sent} reminder(s) sent")
            return sent
        except Exception as e:
            logger.exception(f"Error in reminder sweep: {e}")
            return 0

    async def mark_no_shows(self) -> int:
        """Run one no-show sweep. Errors are logged so the job keeps its schedule."""
        try:
            return await asyncio.to_thread(self.appointment_service.handle_no_shows)
        except Exception as e:
            logger.exception(f"Error in no-show sweep: {e}")
            return 0


# Global scheduler instance
_reminder_scheduler: Optional[ReminderScheduler] = None


def get_reminder_scheduler(appointment_service: Optional[AppointmentService] = None) -> ReminderScheduler:
    """
    Get the global reminder scheduler, creating it on first use.

    Args:
        appointment_service: Service to run the sweeps with; defaults to the
            application's composed service
    """
    global _reminder_scheduler
    if _reminder_scheduler is None:
        if appointment_service is None:
            from api.dependencies import get_appointment_service
            appointment_service = get_appointment_service()
        _reminder_scheduler = ReminderScheduler(appointment_service)
    return _reminder_scheduler


async def start_reminder_scheduler() -> None:
    """Start the global reminder scheduler. Called during application startup."""
    await get_reminder_scheduler().start_scheduler()


async def stop_reminder_scheduler() -> None:
    """Stop the global reminder scheduler. Called during application shutdown."""
    global _reminder_scheduler
    if _reminder_scheduler:
        await _reminder_scheduler.stop_scheduler()
        _reminder_scheduler = None

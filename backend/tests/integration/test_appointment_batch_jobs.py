"""
Integration tests for the reminder sweep and the no-show sweep.

The clock is fixed at 2026-01-05 08:00 UTC with a 24 hour reminder lead
time and a 30 minute no-show grace period.
"""

from datetime import date, timedelta

import pytest

from models import AppointmentReminder, AuditLog, Notification
from tests.conftest import TODAY
from tests.factories import create_slot, reload_appointment

pytestmark = pytest.mark.integration


@pytest.fixture
def book_at(appointment_service, db_session, doctor, patient):
    def _book_at(day: date, start: str, end: str):
        slot = create_slot(db_session, doctor, day, start, end)
        db_session.commit()
        return appointment_service.create_appointment(patient.id, doctor.id, slot.id)
    return _book_at


def _reminders(db_session, appointment_id):
    db_session.expire_all()
    return {
        r.channel: r.status
        for r in db_session.query(AppointmentReminder).filter(AppointmentReminder.appointment_id == appointment_id)
    }


class TestScheduleReminders:
    def test_reminds_appointments_within_lead_time(self, appointment_service, book_at, db_session, email_service):
        this_afternoon = book_at(TODAY, "14:00", "14:30")
        tomorrow_morning = book_at(TODAY + timedelta(days=1), "07:30", "08:00")
        too_far = book_at(TODAY + timedelta(days=2), "09:00", "09:30")
        already_started = book_at(TODAY, "07:00", "07:30")
        email_service.sent.clear()

        assert appointment_service.schedule_reminders() == 2

        assert _reminders(db_session, this_afternoon.id) == {"in_app": "sent", "email": "sent"}
        assert _reminders(db_session, tomorrow_morning.id) == {"in_app": "sent", "email": "sent"}
        assert _reminders(db_session, too_far.id) == {}
        assert _reminders(db_session, already_started.id) == {}
        assert email_service.templates_sent() == ["appointment_reminder", "appointment_reminder"]

    def test_reminder_notification(self, appointment_service, book_at, db_session):
        appointment = book_at(TODAY, "14:00", "14:30")

        appointment_service.schedule_reminders()

        db_session.expire_all()
        reminder = db_session.query(Notification).filter(Notification.type == "reminder").one()
        assert reminder.title == "Upcoming Appointment Reminder"
        assert reminder.related_entity_id == appointment.id
        assert "Dr. Smith" in reminder.message
        assert "Mon, Jan 05 2026 at 2:00 PM" in reminder.message

    def test_each_appointment_is_reminded_once(self, appointment_service, book_at):
        book_at(TODAY, "14:00", "14:30")

        assert appointment_service.schedule_reminders() == 1
        assert appointment_service.schedule_reminders() == 0

    def test_failed_email_is_logged_as_failed(self, appointment_service, book_at, db_session, email_service):
        appointment = book_at(TODAY, "14:00", "14:30")
        email_service.fail = True

        assert appointment_service.schedule_reminders() == 1

        assert _reminders(db_session, appointment.id) == {"in_app": "sent", "email": "failed"}

    def test_email_goes_out_after_reminder_log_commits(
        self, appointment_service, book_at, db_session, email_service, monkeypatch
    ):
        appointment = book_at(TODAY, "14:00", "14:30")
        log_when_sending = []
        real_send = email_service.send

        def send(to, template_name, payload):
            if template_name == "appointment_reminder":
                log_when_sending.append(_reminders(db_session, appointment.id))
            return real_send(to, template_name, payload)

        monkeypatch.setattr(email_service, "send", send)

        assert appointment_service.schedule_reminders() == 1

        assert log_when_sending == [{"in_app": "sent", "email": "pending"}]
        assert _reminders(db_session, appointment.id) == {"in_app": "sent", "email": "sent"}

    def test_rolled_back_reminder_sends_no_email(
        self, appointment_service, book_at, db_session, email_service, monkeypatch
    ):
        appointment = book_at(TODAY, "14:00", "14:30")
        email_service.sent.clear()

        def failing_create_in_app(*args, **kwargs):
            raise RuntimeError("notification store down")

        monkeypatch.setattr(appointment_service.notifications, "create_in_app", failing_create_in_app)

        assert appointment_service.schedule_reminders() == 0

        assert email_service.templates_sent() == []
        assert _reminders(db_session, appointment.id) == {}

    def test_only_scheduled_appointments(self, appointment_service, book_at):
        appointment = book_at(TODAY, "14:00", "14:30")
        appointment_service.update_appointment(appointment.id, {"status": "cancelled"})

        assert appointment_service.schedule_reminders() == 0

    def test_one_failure_does_not_stop_the_sweep(self, appointment_service, book_at, db_session, monkeypatch):
        first = book_at(TODAY, "14:00", "14:30")
        second = book_at(TODAY, "15:00", "15:30")
        real_create_in_app = appointment_service.notifications.create_in_app

        def flaky(db, user_id, title, message, related_entity=None, notification_type="appointment"):
            if notification_type == "reminder" and related_entity == ("appointment", first.id):
                raise RuntimeError("notification store down")
            return real_create_in_app(db, user_id, title, message, related_entity, notification_type)

        monkeypatch.setattr(appointment_service.notifications, "create_in_app", flaky)

        assert appointment_service.schedule_reminders() == 1

        assert _reminders(db_session, first.id) == {}
        assert _reminders(db_session, second.id) == {"in_app": "sent", "email": "sent"}


class TestHandleNoShows:
    def test_marks_appointments_past_grace_period(self, appointment_service, book_at, db_session):
        late = book_at(TODAY, "07:15", "07:45")
        within_grace = book_at(TODAY, "07:50", "08:20")
        yesterday = book_at(TODAY - timedelta(days=1), "16:00", "16:30")

        assert appointment_service.handle_no_shows() == 2

        assert reload_appointment(db_session, late.id).status == "no-show"
        assert reload_appointment(db_session, yesterday.id).status == "no-show"
        assert reload_appointment(db_session, within_grace.id).status == "scheduled"

    def test_goes_through_the_lifecycle(self, appointment_service, book_at, db_session):
        appointment = book_at(TODAY, "07:00", "07:30")

        appointment_service.handle_no_shows()

        db_session.expire_all()
        entry = db_session.query(AuditLog).filter(AuditLog.action == "update").one()
        assert entry.actor_id == "system"
        assert entry.resource_id == str(appointment.id)
        titles = [n.title for n in db_session.query(Notification).all()]
        assert titles.count("Missed Appointment") == 2

    def test_ignores_other_statuses(self, appointment_service, book_at):
        appointment = book_at(TODAY, "07:00", "07:30")
        appointment_service.update_appointment(appointment.id, {"status": "checked-in"})

        assert appointment_service.handle_no_shows() == 0

    def test_second_run_is_a_no_op(self, appointment_service, book_at):
        book_at(TODAY, "07:00", "07:30")

        assert appointment_service.handle_no_shows() == 1
        assert appointment_service.handle_no_shows() == 0

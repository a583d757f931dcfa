"""
Integration tests for slot management and regeneration.
"""

from datetime import timedelta

import pytest

from core.exceptions import ConflictError, InternalError, NotFoundError, ValidationError
from models import AuditLog
from tests.conftest import TODAY
from tests.factories import add_schedule, add_vacation_day, create_doctor, create_slot, slots_of

pytestmark = pytest.mark.integration


class TestListSlots:
    def test_defaults_to_the_next_week(self, availability_service, doctor, db_session):
        create_slot(db_session, doctor, TODAY, "09:00", "09:30")
        create_slot(db_session, doctor, TODAY + timedelta(days=7), "09:00", "09:30")
        create_slot(db_session, doctor, TODAY + timedelta(days=8), "09:00", "09:30")
        create_slot(db_session, doctor, TODAY - timedelta(days=1), "09:00", "09:30")
        db_session.commit()

        slots = availability_service.list_slots(doctor.id)

        assert [slot.date for slot in slots] == [TODAY, TODAY + timedelta(days=7)]

    def test_ordered_by_date_then_start(self, availability_service, doctor, db_session):
        create_slot(db_session, doctor, TODAY + timedelta(days=1), "08:00", "08:30")
        create_slot(db_session, doctor, TODAY, "14:00", "14:30")
        create_slot(db_session, doctor, TODAY, "09:00", "09:30", status="booked")
        db_session.commit()

        slots = availability_service.list_slots(doctor.id, "2026-01-05", "2026-01-06")

        assert [(slot.date, slot.start_time) for slot in slots] == [
            (TODAY, "09:00"),
            (TODAY, "14:00"),
            (TODAY + timedelta(days=1), "08:00"),
        ]

    def test_available_only(self, availability_service, doctor, db_session):
        create_slot(db_session, doctor, TODAY, "09:00", "09:30", status="booked")
        create_slot(db_session, doctor, TODAY, "10:00", "10:30")
        create_slot(db_session, doctor, TODAY, "11:00", "11:30", status="blocked")
        db_session.commit()

        slots = availability_service.list_available_slots(doctor.id, TODAY, TODAY)

        assert [slot.start_time for slot in slots] == ["10:00"]

    def test_unknown_doctor(self, availability_service):
        with pytest.raises(NotFoundError):
            availability_service.list_slots(9999)

    def test_end_before_start(self, availability_service, doctor):
        with pytest.raises(ValidationError, match="before start_date"):
            availability_service.list_slots(doctor.id, "2026-01-10", "2026-01-05")

    def test_malformed_date(self, availability_service, doctor):
        with pytest.raises(ValidationError, match="Invalid start_date"):
            availability_service.list_slots(doctor.id, "next tuesday")


class TestCreateSlot:
    def test_creates_and_audits(self, availability_service, doctor, db_session):
        slot = availability_service.create_slot(doctor.id, "2026-01-06", "9:00", "09:30", actor_id=7)

        assert slot.id is not None
        assert slot.start_time == "09:00"
        assert slot.status == "available"

        db_session.expire_all()
        entry = db_session.query(AuditLog).filter(AuditLog.resource == "timeslot").one()
        assert entry.action == "create"
        assert entry.actor_id == "7"
        assert entry.resource_id == str(slot.id)

    def test_touching_slots_do_not_overlap(self, availability_service, doctor):
        availability_service.create_slot(doctor.id, TODAY, "09:00", "09:30")
        availability_service.create_slot(doctor.id, TODAY, "09:30", "10:00")

        assert len(availability_service.list_slots(doctor.id, TODAY, TODAY)) == 2

    @pytest.mark.parametrize("start,end", [
        ("09:15", "09:45"),  # partial overlap at the end
        ("08:45", "09:15"),  # partial overlap at the start
        ("09:05", "09:25"),  # contained
        ("08:00", "10:00"),  # containing
        ("09:00", "09:30"),  # identical
    ])
    def test_rejects_overlap(self, availability_service, doctor, db_session, start, end):
        create_slot(db_session, doctor, TODAY, "09:00", "09:30", status="blocked")
        db_session.commit()

        with pytest.raises(ConflictError) as exc_info:
            availability_service.create_slot(doctor.id, TODAY, start, end)

        assert exc_info.value.message == (
            "Time slot overlaps with existing blocked slot on 2026-01-05 09:00-09:30"
        )
        assert len(slots_of(db_session, doctor.id)) == 1

    def test_conflict_names_the_existing_slot(self, availability_service, doctor):
        availability_service.create_slot(doctor.id, TODAY, "10:00", "10:20")

        with pytest.raises(ConflictError, match="10:00-10:20") as exc_info:
            availability_service.create_slot(doctor.id, TODAY, "10:10", "10:30")

        assert exc_info.value.details["conflicting_slot"]["start_time"] == "10:00"

    def test_other_doctors_slots_do_not_conflict(self, availability_service, doctor, db_session):
        other = create_doctor(db_session)
        create_slot(db_session, other, TODAY, "09:00", "09:30")
        db_session.commit()

        slot = availability_service.create_slot(doctor.id, TODAY, "09:00", "09:30")

        assert slot.doctor_id == doctor.id

    @pytest.mark.parametrize("start,end,message", [
        (None, "10:00", "Start time and end time are required"),
        ("10:00", "09:00", "End time must be after start time"),
        ("10:00", "10:00", "End time must be after start time"),
        ("25:00", "26:00", "Invalid time format"),
    ])
    def test_invalid_times(self, availability_service, doctor, start, end, message):
        with pytest.raises(ValidationError, match=message):
            availability_service.create_slot(doctor.id, TODAY, start, end)

    def test_missing_date(self, availability_service, doctor):
        with pytest.raises(ValidationError, match="Date is required"):
            availability_service.create_slot(doctor.id, None, "09:00", "09:30")

    def test_cannot_create_booked(self, availability_service, doctor):
        with pytest.raises(ValidationError):
            availability_service.create_slot(doctor.id, TODAY, "09:00", "09:30", status="booked")

    def test_unknown_doctor(self, availability_service):
        with pytest.raises(NotFoundError):
            availability_service.create_slot(9999, TODAY, "09:00", "09:30")


class TestUpdateSlot:
    def test_moves_slot(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30")
        db_session.commit()

        updated = availability_service.update_slot(slot.id, {"start_time": "10:00", "end_time": "10:30"})

        assert (updated.start_time, updated.end_time) == ("10:00", "10:30")

    def test_overlap_check_excludes_itself(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30")
        db_session.commit()

        updated = availability_service.update_slot(slot.id, {"end_time": "09:45"})

        assert updated.end_time == "09:45"

    def test_rejects_overlap_with_neighbour(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30")
        create_slot(db_session, doctor, TODAY, "10:00", "10:30")
        db_session.commit()

        with pytest.raises(ConflictError, match="overlaps"):
            availability_service.update_slot(slot.id, {"end_time": "10:15"})

    def test_booked_slot_times_are_frozen(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30", status="booked")
        db_session.commit()

        with pytest.raises(ConflictError, match="booked slot"):
            availability_service.update_slot(slot.id, {"date": "2026-01-06"})

    def test_block_and_unblock(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30")
        db_session.commit()

        assert availability_service.update_slot(slot.id, {"status": "blocked"}).status == "blocked"
        assert availability_service.update_slot(slot.id, {"status": "available"}).status == "available"

    def test_cannot_book_directly(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30")
        db_session.commit()

        with pytest.raises(ConflictError):
            availability_service.update_slot(slot.id, {"status": "booked"})

    def test_cannot_release_booked_directly(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30", status="booked")
        db_session.commit()

        with pytest.raises(ConflictError):
            availability_service.update_slot(slot.id, {"status": "available"})

    def test_unknown_field(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30")
        db_session.commit()

        with pytest.raises(ValidationError, match="doctor_id"):
            availability_service.update_slot(slot.id, {"doctor_id": 2})

    def test_missing_slot(self, availability_service):
        with pytest.raises(NotFoundError):
            availability_service.update_slot(9999, {"status": "blocked"})


class TestDeleteSlot:
    def test_deletes(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30")
        db_session.commit()

        availability_service.delete_slot(slot.id, actor_id=1)

        assert slots_of(db_session, doctor.id) == []
        entry = db_session.query(AuditLog).filter(AuditLog.action == "delete").one()
        assert entry.details["start_time"] == "09:00"

    def test_booked_slot_cannot_be_deleted(self, availability_service, doctor, db_session):
        slot = create_slot(db_session, doctor, TODAY, "09:00", "09:30", status="booked")
        db_session.commit()

        with pytest.raises(ConflictError):
            availability_service.delete_slot(slot.id)

        assert len(slots_of(db_session, doctor.id)) == 1

    def test_missing_slot(self, availability_service):
        with pytest.raises(NotFoundError):
            availability_service.delete_slot(9999)


class TestGenerateSlots:
    def test_standard_windows_without_schedule(self, availability_service, doctor, db_session):
        created = availability_service.generate_slots_from_schedule(doctor.id, TODAY, TODAY)

        # 09:00-12:00 and 13:00-17:00 in 30 minute slots
        assert len(created) == 14
        starts = [slot.start_time for slot in slots_of(db_session, doctor.id, TODAY)]
        assert starts[0] == "09:00"
        assert "12:00" not in starts
        assert starts[6] == "13:00"
        assert starts[-1] == "16:30"

    def test_weekly_schedule_and_duration(self, availability_service, db_session):
        doctor = create_doctor(db_session, appointment_duration=20)
        add_schedule(db_session, doctor, day_of_week=1, start_time="09:00", end_time="12:00")  # Monday
        add_schedule(db_session, doctor, day_of_week=2, start_time="14:00", end_time="15:00", is_available=False)
        db_session.commit()

        created = availability_service.generate_slots_from_schedule(doctor.id, TODAY, TODAY + timedelta(days=1))

        assert len(created) == 9
        assert {slot.date for slot in created} == {TODAY}
        assert (created[-1].start_time, created[-1].end_time) == ("11:40", "12:00")

    def test_vacation_day_gets_no_slots(self, availability_service, doctor, db_session):
        add_vacation_day(db_session, doctor, TODAY)
        add_vacation_day(db_session, doctor, TODAY + timedelta(days=1), is_work_day=True)
        db_session.commit()

        availability_service.generate_slots_from_schedule(doctor.id, TODAY, TODAY + timedelta(days=1))

        assert slots_of(db_session, doctor.id, TODAY) == []
        assert len(slots_of(db_session, doctor.id, TODAY + timedelta(days=1))) == 14

    def test_regeneration_keeps_booked_and_replaces_the_rest(self, availability_service, doctor, db_session):
        booked = create_slot(db_session, doctor, TODAY, "09:15", "09:45", status="booked")
        create_slot(db_session, doctor, TODAY, "18:00", "18:30", status="blocked")
        db_session.commit()

        availability_service.generate_slots_from_schedule(doctor.id, TODAY, TODAY)

        slots = slots_of(db_session, doctor.id, TODAY)
        assert booked.id in {slot.id for slot in slots}
        assert "18:00" not in [slot.start_time for slot in slots]
        # 09:00 and 09:30 overlap the booked slot
        assert [slot.start_time for slot in slots[:3]] == ["09:15", "10:00", "10:30"]
        assert len(slots) == 13

    def test_running_twice_is_stable(self, availability_service, doctor, db_session):
        availability_service.generate_slots_from_schedule(doctor.id, TODAY, TODAY)
        availability_service.generate_slots_from_schedule(doctor.id, TODAY, TODAY)

        assert len(slots_of(db_session, doctor.id, TODAY)) == 14

    def test_default_range_is_thirty_days(self, availability_service, doctor, db_session):
        availability_service.generate_slots_from_schedule(doctor.id)

        days = {slot.date for slot in slots_of(db_session, doctor.id)}
        assert min(days) == TODAY
        assert max(days) == TODAY + timedelta(days=30)

    def test_audited_as_one_batch(self, availability_service, doctor, db_session):
        availability_service.generate_slots_from_schedule(doctor.id, TODAY, TODAY, actor_id=3)

        db_session.expire_all()
        entry = db_session.query(AuditLog).one()
        assert entry.details["slots_generated"] == 14
        assert entry.resource_id is None

    def test_unknown_doctor(self, availability_service):
        with pytest.raises(NotFoundError):
            availability_service.generate_slots_from_schedule(9999, TODAY, TODAY)

    def test_failure_rolls_back_everything(self, availability_service, doctor, db_session, monkeypatch):
        create_slot(db_session, doctor, TODAY, "18:00", "18:30")
        db_session.commit()

        def explode(*args, **kwargs):
            raise RuntimeError("audit store down")

        monkeypatch.setattr(availability_service.audit, "record", explode)

        with pytest.raises(InternalError):
            availability_service.generate_slots_from_schedule(doctor.id, TODAY, TODAY)

        assert [slot.start_time for slot in slots_of(db_session, doctor.id, TODAY)] == ["18:00"]

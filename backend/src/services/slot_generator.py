"""
Slot generation from standard windows or a doctor's weekly schedule.

The pure part (``generate_standard_slots``) turns windows into consecutive
candidate slots. ``SlotGenerator.regenerate`` applies the regeneration policy
against the store: non-booked slots of each day are removed first, then fresh
slots are created everywhere a booked slot does not get in the way.
"""

import logging
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from core.config import SchedulingConfig
from core.constants import SLOT_STATUS_AVAILABLE
from core.exceptions import ValidationError
from models import Doctor, TimeSlot
from shared_types.availability import CandidateSlot, DateRange, TimeWindow
from utils.slot_queries import delete_unbooked_slots_for_day, get_booked_slots_for_day
from utils.time_utils import HasInterval, find_overlapping, iter_dates, minutes_to_time, time_to_minutes

logger = logging.getLogger(__name__)


def generate_standard_slots(
    doctor_id: int,
    date_range: DateRange,
    fixed_windows: Sequence[TimeWindow],
    slot_duration_minutes: int,
    booked: Optional[Mapping[date, Sequence[HasInterval]]] = None,
) -> List[CandidateSlot]:
    """
    Produce consecutive candidate slots for every day in the range and every window.

    A slot is only emitted if it fits entirely before the window end. Any
    interval overlapping a booked slot of that day is skipped; booked slots
    themselves are never returned or touched.

    Args:
        doctor_id: Doctor the slots are for
        date_range: Inclusive range of days
        fixed_windows: Working windows applied to every day
        slot_duration_minutes: Length of each slot
        booked: Booked slots per day to avoid

    Returns:
        Candidate slots ordered by date, window, start time

    Raises:
        ValidationError: If the slot duration is not positive
    """
    if slot_duration_minutes <= 0:
        raise ValidationError(f"Slot duration must be positive, got {slot_duration_minutes}")

    booked = booked or {}
    candidates: List[CandidateSlot] = []
    for day in iter_dates(date_range.start_date, date_range.end_date):
        candidates.extend(_slots_for_day(doctor_id, day, fixed_windows, slot_duration_minutes, booked.get(day, ())))
    return candidates


def _slots_for_day(
    doctor_id: int,
    day: date,
    windows: Sequence[TimeWindow],
    slot_duration_minutes: int,
    booked: Sequence[HasInterval],
) -> List[CandidateSlot]:
    slots: List[CandidateSlot] = []
    for window in windows:
        cursor = time_to_minutes(window.start_time)
        window_end = time_to_minutes(window.end_time)
        while cursor + slot_duration_minutes <= window_end:
            slot_end = cursor + slot_duration_minutes
            if find_overlapping(booked, cursor, slot_end) is None:
                slots.append(CandidateSlot(
                    doctor_id=doctor_id,
                    date=day,
                    start_time=minutes_to_time(cursor),
                    end_time=minutes_to_time(slot_end),
                ))
            cursor = slot_end
    return slots


def day_of_week(day: date) -> int:
    """Weekday with Sunday as 0, the numbering used by doctor schedules."""
    return (day.weekday() + 1) % 7


class SlotGenerator:
    """
    Applies the regeneration policy for a doctor over a date range.

    Window selection per day:
    - the doctor's available weekly schedule entries for that weekday, or
    - the configured standard windows when the doctor has no weekly schedule at all.
    Vacation days (``is_work_day`` false) get no slots.
    """

    def __init__(self, config: SchedulingConfig) -> None:
        self.config = config

    def slot_duration_for(self, doctor: Doctor) -> int:
        return doctor.appointment_duration or self.config.default_slot_duration_minutes

    def windows_for_day(self, doctor: Doctor, day: date) -> List[TimeWindow]:
        if not doctor.schedules:
            return [TimeWindow(start, end) for start, end in self.config.standard_windows]
        weekday = day_of_week(day)
        return [
            TimeWindow(schedule.start_time, schedule.end_time)
            for schedule in doctor.schedules
            if schedule.day_of_week == weekday and schedule.is_available
        ]

    @staticmethod
    def is_vacation_day(doctor: Doctor, day: date) -> bool:
        return any(vacation.date == day and not vacation.is_work_day for vacation in doctor.vacation_days)

    def regenerate(self, db: Session, doctor: Doctor, date_range: DateRange) -> List[TimeSlot]:
        """
        Regenerate every day in the range inside the caller's transaction.

        Returns:
            The newly created TimeSlot rows (flushed, ids assigned)
        """
        duration = self.slot_duration_for(doctor)
        created: List[TimeSlot] = []
        removed = 0

        for day in iter_dates(date_range.start_date, date_range.end_date):
            removed += delete_unbooked_slots_for_day(db, doctor.id, day)
            if self.is_vacation_day(doctor, day):
                continue
            windows = self.windows_for_day(doctor, day)
            if not windows:
                continue

            booked: Dict[date, Sequence[HasInterval]] = {day: get_booked_slots_for_day(db, doctor.id, day)}
            for candidate in generate_standard_slots(doctor.id, DateRange(day, day), windows, duration, booked):
                slot = TimeSlot(
                    doctor_id=candidate.doctor_id,
                    date=candidate.date,
                    start_time=candidate.start_time,
                    end_time=candidate.end_time,
                    status=SLOT_STATUS_AVAILABLE,
                )
                db.add(slot)
                created.append(slot)

        db.flush()
        logger.info(
            f"Regenerated slots for doctor {doctor.id} from {date_range.start_date} to {date_range.end_date}: "
            f"{len(created)} created, {removed} non-booked removed"
        )
        return created

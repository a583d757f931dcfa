"""
Query functions for the time slot store.

All slot reads and bulk writes go through here so that ordering and the
overlap checks are applied the same way by the availability service, the
slot generator and the calendar bridge.
"""

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from core.constants import SLOT_STATUS_BOOKED
from models import Doctor, TimeSlot
from utils.time_utils import find_overlapping


def lock_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
    """
    Lock the doctor row for the rest of the transaction.

    Serializes concurrent slot writers for the same doctor on stores that
    support ``SELECT ... FOR UPDATE``; a no-op elsewhere (SQLite).
    """
    return db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()


def get_slot_by_id(db: Session, slot_id: int, for_update: bool = False) -> Optional[TimeSlot]:
    query = db.query(TimeSlot).filter(TimeSlot.id == slot_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_slots_in_range(
    db: Session,
    doctor_id: int,
    start_date: date,
    end_date: date,
    status: Optional[str] = None,
) -> List[TimeSlot]:
    """
    Get a doctor's slots within ``[start_date, end_date]`` ordered by date then start time.

    Args:
        db: Database session
        doctor_id: Doctor ID
        start_date: First day (inclusive)
        end_date: Last day (inclusive)
        status: Optional status filter

    Returns:
        List of TimeSlot objects
    """
    query = db.query(TimeSlot).filter(
        TimeSlot.doctor_id == doctor_id,
        TimeSlot.date >= start_date,
        TimeSlot.date <= end_date,
    )
    if status is not None:
        query = query.filter(TimeSlot.status == status)
    return query.order_by(TimeSlot.date, TimeSlot.start_time).all()


def get_slots_for_day(
    db: Session,
    doctor_id: int,
    day: date,
    statuses: Optional[Iterable[str]] = None,
    exclude_slot_id: Optional[int] = None,
) -> List[TimeSlot]:
    query = db.query(TimeSlot).filter(TimeSlot.doctor_id == doctor_id, TimeSlot.date == day)
    if statuses is not None:
        query = query.filter(TimeSlot.status.in_(list(statuses)))
    if exclude_slot_id is not None:
        query = query.filter(TimeSlot.id != exclude_slot_id)
    return query.order_by(TimeSlot.start_time).all()


def get_booked_slots_for_day(db: Session, doctor_id: int, day: date) -> List[TimeSlot]:
    return get_slots_for_day(db, doctor_id, day, statuses=[SLOT_STATUS_BOOKED])


def find_conflicting_slot(
    db: Session,
    doctor_id: int,
    day: date,
    start_time: str,
    end_time: str,
    exclude_slot_id: Optional[int] = None,
) -> Optional[TimeSlot]:
    """
    Find an existing slot of any status that overlaps ``[start_time, end_time)`` on ``day``.

    This is the conservative policy used for manual creation, updates and
    calendar imports. Generation only checks booked slots.
    """
    existing = get_slots_for_day(db, doctor_id, day, exclude_slot_id=exclude_slot_id)
    return find_overlapping(existing, start_time, end_time)


def delete_unbooked_slots_for_day(db: Session, doctor_id: int, day: date) -> int:
    """Remove every non-booked slot of the doctor on ``day``. Returns the number deleted."""
    return (
        db.query(TimeSlot)
        .filter(
            TimeSlot.doctor_id == doctor_id,
            TimeSlot.date == day,
            TimeSlot.status != SLOT_STATUS_BOOKED,
        )
        .delete(synchronize_session="fetch")
    )


def get_untagged_slots_in_range(db: Session, doctor_id: int, start_date: date, end_date: date) -> List[TimeSlot]:
    """Slots in range that are not yet mapped to an external calendar event."""
    return (
        db.query(TimeSlot)
        .filter(
            TimeSlot.doctor_id == doctor_id,
            TimeSlot.date >= start_date,
            TimeSlot.date <= end_date,
            TimeSlot.external_event_id.is_(None),
        )
        .order_by(TimeSlot.date, TimeSlot.start_time)
        .all()
    )

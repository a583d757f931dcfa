"""
Read models for appointments.

Joined listings of appointments with patient and doctor names, returned as
plain dicts so controllers never touch lazy relationships after the
session is closed.
"""

import math
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Query, Session, aliased

from core.constants import (
    APPOINTMENT_CHECKED_IN,
    APPOINTMENT_IN_PROGRESS,
    APPOINTMENT_SCHEDULED,
)
from models import Appointment, Doctor, Patient, User

UPCOMING_STATUSES = (APPOINTMENT_SCHEDULED, APPOINTMENT_CHECKED_IN)
TODAY_STATUSES = (APPOINTMENT_SCHEDULED, APPOINTMENT_CHECKED_IN, APPOINTMENT_IN_PROGRESS)

MAX_PAGE_SIZE = 100

PatientUser = aliased(User, name="patient_user")
DoctorUser = aliased(User, name="doctor_user")

SORTABLE_FIELDS = {
    "date": (Appointment.date, Appointment.start_time),
    "created_at": (Appointment.created_at,),
    "status": (Appointment.status,),
}


def appointment_to_dict(
    appointment: Appointment,
    patient_user: Optional[User] = None,
    doctor_user: Optional[User] = None,
) -> Dict[str, Any]:
    """Serialize an appointment, optionally with participant names."""
    result: Dict[str, Any] = {
        "id": appointment.id,
        "patient_id": appointment.patient_id,
        "doctor_id": appointment.doctor_id,
        "time_slot_id": appointment.time_slot_id,
        "date": appointment.date.isoformat(),
        "start_time": appointment.start_time,
        "end_time": appointment.end_time,
        "type": appointment.type,
        "status": appointment.status,
        "reason_for_visit": appointment.reason_for_visit,
        "notes": appointment.notes,
        "preliminary_assessment_id": appointment.preliminary_assessment_id,
        "is_virtual": appointment.is_virtual,
        "video_conference_link": appointment.video_conference_link,
        "cancelled_at": appointment.cancelled_at.isoformat() if appointment.cancelled_at else None,
        "cancel_reason": appointment.cancel_reason,
        "created_by": appointment.created_by,
    }
    if patient_user is not None:
        result["patient_name"] = patient_user.full_name
    if doctor_user is not None:
        result["doctor_name"] = f"Dr. {doctor_user.full_name}"
    return result


def _joined_query(db: Session) -> Query[Tuple[Appointment, User, User]]:
    return (
        db.query(Appointment, PatientUser, DoctorUser)
        .join(Patient, Appointment.patient_id == Patient.id)
        .join(PatientUser, Patient.user_id == PatientUser.id)
        .join(Doctor, Appointment.doctor_id == Doctor.id)
        .join(DoctorUser, Doctor.user_id == DoctorUser.id)
    )


def _to_dicts(rows: Iterable[Tuple[Appointment, User, User]]) -> List[Dict[str, Any]]:
    return [appointment_to_dict(appointment, patient_user, doctor_user) for appointment, patient_user, doctor_user in rows]


def list_appointments(
    db: Session,
    status: Optional[str] = None,
    appointment_type: Optional[str] = None,
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    sort: str = "date",
    order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    """
    Filtered, paginated appointment listing.

    Args:
        db: Database session
        status: Exact status filter
        appointment_type: Exact type filter
        doctor_id: Only this doctor's appointments
        patient_id: Only this patient's appointments
        start_date: Earliest date (inclusive)
        end_date: Latest date (inclusive)
        search: Case-insensitive match on patient or doctor name
        sort: 'date', 'created_at' or 'status'
        order: 'asc' or 'desc'
        page: 1-based page number
        limit: Page size (capped at 100)

    Returns:
        Dict with ``appointments`` and ``pagination`` (total, page, limit, pages)
    """
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    query = _joined_query(db)
    if status:
        query = query.filter(Appointment.status == status)
    if appointment_type:
        query = query.filter(Appointment.type == appointment_type)
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if patient_id is not None:
        query = query.filter(Appointment.patient_id == patient_id)
    if start_date is not None:
        query = query.filter(Appointment.date >= start_date)
    if end_date is not None:
        query = query.filter(Appointment.date <= end_date)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            PatientUser.first_name.ilike(pattern)
            | PatientUser.last_name.ilike(pattern)
            | DoctorUser.first_name.ilike(pattern)
            | DoctorUser.last_name.ilike(pattern)
        )

    total = query.count()
    columns = SORTABLE_FIELDS.get(sort, SORTABLE_FIELDS["date"])
    ordering = [column.asc() if order == "asc" else column.desc() for column in columns]
    rows = query.order_by(*ordering, Appointment.id).offset((page - 1) * limit).limit(limit).all()

    return {
        "appointments": _to_dicts(rows),
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


def get_patient_upcoming_appointments(db: Session, patient_id: int, today: date) -> List[Dict[str, Any]]:
    """Scheduled or checked-in appointments of a patient from today on, soonest first."""
    rows = (
        _joined_query(db)
        .filter(
            Appointment.patient_id == patient_id,
            Appointment.status.in_(UPCOMING_STATUSES),
            Appointment.date >= today,
        )
        .order_by(Appointment.date, Appointment.start_time)
        .all()
    )
    return _to_dicts(rows)


def get_doctor_upcoming_appointments(db: Session, doctor_id: int, today: date) -> List[Dict[str, Any]]:
    """Scheduled or checked-in appointments of a doctor from today on, soonest first."""
    rows = (
        _joined_query(db)
        .filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(UPCOMING_STATUSES),
            Appointment.date >= today,
        )
        .order_by(Appointment.date, Appointment.start_time)
        .all()
    )
    return _to_dicts(rows)


def get_today_appointments(db: Session, today: date, doctor_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Today's scheduled, checked-in and in-progress appointments ordered by start time."""
    query = _joined_query(db).filter(
        Appointment.date == today,
        Appointment.status.in_(TODAY_STATUSES),
    )
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    return _to_dicts(query.order_by(Appointment.start_time, Appointment.id).all())

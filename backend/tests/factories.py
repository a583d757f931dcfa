"""
Test utilities for CareSync tests.

Factory helpers that add rows to a session and flush, so ids are available
without committing.
"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from models import Appointment, Doctor, DoctorSchedule, DoctorVacationDay, Patient, TimeSlot, User

_counter = {"users": 0}


def _next_email(prefix: str) -> str:
    _counter["users"] += 1
    return f"{prefix}{_counter['users']}@example.com"


def create_doctor(
    db: Session,
    first_name: str = "Greg",
    last_name: str = "House",
    appointment_duration: Optional[int] = None,
    google_refresh_token: Optional[str] = None,
) -> Doctor:
    user = User(email=_next_email("doctor"), first_name=first_name, last_name=last_name, role="doctor")
    db.add(user)
    db.flush()
    doctor = Doctor(
        user_id=user.id,
        specialization="General Practice",
        appointment_duration=appointment_duration,
        google_refresh_token=google_refresh_token,
    )
    db.add(doctor)
    db.flush()
    return doctor


def create_patient(db: Session, first_name: str = "Pat", last_name: str = "Ient") -> Patient:
    user = User(email=_next_email("patient"), first_name=first_name, last_name=last_name, role="patient")
    db.add(user)
    db.flush()
    patient = Patient(user_id=user.id)
    db.add(patient)
    db.flush()
    return patient


def add_schedule(db: Session, doctor: Doctor, day_of_week: int, start_time: str, end_time: str,
                 is_available: bool = True) -> DoctorSchedule:
    schedule = DoctorSchedule(
        doctor_id=doctor.id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        is_available=is_available,
    )
    db.add(schedule)
    db.flush()
    return schedule


def add_vacation_day(db: Session, doctor: Doctor, day: date, is_work_day: bool = False) -> DoctorVacationDay:
    vacation = DoctorVacationDay(doctor_id=doctor.id, date=day, is_work_day=is_work_day)
    db.add(vacation)
    db.flush()
    return vacation


def create_slot(db: Session, doctor: Doctor, day: date, start_time: str, end_time: str,
                status: str = "available", external_event_id: Optional[str] = None) -> TimeSlot:
    slot = TimeSlot(
        doctor_id=doctor.id,
        date=day,
        start_time=start_time,
        end_time=end_time,
        status=status,
        external_event_id=external_event_id,
    )
    db.add(slot)
    db.flush()
    return slot


def slots_of(db: Session, doctor_id: int, day: Optional[date] = None) -> list[TimeSlot]:
    """Fresh read of a doctor's slots ordered by date and start."""
    db.expire_all()
    query = db.query(TimeSlot).filter(TimeSlot.doctor_id == doctor_id)
    if day is not None:
        query = query.filter(TimeSlot.date == day)
    return query.order_by(TimeSlot.date, TimeSlot.start_time).all()


def reload_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
    db.expire_all()
    return db.query(Appointment).filter(Appointment.id == appointment_id).first()

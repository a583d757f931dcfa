"""
Directory lookups for doctors, patients and users.

Account management lives elsewhere; the scheduling services only need to
resolve ids to rows and to build display names and email contacts.
"""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models import Doctor, Patient, User
from shared_types.collaborators import Directory


class DirectoryService(Directory):
    """SQL-backed directory."""

    def find_doctor_by_id(self, db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    def find_patient_by_id(self, db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()

    def find_user_by_id(self, db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_doctor_display_name(doctor: Doctor) -> str:
        """Name with title, e.g. ``Dr. Jane Smith``."""
        return f"Dr. {doctor.user.full_name}" if doctor.user else f"Dr. #{doctor.id}"

    @staticmethod
    def get_contact(user: Optional[User]) -> Dict[str, Any]:
        """Fields used by email templates for a user."""
        if user is None:
            return {}
        return {
            "id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
        }

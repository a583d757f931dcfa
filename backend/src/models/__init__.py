# Package initialization
# Import all models to ensure relationships are properly established
from .user import User
from .doctor import Doctor
from .doctor_schedule import DoctorSchedule
from .doctor_vacation_day import DoctorVacationDay
from .patient import Patient
from .time_slot import TimeSlot
from .assessment import Assessment
from .appointment import Appointment
from .appointment_reminder import AppointmentReminder
from .audit_log import AuditLog
from .notification import Notification

__all__ = [
    "User",
    "Doctor",
    "DoctorSchedule",
    "DoctorVacationDay",
    "Patient",
    "TimeSlot",
    "Assessment",
    "Appointment",
    "AppointmentReminder",
    "AuditLog",
    "Notification",
]

"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

_CORS_ORIGINS_RAW = [
    "http://localhost:3000",
    "http://localhost:5173",
    FRONTEND_URL,
]

CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Time slot statuses
SLOT_STATUS_AVAILABLE = "available"
SLOT_STATUS_BOOKED = "booked"
SLOT_STATUS_BLOCKED = "blocked"
SLOT_STATUSES = (SLOT_STATUS_AVAILABLE, SLOT_STATUS_BOOKED, SLOT_STATUS_BLOCKED)

# Appointment statuses
APPOINTMENT_SCHEDULED = "scheduled"
APPOINTMENT_CHECKED_IN = "checked-in"
APPOINTMENT_IN_PROGRESS = "in-progress"
APPOINTMENT_COMPLETED = "completed"
APPOINTMENT_CANCELLED = "cancelled"
APPOINTMENT_NO_SHOW = "no-show"

APPOINTMENT_STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    APPOINTMENT_SCHEDULED: (APPOINTMENT_CHECKED_IN, APPOINTMENT_CANCELLED, APPOINTMENT_NO_SHOW),
    APPOINTMENT_CHECKED_IN: (APPOINTMENT_IN_PROGRESS, APPOINTMENT_CANCELLED),
    APPOINTMENT_IN_PROGRESS: (APPOINTMENT_COMPLETED, APPOINTMENT_CANCELLED),
    APPOINTMENT_COMPLETED: (),
    APPOINTMENT_CANCELLED: (),
    APPOINTMENT_NO_SHOW: (),
}
APPOINTMENT_STATUSES = tuple(APPOINTMENT_STATUS_TRANSITIONS)

APPOINTMENT_TYPES = ("initial", "follow-up", "virtual", "in-person")
DEFAULT_APPOINTMENT_TYPE = "virtual"
DEFAULT_CANCEL_REASON = "No reason provided"

# Audit log vocabulary
AUDIT_RESOURCE_TIMESLOT = "timeslot"
AUDIT_RESOURCE_APPOINTMENT = "appointment"
SYSTEM_ACTOR = "system"

# Email templates
EMAIL_TEMPLATE_CONFIRMATION = "appointment_confirmation"
EMAIL_TEMPLATE_CANCELLATION = "appointment_cancellation"
EMAIL_TEMPLATE_REMINDER = "appointment_reminder"

# External calendar
CALENDAR_EVENT_DESCRIPTION = "Automatically created by {app_name} Availability Management System"

# Reminder scheduler settings
REMINDER_SCHEDULER_MAX_INSTANCES = 1  # Prevent overlapping scheduler runs

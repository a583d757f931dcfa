"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
and exposes them as module constants. Scheduling behaviour is described by
``SchedulingConfig``, which is built once at process start and passed into
the services that need it.
"""

import os
import pathlib
from datetime import datetime, tzinfo
from typing import List, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

if not is_testing:
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env (when run from src)
        pathlib.Path.cwd() / ".env",
        pathlib.Path.cwd().parent / ".env",
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def get_database_url():
    """
    Get the database URL from environment.

    A bare ``postgresql://`` scheme is pinned to psycopg2, the only
    PostgreSQL driver installed with the backend.
    """
    url = os.getenv(
        "DATABASE_URL",
        "postgresql+psycopg2://localhost/caresync_dev"
    )
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg2://" + url[len("postgresql://"):]
    return url

DATABASE_URL = get_database_url()
APP_NAME = os.getenv("APP_NAME", "CareSync")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Google Calendar (availability import/export/sync)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")

# Outbound email
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@caresync.example.com")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")

CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")


class SchedulingConfig(BaseModel):
    """
    Scheduling settings shared by the availability and appointment services.

    Times are ``HH:MM`` strings interpreted in the clinic timezone.
    """

    app_name: str = "CareSync"
    timezone: str = "UTC"

    default_slot_duration_minutes: int = Field(default=30, gt=0, le=24 * 60)
    standard_windows: List[Tuple[str, str]] = Field(
        default_factory=lambda: [("09:00", "12:00"), ("13:00", "17:00")]
    )

    list_range_days: int = 7
    generation_range_days: int = 30
    import_range_days: int = 30
    sync_range_days: int = 7

    reminder_lead_hours: int = 24
    no_show_grace_minutes: int = 30
    reminder_interval_minutes: int = 60
    no_show_interval_minutes: int = 15

    availability_markers: List[str] = Field(default_factory=lambda: ["Available", "CareSync"])
    calendar_id: str = "primary"
    calendar_event_color_id: str = "2"
    video_conference_base_url: str = "https://meet.google.com"

    @field_validator("standard_windows")
    @classmethod
    def validate_windows(cls, v: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
        from core.exceptions import ValidationError
        from utils.time_utils import normalize_time, time_to_minutes

        windows: List[Tuple[str, str]] = []
        for start, end in v:
            try:
                start, end = normalize_time(start), normalize_time(end)
            except ValidationError as e:
                raise ValueError(e.message) from e
            if time_to_minutes(end) <= time_to_minutes(start):
                raise ValueError(f"Window {start}-{end} must end after it starts")
            windows.append((start, end))
        return windows

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def tzinfo(self) -> tzinfo:
        return ZoneInfo(self.timezone)

    def now(self) -> datetime:
        """Current time in the clinic timezone."""
        return datetime.now(self.tzinfo)


def _parse_windows(raw: str) -> List[Tuple[str, str]]:
    """Parse ``"09:00-12:00,13:00-17:00"`` into window tuples."""
    windows: List[Tuple[str, str]] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        start, _, end = chunk.partition("-")
        windows.append((start.strip(), end.strip()))
    return windows


def load_scheduling_config() -> SchedulingConfig:
    """Build the scheduling configuration from the environment."""
    values: dict[str, object] = {
        "app_name": APP_NAME,
        "timezone": CLINIC_TIMEZONE,
        "availability_markers": ["Available", APP_NAME],
    }
    if os.getenv("SLOT_DURATION_MINUTES"):
        values["default_slot_duration_minutes"] = int(os.environ["SLOT_DURATION_MINUTES"])
    if os.getenv("STANDARD_WINDOWS"):
        values["standard_windows"] = _parse_windows(os.environ["STANDARD_WINDOWS"])
    if os.getenv("REMINDER_LEAD_HOURS"):
        values["reminder_lead_hours"] = int(os.environ["REMINDER_LEAD_HOURS"])
    if os.getenv("NO_SHOW_GRACE_MINUTES"):
        values["no_show_grace_minutes"] = int(os.environ["NO_SHOW_GRACE_MINUTES"])
    if os.getenv("VIDEO_CONFERENCE_BASE_URL"):
        values["video_conference_base_url"] = os.environ["VIDEO_CONFERENCE_BASE_URL"]
    return SchedulingConfig(**values)

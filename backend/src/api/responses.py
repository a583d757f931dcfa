"""
Shared response models for API endpoints.

Pydantic models shared by the availability and appointment routers so both
return the same shapes for slots, appointments and batch results.
"""

from datetime import date as date_type, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class TimeSlotResponse(BaseModel):
    """Response model for a time slot."""
    id: int
    doctor_id: int
    date: date_type
    start_time: str
    end_time: str
    status: str
    external_event_id: Optional[str] = None  # Set once imported from or exported to Google Calendar


class TimeSlotListResponse(BaseModel):
    slots: List[TimeSlotResponse]


class ImportResultResponse(BaseModel):
    imported: int
    skipped: int
    errors: int
    details: List[Dict[str, Any]]


class ExportResultResponse(BaseModel):
    exported: int
    skipped: int
    errors: int
    details: List[Dict[str, Any]]


class SyncResultResponse(BaseModel):
    """Counts of a two-way sync. updated and deleted are always 0."""
    created: int
    updated: int
    deleted: int
    errors: int
    details: List[Dict[str, Any]]


class AppointmentResponse(BaseModel):
    """Response model for an appointment."""
    id: int
    patient_id: int
    doctor_id: int
    time_slot_id: Optional[int] = None  # NULL once a released slot is deleted
    date: date_type
    start_time: str
    end_time: str
    type: str
    status: str
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    preliminary_assessment_id: Optional[int] = None
    is_virtual: bool
    video_conference_link: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_by: Optional[int] = None
    patient_name: Optional[str] = None  # Only on joined listings
    doctor_name: Optional[str] = None


class PaginationInfo(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentResponse]
    pagination: Optional[PaginationInfo] = None


class BatchJobResponse(BaseModel):
    """Result of a manually triggered background job."""
    processed: int

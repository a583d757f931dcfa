"""
Doctor availability API endpoints.

Slot CRUD, schedule-based generation and Google Calendar import, export and
sync. All business rules live in ``AvailabilityService``; these handlers only
translate HTTP to service calls.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict

from api.dependencies import get_actor_id, get_availability_service
from api.responses import (
    ExportResultResponse,
    ImportResultResponse,
    SyncResultResponse,
    TimeSlotListResponse,
    TimeSlotResponse,
)
from core.constants import SLOT_STATUS_AVAILABLE
from services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class TimeSlotCreateRequest(BaseModel):
    """Request model for creating a slot. Dates are YYYY-MM-DD, times HH:MM."""
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: str = SLOT_STATUS_AVAILABLE


class TimeSlotUpdateRequest(BaseModel):
    """Partial update; unset fields are left unchanged."""
    model_config = ConfigDict(extra="forbid")

    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: Optional[str] = None


class DateRangeRequest(BaseModel):
    """Optional date range; the service fills in defaults per operation."""
    start_date: Optional[str] = None
    end_date: Optional[str] = None


# ===== Slots =====

@router.get("/doctors/{doctor_id}/slots", summary="List a doctor's time slots")
async def list_slots(
    doctor_id: int,
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to start + 7 days"),
    available_only: bool = Query(False),
    service: AvailabilityService = Depends(get_availability_service),
) -> TimeSlotListResponse:
    if available_only:
        slots = service.list_available_slots(doctor_id, start_date, end_date)
    else:
        slots = service.list_slots(doctor_id, start_date, end_date)
    return TimeSlotListResponse(slots=[TimeSlotResponse(**slot.to_dict()) for slot in slots])


@router.get("/slots/{slot_id}", summary="Get a time slot")
async def get_slot(
    slot_id: int,
    service: AvailabilityService = Depends(get_availability_service),
) -> TimeSlotResponse:
    return TimeSlotResponse(**service.get_slot(slot_id).to_dict())


@router.post("/doctors/{doctor_id}/slots", summary="Create a time slot", status_code=status.HTTP_201_CREATED)
async def create_slot(
    doctor_id: int,
    request: TimeSlotCreateRequest,
    service: AvailabilityService = Depends(get_availability_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> TimeSlotResponse:
    slot = service.create_slot(
        doctor_id,
        request.date,
        request.start_time,
        request.end_time,
        status=request.status,
        actor_id=actor_id,
    )
    return TimeSlotResponse(**slot.to_dict())


@router.patch("/slots/{slot_id}", summary="Update a time slot")
async def update_slot(
    slot_id: int,
    request: TimeSlotUpdateRequest,
    service: AvailabilityService = Depends(get_availability_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> TimeSlotResponse:
    patch = request.model_dump(exclude_unset=True)
    slot = service.update_slot(slot_id, patch, actor_id=actor_id)
    return TimeSlotResponse(**slot.to_dict())


@router.delete("/slots/{slot_id}", summary="Delete a time slot", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(
    slot_id: int,
    service: AvailabilityService = Depends(get_availability_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> None:
    service.delete_slot(slot_id, actor_id=actor_id)


@router.post("/doctors/{doctor_id}/slots/generate", summary="Regenerate slots from the weekly schedule")
async def generate_slots(
    doctor_id: int,
    request: DateRangeRequest,
    service: AvailabilityService = Depends(get_availability_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> TimeSlotListResponse:
    slots = service.generate_slots_from_schedule(doctor_id, request.start_date, request.end_date, actor_id=actor_id)
    logger.info(f"Generated {len(slots)} slot(s) for doctor {doctor_id}")
    return TimeSlotListResponse(slots=[TimeSlotResponse(**slot.to_dict()) for slot in slots])


# ===== Google Calendar =====

@router.post("/doctors/{doctor_id}/calendar/import", summary="Import availability from Google Calendar")
async def import_calendar(
    doctor_id: int,
    request: DateRangeRequest,
    service: AvailabilityService = Depends(get_availability_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> ImportResultResponse:
    result = service.import_from_external_calendar(doctor_id, request.start_date, request.end_date, actor_id=actor_id)
    return ImportResultResponse(**result.to_dict())


@router.post("/doctors/{doctor_id}/calendar/export", summary="Export availability to Google Calendar")
async def export_calendar(
    doctor_id: int,
    request: DateRangeRequest,
    service: AvailabilityService = Depends(get_availability_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> ExportResultResponse:
    result = service.export_to_external_calendar(doctor_id, request.start_date, request.end_date, actor_id=actor_id)
    return ExportResultResponse(**result.to_dict())


@router.post("/doctors/{doctor_id}/calendar/sync", summary="Two-way sync with Google Calendar")
async def sync_calendar(
    doctor_id: int,
    request: DateRangeRequest,
    service: AvailabilityService = Depends(get_availability_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> SyncResultResponse:
    result = service.sync_with_external_calendar(doctor_id, request.start_date, request.end_date, actor_id=actor_id)
    return SyncResultResponse(**result.to_dict())

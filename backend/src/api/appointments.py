"""
Appointment Management API endpoints.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict

from api.dependencies import get_actor_id, get_appointment_service
from api.responses import AppointmentListResponse, AppointmentResponse, BatchJobResponse
from services.appointment_service import AppointmentService
from services.availability_service import coerce_date
from utils.appointment_queries import appointment_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class PreliminaryAssessmentRequest(BaseModel):
    """Pre-visit assessment captured while booking."""
    symptoms: List[Any] = []
    generated_questions: List[Any] = []
    responses: List[Any] = []
    ai_generated_report: Optional[str] = None
    severity: str = "low"


class AppointmentCreateRequest(BaseModel):
    """Request model for booking a slot."""
    patient_id: int
    doctor_id: int
    time_slot_id: int
    type: Optional[str] = None
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    is_virtual: bool = True
    preliminary_assessment: Optional[PreliminaryAssessmentRequest] = None


class AppointmentUpdateRequest(BaseModel):
    """Partial update; unset fields are left unchanged."""
    model_config = ConfigDict(extra="forbid")

    status: Optional[str] = None
    cancel_reason: Optional[str] = None
    time_slot_id: Optional[int] = None
    notes: Optional[str] = None
    type: Optional[str] = None
    reason_for_visit: Optional[str] = None
    is_virtual: Optional[bool] = None


def _to_response(data: Dict[str, Any]) -> AppointmentResponse:
    return AppointmentResponse(**data)


# ===== Queries =====

@router.get("/appointments", summary="List appointments")
async def list_appointments(
    status_filter: Optional[str] = Query(None, alias="status"),
    type_filter: Optional[str] = Query(None, alias="type"),
    doctor_id: Optional[int] = Query(None),
    patient_id: Optional[int] = Query(None),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    search: Optional[str] = Query(None, description="Patient or doctor name"),
    sort: str = Query("date"),
    order: str = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentListResponse:
    result = service.list_appointments(
        page=page,
        limit=limit,
        status=status_filter,
        appointment_type=type_filter,
        doctor_id=doctor_id,
        patient_id=patient_id,
        start_date=coerce_date(start_date, "start_date"),
        end_date=coerce_date(end_date, "end_date"),
        search=search,
        sort=sort,
        order=order,
    )
    return AppointmentListResponse(
        appointments=[_to_response(item) for item in result["appointments"]],
        pagination=result["pagination"],
    )


@router.get("/appointments/today", summary="List today's appointments")
async def list_today_appointments(
    doctor_id: Optional[int] = Query(None),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentListResponse:
    items = service.get_today_appointments(doctor_id=doctor_id)
    return AppointmentListResponse(appointments=[_to_response(item) for item in items])


@router.get("/patients/{patient_id}/appointments/upcoming", summary="List a patient's upcoming appointments")
async def list_patient_upcoming(
    patient_id: int,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentListResponse:
    items = service.get_patient_upcoming_appointments(patient_id)
    return AppointmentListResponse(appointments=[_to_response(item) for item in items])


@router.get("/doctors/{doctor_id}/appointments/upcoming", summary="List a doctor's upcoming appointments")
async def list_doctor_upcoming(
    doctor_id: int,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentListResponse:
    items = service.get_doctor_upcoming_appointments(doctor_id)
    return AppointmentListResponse(appointments=[_to_response(item) for item in items])


@router.get("/appointments/{appointment_id}", summary="Get an appointment")
async def get_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    return _to_response(appointment_to_dict(service.get_appointment(appointment_id)))


# ===== Mutations =====

@router.post("/appointments", summary="Book an appointment", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    request: AppointmentCreateRequest,
    service: AppointmentService = Depends(get_appointment_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> AppointmentResponse:
    attrs = request.model_dump(exclude={"patient_id", "doctor_id", "time_slot_id"}, exclude_none=True)
    appointment = service.create_appointment(
        request.patient_id,
        request.doctor_id,
        request.time_slot_id,
        attrs,
        actor_id=actor_id,
    )
    return _to_response(appointment_to_dict(appointment))


@router.patch("/appointments/{appointment_id}", summary="Update an appointment")
async def update_appointment(
    appointment_id: int,
    request: AppointmentUpdateRequest,
    service: AppointmentService = Depends(get_appointment_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> AppointmentResponse:
    patch = request.model_dump(exclude_unset=True)
    appointment = service.update_appointment(appointment_id, patch, actor_id=actor_id)
    return _to_response(appointment_to_dict(appointment))


@router.delete(
    "/appointments/{appointment_id}",
    summary="Delete an appointment",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> None:
    service.delete_appointment(appointment_id, actor_id=actor_id)


# ===== Background jobs (manual trigger) =====

@router.post("/appointments/jobs/reminders", summary="Run the reminder sweep now")
async def run_reminders(service: AppointmentService = Depends(get_appointment_service)) -> BatchJobResponse:
    return BatchJobResponse(processed=service.schedule_reminders())


@router.post("/appointments/jobs/no-shows", summary="Run the no-show sweep now")
async def run_no_shows(service: AppointmentService = Depends(get_appointment_service)) -> BatchJobResponse:
    return BatchJobResponse(processed=service.handle_no_shows())

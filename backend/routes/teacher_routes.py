from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from backend.routes.common import (
    AppointmentResponse,
    PenaltyResponse,
    ensure_database_ready,
    get_appointment_service,
    service_errors,
)
from backend.services.appointment_service import AppointmentService

router = APIRouter(tags=['teacher'])


class AttendanceRequest(BaseModel):
    appointment_id: int
    instructor_id: int
    attended: bool


class AttendanceResponse(BaseModel):
    appointment: AppointmentResponse
    penalty_applied: bool
    penalty: PenaltyResponse | None = None


class CancelClassRequest(BaseModel):
    appointment_id: int
    instructor_id: int
    reason: str = ''

    @field_validator('reason')
    @classmethod
    def normalize_reason(cls, value: str) -> str:
        return value.strip()


def _ensure_own_class(service: AppointmentService, appointment_id: int, instructor_id: int) -> None:
    appointment = service.get(appointment_id)
    if appointment.instructor_id != instructor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the instructor teaching this class can manage it.',
        )


@router.get('/classes', response_model=list[AppointmentResponse])
def list_classes(
    instructor_id: int = Query(...),
    on_date: date | None = Query(default=None, alias='date'),
    service: AppointmentService = Depends(get_appointment_service),
):
    ensure_database_ready()

    with service_errors(service.db):
        return service.list_appointments(
            instructor_id=instructor_id,
            on_date=on_date or date.today(),
            include_inactive=True,
        )


@router.post('/classes/attendance', response_model=AttendanceResponse)
def record_attendance(data: AttendanceRequest, service: AppointmentService = Depends(get_appointment_service)):
    ensure_database_ready()

    with service_errors(service.db):
        _ensure_own_class(service, data.appointment_id, data.instructor_id)
        result = service.record_attendance(data.appointment_id, data.attended)

        return AttendanceResponse(
            appointment=AppointmentResponse.model_validate(result.appointment),
            penalty_applied=result.penalty_applied,
            penalty=PenaltyResponse.model_validate(result.penalty) if result.penalty is not None else None,
        )


@router.post('/classes/cancel', response_model=AppointmentResponse)
def cancel_class(data: CancelClassRequest, service: AppointmentService = Depends(get_appointment_service)):
    ensure_database_ready()

    with service_errors(service.db):
        _ensure_own_class(service, data.appointment_id, data.instructor_id)
        # Students are not penalized when the instructor cancels.
        result = service.cancel(data.appointment_id, reason=data.reason, apply_policy=False)
        return result.appointment

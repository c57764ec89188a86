from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator

from backend.models.appointment import COMPLETED
from backend.routes.common import (
    AppointmentResponse,
    PenaltyResponse,
    ensure_database_ready,
    get_appointment_service,
    service_errors,
)
from backend.services import penalty_service
from backend.services.appointment_service import AppointmentService
from backend.services.conflict_validator import AppointmentCandidate

router = APIRouter(tags=['student'])

MAX_CANCELLATION_REASON_LENGTH = 600


class BookClassRequest(BaseModel):
    student_id: int
    instructor_id: int
    class_type_id: int
    date: date
    start_time: time
    end_time: time
    resource_id: int | None = None

    @model_validator(mode='after')
    def validate_time_range(self) -> 'BookClassRequest':
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class CancelBookingRequest(BaseModel):
    appointment_id: int
    student_id: int
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_CANCELLATION_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_CANCELLATION_REASON_LENGTH} characters or fewer.')

        return normalized


class CancelBookingResponse(BaseModel):
    id: int
    status: str
    penalty_applied: bool
    penalty: PenaltyResponse | None = None


class CanBookResponse(BaseModel):
    can_book: bool
    reason: str | None = None
    kind: str | None = None


class StudentDebtResponse(BaseModel):
    total_debt: int
    outstanding_fines: int
    pending_payments: int


@router.post('/book-class', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_class(data: BookClassRequest, service: AppointmentService = Depends(get_appointment_service)):
    ensure_database_ready()

    with service_errors(service.db):
        return service.book_for_student(
            AppointmentCandidate(
                instructor_id=data.instructor_id,
                student_id=data.student_id,
                class_type_id=data.class_type_id,
                resource_id=data.resource_id,
                date=data.date,
                start_time=data.start_time,
                end_time=data.end_time,
            )
        )


@router.post('/cancel-booking', response_model=CancelBookingResponse)
def cancel_booking(data: CancelBookingRequest, service: AppointmentService = Depends(get_appointment_service)):
    ensure_database_ready()

    with service_errors(service.db):
        appointment = service.get(data.appointment_id)
        if appointment.student_id != data.student_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the student who booked this class can cancel it.',
            )

        result = service.cancel(data.appointment_id, reason=data.reason)

        return CancelBookingResponse(
            id=result.appointment.id,
            status=result.appointment.status,
            penalty_applied=result.penalty_applied,
            penalty=PenaltyResponse.model_validate(result.penalty) if result.penalty is not None else None,
        )


@router.get('/bookings', response_model=list[AppointmentResponse])
def list_bookings(
    student_id: int = Query(...),
    include_past: bool = Query(default=True),
    service: AppointmentService = Depends(get_appointment_service),
):
    ensure_database_ready()

    with service_errors(service.db):
        bookings = service.list_appointments(student_id=student_id, include_inactive=True)
        if include_past:
            return bookings
        return [booking for booking in bookings if booking.status != COMPLETED and booking.date >= date.today()]


@router.get('/can-book', response_model=CanBookResponse)
def can_book(student_id: int = Query(...), service: AppointmentService = Depends(get_appointment_service)):
    ensure_database_ready()

    with service_errors(service.db):
        eligibility = penalty_service.can_student_book(service.db, student_id, service.settings)
        return CanBookResponse(
            can_book=eligibility.can_book,
            reason=eligibility.reason,
            kind=eligibility.kind.value if eligibility.kind else None,
        )


@router.get('/debt', response_model=StudentDebtResponse)
def get_debt(student_id: int = Query(...), service: AppointmentService = Depends(get_appointment_service)):
    ensure_database_ready()

    with service_errors(service.db):
        debt = penalty_service.get_student_debt(service.db, student_id)
        return StudentDebtResponse(
            total_debt=debt.total_debt,
            outstanding_fines=debt.outstanding_fines,
            pending_payments=debt.pending_payments,
        )

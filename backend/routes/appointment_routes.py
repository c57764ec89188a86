import datetime as dt
from datetime import date, time
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, model_validator

from backend.routes.common import (
    AppointmentResponse,
    ensure_database_ready,
    get_appointment_service,
    service_errors,
)
from backend.services.appointment_service import AppointmentService
from backend.services.conflict_validator import AppointmentCandidate

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    instructor_id: int
    student_id: int | None = None
    class_type_id: int
    resource_id: int | None = None
    date: date
    start_time: time
    end_time: time

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateAppointmentRequest':
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self

    def to_candidate(self) -> AppointmentCandidate:
        return AppointmentCandidate(
            instructor_id=self.instructor_id,
            student_id=self.student_id,
            class_type_id=self.class_type_id,
            resource_id=self.resource_id,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
        )


class UpdateAppointmentRequest(BaseModel):
    instructor_id: int | None = None
    student_id: int | None = None
    class_type_id: int | None = None
    resource_id: int | None = None
    date: dt.date | None = None
    start_time: time | None = None
    end_time: time | None = None


class UpdateAppointmentStatusRequest(BaseModel):
    status: Literal['scheduled', 'confirmed', 'cancelled', 'completed']


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    instructor_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    on_date: date | None = Query(default=None, alias='date'),
    include_inactive: bool = Query(default=False),
    service: AppointmentService = Depends(get_appointment_service),
):
    ensure_database_ready()

    with service_errors(service.db):
        return service.list_appointments(
            instructor_id=instructor_id,
            student_id=student_id,
            on_date=on_date,
            include_inactive=include_inactive,
        )


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, service: AppointmentService = Depends(get_appointment_service)):
    ensure_database_ready()

    with service_errors(service.db):
        return service.get(appointment_id)


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    # Admin-created appointments are not limited to the student booking window.
    ensure_database_ready()

    with service_errors(service.db):
        return service.create(data.to_candidate())


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    ensure_database_ready()

    with service_errors(service.db):
        return service.update(appointment_id, data.model_dump(exclude_unset=True))


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    ensure_database_ready()

    with service_errors(service.db):
        return service.set_status(appointment_id, data.status)


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(appointment_id: int, service: AppointmentService = Depends(get_appointment_service)):
    ensure_database_ready()

    with service_errors(service.db):
        service.delete(appointment_id)

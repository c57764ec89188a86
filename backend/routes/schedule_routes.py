import datetime as dt
from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routes.common import ensure_database_ready, service_errors
from backend.services import schedule_service

router = APIRouter(tags=['schedules'])


class CreateScheduleRequest(BaseModel):
    instructor_id: int
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    slot_minutes: int = 60
    class_type_id: int | None = None


class UpdateScheduleRequest(BaseModel):
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_time: time | None = None
    end_time: time | None = None
    slot_minutes: int | None = None
    class_type_id: int | None = None
    active: bool | None = None


class ScheduleResponse(BaseModel):
    id: int
    instructor_id: int
    day_of_week: int
    start_time: time
    end_time: time
    slot_minutes: int
    class_type_id: int | None = None
    active: bool

    class Config:
        from_attributes = True


class CreateOverrideRequest(BaseModel):
    instructor_id: int
    date: date
    available: bool = False
    start_time: time | None = None
    end_time: time | None = None
    slot_minutes: int = 60
    class_type_id: int | None = None
    reason: str | None = None


class OverrideResponse(BaseModel):
    id: int
    instructor_id: int
    date: dt.date
    available: bool
    start_time: time | None = None
    end_time: time | None = None
    slot_minutes: int
    class_type_id: int | None = None
    reason: str | None = None

    class Config:
        from_attributes = True


@router.get('', response_model=list[ScheduleResponse])
def list_schedules(instructor_id: int = Query(...), db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return schedule_service.list_schedules(db, instructor_id)


@router.post('', response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(data: CreateScheduleRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return schedule_service.create_schedule(
            db,
            data.instructor_id,
            data.day_of_week,
            data.start_time,
            data.end_time,
            slot_minutes=data.slot_minutes,
            class_type_id=data.class_type_id,
        )


@router.put('/{schedule_id}', response_model=ScheduleResponse)
def update_schedule(schedule_id: int, data: UpdateScheduleRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return schedule_service.update_schedule(db, schedule_id, data.model_dump(exclude_unset=True))


@router.patch('/{schedule_id}/toggle', response_model=ScheduleResponse)
def toggle_schedule(schedule_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return schedule_service.toggle_schedule(db, schedule_id)


@router.delete('/{schedule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(schedule_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        schedule_service.delete_schedule(db, schedule_id)


@router.post('/overrides', response_model=OverrideResponse, status_code=status.HTTP_201_CREATED)
def create_override(data: CreateOverrideRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return schedule_service.create_override(
            db,
            data.instructor_id,
            data.date,
            data.available,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_minutes=data.slot_minutes,
            class_type_id=data.class_type_id,
            reason=data.reason,
        )


@router.delete('/overrides/{override_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_override(override_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        schedule_service.delete_override(db, override_id)

from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routes.common import ensure_database_ready, service_errors
from backend.services import resource_service
from backend.services.availability_service import compute_available_slots

router = APIRouter(tags=['availability'])

MAX_BLOCK_REASON_LENGTH = 255


class AvailableSlotResponse(BaseModel):
    date: date
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class CreateResourceBlockRequest(BaseModel):
    resource_id: int
    date: date
    start_time: time
    end_time: time
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')

        return normalized


class ResourceBlockResponse(BaseModel):
    id: int
    resource_id: int
    date: date
    start_time: time
    end_time: time
    reason: str | None = None

    class Config:
        from_attributes = True


@router.get('/slots', response_model=list[AvailableSlotResponse])
def list_available_slots(
    instructor_id: int = Query(...),
    class_type_id: int | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return compute_available_slots(
            db,
            instructor_id,
            class_type_id=class_type_id,
            date_from=date_from,
            date_to=date_to,
        )


@router.get('/resource-blocks', response_model=list[ResourceBlockResponse])
def list_resource_blocks(
    resource_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        if resource_id is None:
            return resource_service.upcoming_blocks(db)
        return resource_service.list_resource_blocks(db, resource_id=resource_id, from_date=date.today())


@router.post('/resource-blocks', response_model=ResourceBlockResponse, status_code=status.HTTP_201_CREATED)
def create_resource_block(data: CreateResourceBlockRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return resource_service.create_resource_block(
            db,
            data.resource_id,
            data.date,
            data.start_time,
            data.end_time,
            reason=data.reason,
        )


@router.delete('/resource-blocks/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_resource_block(block_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        resource_service.remove_resource_block(db, block_id)

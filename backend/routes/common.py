import logging
from contextlib import contextmanager
from datetime import date, datetime, time

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError
from backend.database import ensure_appointment_schema, get_db
from backend.services.appointment_service import AppointmentService
from backend.services.settings_service import SettingsCache, SettingsResolver, load_settings_from_db

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class AppointmentResponse(BaseModel):
    id: int
    instructor_id: int
    student_id: int | None = None
    class_type_id: int
    resource_id: int | None = None
    date: date
    start_time: time
    end_time: time
    status: str
    attended: bool | None = None
    cancellation_reason: str | None = None

    class Config:
        from_attributes = True


class PenaltyResponse(BaseModel):
    id: int
    user_id: int
    appointment_id: int | None = None
    amount: int
    reason: str
    paid: bool
    paid_at: datetime | None = None

    class Config:
        from_attributes = True


class ViolationResponse(BaseModel):
    kind: str
    message: str


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@contextmanager
def service_errors(db: Session | None = None):
    """Translate service exceptions into HTTP errors.

    Rule violations keep their kind in the response detail; storage failures
    become a generic 503.
    """
    try:
        yield
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        if db is not None:
            db.rollback()
        logger.exception('Database operation failed.')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


def get_settings_cache(request: Request) -> SettingsCache:
    return request.app.state.settings_cache


def get_settings_resolver(
    db: Session = Depends(get_db),
    cache: SettingsCache = Depends(get_settings_cache),
) -> SettingsResolver:
    return SettingsResolver(load_settings_from_db(db), cache)


def get_appointment_service(
    db: Session = Depends(get_db),
    settings: SettingsResolver = Depends(get_settings_resolver),
) -> AppointmentService:
    return AppointmentService(db, settings)

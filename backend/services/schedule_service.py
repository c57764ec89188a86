"""Weekly schedules and date overrides for instructors."""

import logging
from datetime import date, time
from typing import Any

from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError, ViolationKind
from backend.models.availability import ALLOWED_SLOT_MINUTES, InstructorSchedule, ScheduleOverride
from backend.services.time_ranges import intervals_overlap

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = frozenset({'day_of_week', 'start_time', 'end_time', 'slot_minutes', 'class_type_id', 'active'})


def _validate_window(day_of_week: int, start_time: time, end_time: time, slot_minutes: int) -> None:
    if not 0 <= day_of_week <= 6:
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'day_of_week must be between 0 (Sunday) and 6 (Saturday).')
    if start_time >= end_time:
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'Start time must be before end time.')
    if slot_minutes not in ALLOWED_SLOT_MINUTES:
        raise SchedulingError(
            ViolationKind.VALIDATION_FAILED,
            f'slot_minutes must be one of {", ".join(str(minutes) for minutes in ALLOWED_SLOT_MINUTES)}.',
        )


def _ensure_no_active_overlap(
    db: Session,
    instructor_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    exclude_schedule_id: int | None = None,
) -> None:
    query = db.query(InstructorSchedule).filter(
        InstructorSchedule.instructor_id == instructor_id,
        InstructorSchedule.day_of_week == day_of_week,
        InstructorSchedule.active.is_(True),
    )
    if exclude_schedule_id is not None:
        query = query.filter(InstructorSchedule.id != exclude_schedule_id)

    for existing in query.all():
        if intervals_overlap(start_time, end_time, existing.start_time, existing.end_time):
            raise SchedulingError(
                ViolationKind.SCHEDULE_OVERLAP,
                f'Overlaps schedule {existing.id} ({existing.start_time:%H:%M}-{existing.end_time:%H:%M}).',
            )


def list_schedules(db: Session, instructor_id: int) -> list[InstructorSchedule]:
    return db.query(InstructorSchedule).filter(
        InstructorSchedule.instructor_id == instructor_id,
    ).order_by(InstructorSchedule.day_of_week.asc(), InstructorSchedule.start_time.asc()).all()


def get_schedule(db: Session, schedule_id: int) -> InstructorSchedule:
    schedule = db.get(InstructorSchedule, schedule_id)
    if schedule is None:
        raise SchedulingError(ViolationKind.NOT_FOUND, 'Schedule not found.')
    return schedule


def create_schedule(
    db: Session,
    instructor_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    slot_minutes: int = 60,
    class_type_id: int | None = None,
) -> InstructorSchedule:
    _validate_window(day_of_week, start_time, end_time, slot_minutes)
    _ensure_no_active_overlap(db, instructor_id, day_of_week, start_time, end_time)

    schedule = InstructorSchedule(
        instructor_id=instructor_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        slot_minutes=slot_minutes,
        class_type_id=class_type_id,
        active=True,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    logger.info('Schedule %s created for instructor %s.', schedule.id, instructor_id)
    return schedule


def update_schedule(db: Session, schedule_id: int, patch: dict[str, Any]) -> InstructorSchedule:
    schedule = get_schedule(db, schedule_id)

    unknown_fields = set(patch) - SCHEDULE_FIELDS
    if unknown_fields:
        raise SchedulingError(
            ViolationKind.VALIDATION_FAILED,
            f'Fields cannot be updated: {", ".join(sorted(unknown_fields))}.',
        )

    empty_fields = [field for field, value in patch.items() if value is None and field != 'class_type_id']
    if empty_fields:
        raise SchedulingError(
            ViolationKind.VALIDATION_FAILED,
            f'Fields cannot be empty: {", ".join(sorted(empty_fields))}.',
        )

    values = {field: getattr(schedule, field) for field in SCHEDULE_FIELDS}
    values.update(patch)
    _validate_window(values['day_of_week'], values['start_time'], values['end_time'], values['slot_minutes'])
    if values['active']:
        _ensure_no_active_overlap(
            db,
            schedule.instructor_id,
            values['day_of_week'],
            values['start_time'],
            values['end_time'],
            exclude_schedule_id=schedule.id,
        )

    for field, value in patch.items():
        setattr(schedule, field, value)
    db.commit()
    db.refresh(schedule)
    return schedule


def toggle_schedule(db: Session, schedule_id: int) -> InstructorSchedule:
    schedule = get_schedule(db, schedule_id)
    return update_schedule(db, schedule_id, {'active': not schedule.active})


def delete_schedule(db: Session, schedule_id: int) -> None:
    # Existing appointments inside the window are kept as they are.
    schedule = get_schedule(db, schedule_id)
    db.delete(schedule)
    db.commit()
    logger.info('Schedule %s deleted.', schedule_id)


def create_override(
    db: Session,
    instructor_id: int,
    override_date: date,
    available: bool,
    start_time: time | None = None,
    end_time: time | None = None,
    slot_minutes: int = 60,
    class_type_id: int | None = None,
    reason: str | None = None,
) -> ScheduleOverride:
    if (start_time is None) != (end_time is None):
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'Provide both start and end time, or neither.')
    if available and start_time is None:
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'Extra availability needs a time window.')
    if start_time is not None:
        _validate_window(0, start_time, end_time, slot_minutes)

    override = ScheduleOverride(
        instructor_id=instructor_id,
        date=override_date,
        start_time=start_time,
        end_time=end_time,
        available=available,
        slot_minutes=slot_minutes,
        class_type_id=class_type_id,
        reason=reason,
    )
    db.add(override)
    db.commit()
    db.refresh(override)
    return override


def delete_override(db: Session, override_id: int) -> None:
    override = db.get(ScheduleOverride, override_id)
    if override is None:
        raise SchedulingError(ViolationKind.NOT_FOUND, 'Schedule override not found.')
    db.delete(override)
    db.commit()

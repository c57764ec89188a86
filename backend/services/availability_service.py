"""Expansion of weekly instructor schedules into bookable slots."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import SchedulingError, ViolationKind
from backend.models.appointment import CANCELLED, Appointment
from backend.models.availability import InstructorSchedule, ScheduleOverride
from backend.services.time_ranges import day_of_week, intervals_overlap, iterate_dates, partition_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    date: date
    start_time: time
    end_time: time


def default_booking_window(today: date) -> tuple[date, date]:
    return today + timedelta(days=1), today + timedelta(days=config.BOOKING_HORIZON_DAYS)


def _matches_class_type(row_class_type_id: int | None, class_type_id: int | None) -> bool:
    return class_type_id is None or row_class_type_id is None or row_class_type_id == class_type_id


def _busy_windows_by_date(db: Session, instructor_id: int, date_from: date, date_to: date) -> dict[date, list[tuple[time, time]]]:
    rows = db.query(Appointment.date, Appointment.start_time, Appointment.end_time).filter(
        Appointment.instructor_id == instructor_id,
        Appointment.status != CANCELLED,
        Appointment.date >= date_from,
        Appointment.date <= date_to,
    ).all()

    busy: dict[date, list[tuple[time, time]]] = defaultdict(list)
    for appointment_date, start_time, end_time in rows:
        busy[appointment_date].append((start_time, end_time))
    return busy


def _overrides_by_date(db: Session, instructor_id: int, date_from: date, date_to: date) -> dict[date, list[ScheduleOverride]]:
    rows = db.query(ScheduleOverride).filter(
        ScheduleOverride.instructor_id == instructor_id,
        ScheduleOverride.date >= date_from,
        ScheduleOverride.date <= date_to,
    ).all()

    overrides: dict[date, list[ScheduleOverride]] = defaultdict(list)
    for override in rows:
        overrides[override.date].append(override)
    return overrides


def compute_available_slots(
    db: Session,
    instructor_id: int,
    class_type_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    *,
    now: datetime | None = None,
) -> list[Slot]:
    now = now or datetime.now()
    default_from, default_to = default_booking_window(now.date())
    date_from = date_from or default_from
    date_to = date_to or default_to

    if date_from > date_to:
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'date_from must not be after date_to.')

    schedules = db.query(InstructorSchedule).filter(
        InstructorSchedule.instructor_id == instructor_id,
        InstructorSchedule.active.is_(True),
    ).order_by(InstructorSchedule.start_time.asc(), InstructorSchedule.id.asc()).all()

    schedules_by_day: dict[int, list[InstructorSchedule]] = defaultdict(list)
    for schedule in schedules:
        if _matches_class_type(schedule.class_type_id, class_type_id):
            schedules_by_day[schedule.day_of_week].append(schedule)

    busy_by_date = _busy_windows_by_date(db, instructor_id, date_from, date_to)
    overrides_by_date = _overrides_by_date(db, instructor_id, date_from, date_to)

    available_slots: list[Slot] = []
    for current_day in iterate_dates(date_from, date_to):
        day_overrides = overrides_by_date.get(current_day, [])
        closed_all_day = any(
            not override.available and override.start_time is None for override in day_overrides
        )

        windows: list[tuple[time, time, int]] = []
        if not closed_all_day:
            windows.extend(
                (schedule.start_time, schedule.end_time, schedule.slot_minutes)
                for schedule in schedules_by_day.get(day_of_week(current_day), [])
            )
        windows.extend(
            (override.start_time, override.end_time, override.slot_minutes)
            for override in day_overrides
            if override.available
            and override.start_time is not None
            and override.end_time is not None
            and _matches_class_type(override.class_type_id, class_type_id)
        )

        blocked_windows = [
            (override.start_time, override.end_time)
            for override in day_overrides
            if not override.available and override.start_time is not None and override.end_time is not None
        ]
        blocked_windows.extend(busy_by_date.get(current_day, []))

        # Overlapping windows are unioned; the first window to produce a
        # start time wins.
        slots_by_start: dict[time, time] = {}
        for window_start, window_end, slot_minutes in sorted(windows, key=lambda window: window[0]):
            for slot_start, slot_end in partition_window(window_start, window_end, slot_minutes):
                slots_by_start.setdefault(slot_start, slot_end)

        for slot_start in sorted(slots_by_start):
            slot_end = slots_by_start[slot_start]
            if datetime.combine(current_day, slot_start) <= now:
                continue
            if any(intervals_overlap(slot_start, slot_end, busy_start, busy_end) for busy_start, busy_end in blocked_windows):
                continue
            available_slots.append(Slot(date=current_day, start_time=slot_start, end_time=slot_end))

    logger.debug(
        'Computed %d slots for instructor %s between %s and %s.',
        len(available_slots),
        instructor_id,
        date_from,
        date_to,
    )
    return available_slots

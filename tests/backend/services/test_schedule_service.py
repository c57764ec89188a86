from datetime import date, time

import pytest

from backend.core.errors import SchedulingError, ViolationKind
from backend.models.availability import ScheduleOverride
from backend.services import schedule_service


def expect_kind(kind, operation, *args, **kwargs) -> None:
    with pytest.raises(SchedulingError) as exception_info:
        operation(*args, **kwargs)
    assert exception_info.value.kind == kind


def test_create_schedule(db, school) -> None:
    schedule = schedule_service.create_schedule(db, school.instructor_id, 1, time(8, 0), time(12, 0), slot_minutes=30)

    assert schedule.id is not None
    assert schedule.active is True
    assert schedule.slot_minutes == 30


@pytest.mark.parametrize(
    ('day', 'start', 'end', 'slot_minutes'),
    [
        (7, time(8, 0), time(12, 0), 60),
        (-1, time(8, 0), time(12, 0), 60),
        (1, time(12, 0), time(8, 0), 60),
        (1, time(8, 0), time(8, 0), 60),
        (1, time(8, 0), time(12, 0), 45),
    ],
)
def test_create_schedule_rejects_invalid_window(db, school, day, start, end, slot_minutes) -> None:
    expect_kind(
        ViolationKind.VALIDATION_FAILED,
        schedule_service.create_schedule,
        db, school.instructor_id, day, start, end, slot_minutes,
    )


def test_overlapping_active_schedules_are_rejected(db, school) -> None:
    schedule_service.create_schedule(db, school.instructor_id, 1, time(8, 0), time(12, 0))

    expect_kind(
        ViolationKind.SCHEDULE_OVERLAP,
        schedule_service.create_schedule,
        db, school.instructor_id, 1, time(11, 0), time(13, 0),
    )


def test_adjacent_and_other_day_schedules_are_allowed(db, school) -> None:
    schedule_service.create_schedule(db, school.instructor_id, 1, time(8, 0), time(12, 0))
    schedule_service.create_schedule(db, school.instructor_id, 1, time(12, 0), time(14, 0))
    schedule_service.create_schedule(db, school.instructor_id, 2, time(8, 0), time(12, 0))
    schedule_service.create_schedule(db, school.other_instructor_id, 1, time(8, 0), time(12, 0))

    assert len(schedule_service.list_schedules(db, school.instructor_id)) == 3


def test_list_schedules_is_ordered_by_day_and_time(db, school) -> None:
    schedule_service.create_schedule(db, school.instructor_id, 3, time(8, 0), time(9, 0))
    schedule_service.create_schedule(db, school.instructor_id, 1, time(14, 0), time(15, 0))
    schedule_service.create_schedule(db, school.instructor_id, 1, time(8, 0), time(9, 0))

    schedules = schedule_service.list_schedules(db, school.instructor_id)

    assert [(schedule.day_of_week, schedule.start_time) for schedule in schedules] == [
        (1, time(8, 0)),
        (1, time(14, 0)),
        (3, time(8, 0)),
    ]


def test_inactive_schedule_does_not_block_new_one(db, school) -> None:
    schedule = schedule_service.create_schedule(db, school.instructor_id, 1, time(8, 0), time(12, 0))
    schedule_service.toggle_schedule(db, schedule.id)

    replacement = schedule_service.create_schedule(db, school.instructor_id, 1, time(9, 0), time(11, 0))

    assert replacement.active is True
    expect_kind(ViolationKind.SCHEDULE_OVERLAP, schedule_service.toggle_schedule, db, schedule.id)


def test_update_schedule_revalidates(db, school) -> None:
    first = schedule_service.create_schedule(db, school.instructor_id, 1, time(8, 0), time(10, 0))
    schedule_service.create_schedule(db, school.instructor_id, 1, time(12, 0), time(14, 0))

    updated = schedule_service.update_schedule(db, first.id, {'end_time': time(12, 0)})
    assert updated.end_time == time(12, 0)

    expect_kind(ViolationKind.SCHEDULE_OVERLAP, schedule_service.update_schedule, db, first.id, {'end_time': time(13, 0)})
    expect_kind(ViolationKind.VALIDATION_FAILED, schedule_service.update_schedule, db, first.id, {'start_time': time(12, 30)})
    expect_kind(ViolationKind.VALIDATION_FAILED, schedule_service.update_schedule, db, first.id, {'start_time': None})
    expect_kind(ViolationKind.VALIDATION_FAILED, schedule_service.update_schedule, db, first.id, {'instructor_id': 9})


def test_update_schedule_can_clear_class_type(db, school) -> None:
    schedule = schedule_service.create_schedule(
        db, school.instructor_id, 1, time(8, 0), time(10, 0), class_type_id=school.practical_id,
    )

    updated = schedule_service.update_schedule(db, schedule.id, {'class_type_id': None})

    assert updated.class_type_id is None


def test_delete_schedule(db, school) -> None:
    schedule = schedule_service.create_schedule(db, school.instructor_id, 1, time(8, 0), time(10, 0))

    schedule_service.delete_schedule(db, schedule.id)

    expect_kind(ViolationKind.NOT_FOUND, schedule_service.get_schedule, db, schedule.id)


def test_create_full_day_override(db, school) -> None:
    override = schedule_service.create_override(db, school.instructor_id, date(2026, 3, 9), False, reason='Holiday')

    assert override.start_time is None
    assert override.available is False


def test_override_validation(db, school) -> None:
    expect_kind(
        ViolationKind.VALIDATION_FAILED,
        schedule_service.create_override,
        db, school.instructor_id, date(2026, 3, 9), False, start_time=time(8, 0),
    )
    expect_kind(
        ViolationKind.VALIDATION_FAILED,
        schedule_service.create_override,
        db, school.instructor_id, date(2026, 3, 9), True,
    )
    expect_kind(
        ViolationKind.VALIDATION_FAILED,
        schedule_service.create_override,
        db, school.instructor_id, date(2026, 3, 9), True, start_time=time(10, 0), end_time=time(9, 0),
    )


def test_delete_override(db, school) -> None:
    override = schedule_service.create_override(
        db, school.instructor_id, date(2026, 3, 9), True, start_time=time(15, 0), end_time=time(17, 0),
    )

    schedule_service.delete_override(db, override.id)

    assert db.query(ScheduleOverride).count() == 0
    expect_kind(ViolationKind.NOT_FOUND, schedule_service.delete_override, db, override.id)

from datetime import date, datetime, time

import pytest

from backend.core.errors import SchedulingError, ViolationKind
from backend.models.appointment import Appointment
from backend.models.penalty import LATE_CANCELLATION, NO_SHOW, Penalty
from backend.services import penalty_service
from backend.services.settings_service import AttendanceSettings, CancellationSettings

CANCELLATION = CancellationSettings(
    hours_limit=4,
    allow_after_limit=True,
    late_penalty_enabled=True,
    late_penalty_amount=50000,
)


def appointment_at(start: datetime, student_id=1) -> Appointment:
    return Appointment(
        instructor_id=1,
        student_id=student_id,
        class_type_id=1,
        date=start.date(),
        start_time=start.time(),
        end_time=time(start.hour + 1, start.minute),
        status='scheduled',
    )


def attendance(**overrides) -> AttendanceSettings:
    values = dict(
        tolerance_minutes=10,
        count_absent_as_no_show=True,
        no_show_penalty_enabled=True,
        no_show_penalty_amount=50000,
        no_show_limit=3,
    )
    values.update(overrides)
    return AttendanceSettings(**values)


def add_completed(db, school, attended, count=1) -> None:
    for index in range(count):
        db.add(Appointment(
            instructor_id=school.instructor_id,
            student_id=school.student_id,
            class_type_id=school.theoretical_id,
            date=date(2026, 2, 2 + index),
            start_time=time(8, 0),
            end_time=time(9, 0),
            status='completed',
            attended=attended,
        ))
    db.commit()


@pytest.mark.parametrize(
    ('now', 'expected'),
    [
        (datetime(2026, 3, 9, 5, 0), False),
        (datetime(2026, 3, 9, 6, 0), False),
        (datetime(2026, 3, 9, 6, 1), True),
        (datetime(2026, 3, 9, 9, 30), True),
    ],
)
def test_is_cancellation_late(now, expected) -> None:
    appointment = appointment_at(datetime(2026, 3, 9, 10, 0))

    assert penalty_service.is_cancellation_late(appointment, CANCELLATION, now) is expected


def test_cancellation_without_student_is_never_penalized() -> None:
    appointment = appointment_at(datetime(2026, 3, 9, 10, 0), student_id=None)

    assert penalty_service.should_penalize_cancellation(appointment, CANCELLATION, datetime(2026, 3, 9, 9, 0)) is False


def test_should_penalize_no_show_follows_settings() -> None:
    assert penalty_service.should_penalize_no_show(False, attendance()) is True
    assert penalty_service.should_penalize_no_show(True, attendance()) is False
    assert penalty_service.should_penalize_no_show(False, attendance(count_absent_as_no_show=False)) is False
    assert penalty_service.should_penalize_no_show(False, attendance(no_show_penalty_enabled=False)) is False


def test_debt_separates_fines_from_other_charges(db, school) -> None:
    db.add_all([
        Penalty(user_id=school.student_id, amount=50000, reason=LATE_CANCELLATION, paid=False),
        Penalty(user_id=school.student_id, amount=30000, reason=NO_SHOW, paid=False),
        Penalty(user_id=school.student_id, amount=120000, reason='Course fee', paid=False),
        Penalty(user_id=school.student_id, amount=99999, reason=NO_SHOW, paid=True),
        Penalty(user_id=school.other_student_id, amount=50000, reason=NO_SHOW, paid=False),
    ])
    db.commit()

    debt = penalty_service.get_student_debt(db, school.student_id)

    assert debt.outstanding_fines == 80000
    assert debt.pending_payments == 120000
    assert debt.total_debt == 200000


def test_student_with_unpaid_penalty_cannot_book(db, school, make_settings) -> None:
    db.add(Penalty(user_id=school.student_id, amount=50000, reason=LATE_CANCELLATION, paid=False))
    db.commit()

    eligibility = penalty_service.can_student_book(db, school.student_id, make_settings())

    assert eligibility.can_book is False
    assert eligibility.reason == 'pending debt'
    assert eligibility.kind == ViolationKind.PENDING_DEBT


def test_no_show_limit_blocks_booking(db, school, make_settings) -> None:
    add_completed(db, school, attended=False, count=3)

    eligibility = penalty_service.can_student_book(db, school.student_id, make_settings(attendance_no_show_limit=3))

    assert eligibility.can_book is False
    assert eligibility.reason == 'no-show limit exceeded'
    assert eligibility.kind == ViolationKind.NO_SHOW_LIMIT_EXCEEDED


def test_below_no_show_limit_can_book(db, school, make_settings) -> None:
    add_completed(db, school, attended=False, count=2)
    add_completed(db, school, attended=True, count=4)

    eligibility = penalty_service.can_student_book(db, school.student_id, make_settings(attendance_no_show_limit=3))

    assert eligibility.can_book is True
    assert eligibility.reason is None


def test_debt_is_checked_before_no_shows(db, school, make_settings) -> None:
    add_completed(db, school, attended=False, count=5)
    db.add(Penalty(user_id=school.student_id, amount=1, reason=NO_SHOW, paid=False))
    db.commit()

    eligibility = penalty_service.can_student_book(db, school.student_id, make_settings())

    assert eligibility.kind == ViolationKind.PENDING_DEBT


def test_paying_penalty_restores_booking(db, school, make_settings) -> None:
    penalty = penalty_service.create_penalty(db, school.student_id, 50000, LATE_CANCELLATION)

    paid = penalty_service.mark_penalty_paid(db, penalty.id, now=datetime(2026, 3, 3, 12, 0))

    assert paid.paid is True
    assert paid.paid_at == datetime(2026, 3, 3, 12, 0)
    assert penalty_service.can_student_book(db, school.student_id, make_settings()).can_book is True


def test_paying_twice_keeps_first_payment_time(db, school) -> None:
    penalty = penalty_service.create_penalty(db, school.student_id, 50000, NO_SHOW)
    penalty_service.mark_penalty_paid(db, penalty.id, now=datetime(2026, 3, 3, 12, 0))

    again = penalty_service.mark_penalty_paid(db, penalty.id, now=datetime(2026, 3, 4, 12, 0))

    assert again.paid_at == datetime(2026, 3, 3, 12, 0)


def test_paying_unknown_penalty_is_not_found(db) -> None:
    with pytest.raises(SchedulingError) as exception_info:
        penalty_service.mark_penalty_paid(db, 404)

    assert exception_info.value.kind == ViolationKind.NOT_FOUND


@pytest.mark.parametrize(
    ('amount', 'reason', 'appointment_id', 'kind'),
    [
        (0, 'Course fee', None, ViolationKind.VALIDATION_FAILED),
        (-10, 'Course fee', None, ViolationKind.VALIDATION_FAILED),
        (100, '   ', None, ViolationKind.VALIDATION_FAILED),
        (100, 'Course fee', 404, ViolationKind.NOT_FOUND),
    ],
)
def test_create_penalty_validates_input(db, school, amount, reason, appointment_id, kind) -> None:
    with pytest.raises(SchedulingError) as exception_info:
        penalty_service.create_penalty(db, school.student_id, amount, reason, appointment_id)

    assert exception_info.value.kind == kind
    assert db.query(Penalty).count() == 0


def test_list_penalties_filters_by_user(db, school) -> None:
    penalty_service.create_penalty(db, school.student_id, 100, 'Course fee')
    penalty_service.create_penalty(db, school.other_student_id, 200, 'Course fee')

    assert [penalty.amount for penalty in penalty_service.list_penalties(db, user_id=school.student_id)] == [100]
    assert len(penalty_service.list_penalties(db)) == 2


def test_absences_do_not_count_when_not_treated_as_no_shows(db, school, make_settings) -> None:
    add_completed(db, school, attended=False, count=3)

    eligibility = penalty_service.can_student_book(
        db,
        school.student_id,
        make_settings(attendance_no_show_limit=3, attendance_count_absent_as_no_show=False),
    )

    assert eligibility.can_book is True

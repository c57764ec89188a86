"""Late-cancellation and no-show penalties, and the debt that gates booking."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError, ViolationKind
from backend.models.appointment import COMPLETED, Appointment
from backend.models.penalty import LATE_CANCELLATION, NO_SHOW, Penalty
from backend.services.settings_service import AttendanceSettings, CancellationSettings, SettingsResolver
from backend.services.time_ranges import hours_until

logger = logging.getLogger(__name__)

AUTOMATIC_PENALTY_REASONS = (LATE_CANCELLATION, NO_SHOW)


@dataclass(frozen=True)
class StudentDebt:
    total_debt: int
    outstanding_fines: int
    pending_payments: int


@dataclass(frozen=True)
class BookingEligibility:
    can_book: bool
    reason: str | None = None
    kind: ViolationKind | None = None


def is_cancellation_late(appointment: Appointment, settings: CancellationSettings, now: datetime) -> bool:
    # Strictly less than: cancelling exactly at the limit is on time.
    return hours_until(appointment.starts_at, now) < settings.hours_limit


def should_penalize_cancellation(appointment: Appointment, settings: CancellationSettings, now: datetime) -> bool:
    if appointment.student_id is None:
        return False
    if not settings.late_penalty_enabled:
        return False
    return is_cancellation_late(appointment, settings, now)


def should_penalize_no_show(attended: bool, settings: AttendanceSettings) -> bool:
    if attended:
        return False
    return settings.count_absent_as_no_show and settings.no_show_penalty_enabled


def count_no_shows(db: Session, student_id: int) -> int:
    return db.query(func.count(Appointment.id)).filter(
        Appointment.student_id == student_id,
        Appointment.status == COMPLETED,
        Appointment.attended.is_(False),
    ).scalar() or 0


def get_student_debt(db: Session, student_id: int) -> StudentDebt:
    rows = db.query(Penalty.reason, func.coalesce(func.sum(Penalty.amount), 0)).filter(
        Penalty.user_id == student_id,
        Penalty.paid.is_(False),
    ).group_by(Penalty.reason).all()

    outstanding_fines = 0
    pending_payments = 0
    for reason, amount in rows:
        if reason in AUTOMATIC_PENALTY_REASONS:
            outstanding_fines += int(amount)
        else:
            pending_payments += int(amount)

    return StudentDebt(
        total_debt=outstanding_fines + pending_payments,
        outstanding_fines=outstanding_fines,
        pending_payments=pending_payments,
    )


def can_student_book(db: Session, student_id: int, settings: SettingsResolver) -> BookingEligibility:
    debt = get_student_debt(db, student_id)
    if debt.total_debt > 0:
        return BookingEligibility(can_book=False, reason='pending debt', kind=ViolationKind.PENDING_DEBT)

    attendance = settings.attendance_settings()
    if not attendance.count_absent_as_no_show:
        return BookingEligibility(can_book=True)
    if count_no_shows(db, student_id) >= attendance.no_show_limit:
        return BookingEligibility(
            can_book=False,
            reason='no-show limit exceeded',
            kind=ViolationKind.NO_SHOW_LIMIT_EXCEEDED,
        )

    return BookingEligibility(can_book=True)


def add_penalty(db: Session, user_id: int, amount: int, reason: str, appointment_id: int | None = None) -> Penalty:
    """Stage a penalty in the current transaction; the caller commits."""
    penalty = Penalty(
        user_id=user_id,
        appointment_id=appointment_id,
        amount=amount,
        reason=reason,
        paid=False,
    )
    db.add(penalty)
    logger.info('Penalty of %s (%s) recorded for user %s.', amount, reason, user_id)
    return penalty


def create_penalty(db: Session, user_id: int, amount: int, reason: str, appointment_id: int | None = None) -> Penalty:
    if amount <= 0:
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'Penalty amount must be positive.')
    if not reason.strip():
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'A reason is required.')
    if appointment_id is not None and db.get(Appointment, appointment_id) is None:
        raise SchedulingError(ViolationKind.NOT_FOUND, 'Appointment not found.')

    penalty = add_penalty(db, user_id, amount, reason.strip(), appointment_id)
    db.commit()
    db.refresh(penalty)
    return penalty


def mark_penalty_paid(db: Session, penalty_id: int, now: datetime | None = None) -> Penalty:
    penalty = db.get(Penalty, penalty_id)
    if penalty is None:
        raise SchedulingError(ViolationKind.NOT_FOUND, 'Penalty not found.')

    if penalty.paid:
        return penalty

    penalty.paid = True
    penalty.paid_at = now or datetime.now()
    db.commit()
    db.refresh(penalty)
    logger.info('Penalty %s settled.', penalty_id)
    return penalty


def list_penalties(db: Session, user_id: int | None = None) -> list[Penalty]:
    query = db.query(Penalty)
    if user_id is not None:
        query = query.filter(Penalty.user_id == user_id)
    return query.order_by(Penalty.created_at.desc(), Penalty.id.desc()).all()

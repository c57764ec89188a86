"""Appointment lifecycle: creation, updates, status transitions and deletion.

Every operation either commits all of its changes (the appointment plus any
penalty it triggers) or rolls back and raises ``SchedulingError``.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError, ViolationKind
from backend.database import APPOINTMENT_EXCLUSION_CONSTRAINTS
from backend.models.appointment import (
    APPOINTMENT_STATUSES,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    SCHEDULED,
    Appointment,
)
from backend.models.class_type import ClassType
from backend.models.penalty import LATE_CANCELLATION, NO_SHOW, Penalty
from backend.services import penalty_service, resource_service
from backend.services.conflict_validator import AppointmentCandidate, Check, ConflictValidator
from backend.services.settings_service import SettingsResolver

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    SCHEDULED: {CONFIRMED, CANCELLED, COMPLETED},
    CONFIRMED: {CANCELLED, COMPLETED},
    CANCELLED: set(),
    COMPLETED: set(),
}

PATCHABLE_FIELDS = frozenset(
    {'instructor_id', 'student_id', 'class_type_id', 'resource_id', 'date', 'start_time', 'end_time'}
)
REQUIRED_FIELDS = frozenset({'instructor_id', 'class_type_id', 'date', 'start_time', 'end_time'})
TIME_FIELDS = frozenset({'date', 'start_time', 'end_time'})


@dataclass(frozen=True)
class LifecycleResult:
    appointment: Appointment
    penalty: Penalty | None = None

    @property
    def penalty_applied(self) -> bool:
        return self.penalty is not None


def checks_for_patch(changed_fields: set[str]) -> frozenset[Check]:
    """Select the validator checks affected by the changed fields."""
    time_changed = bool(changed_fields & TIME_FIELDS)
    checks: set[Check] = set()

    if changed_fields & {'class_type_id', 'resource_id'}:
        checks.add(Check.RESOURCE_REQUIREMENT)
    if time_changed or 'resource_id' in changed_fields:
        checks.add(Check.RESOURCE_AVAILABILITY)
    if time_changed or 'instructor_id' in changed_fields:
        checks.add(Check.INSTRUCTOR)
    if time_changed or changed_fields & {'student_id', 'class_type_id'}:
        checks.add(Check.STUDENT)

    return frozenset(checks)


def _candidate_from(appointment: Appointment, patch: dict[str, Any] | None = None) -> AppointmentCandidate:
    values = {field: getattr(appointment, field) for field in PATCHABLE_FIELDS}
    values.update(patch or {})
    return AppointmentCandidate(**values)


class AppointmentService:
    def __init__(
        self,
        db: Session,
        settings: SettingsResolver,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock

    def _validator(self) -> ConflictValidator:
        return ConflictValidator(self.db, now=self.clock())

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            diag = getattr(exc.orig, 'diag', None)
            constraint_name = getattr(diag, 'constraint_name', None)
            kind = APPOINTMENT_EXCLUSION_CONSTRAINTS.get(constraint_name)
            if kind is None:
                raise
            logger.warning('Overlap rejected by constraint %s.', constraint_name)
            raise SchedulingError(ViolationKind(kind)) from exc

    def _enforce_booking_gate(self, student_id: int) -> None:
        eligibility = penalty_service.can_student_book(self.db, student_id, self.settings)
        if not eligibility.can_book:
            raise SchedulingError(eligibility.kind, eligibility.reason)

    def get(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise SchedulingError(ViolationKind.NOT_FOUND, 'Appointment not found.')
        return appointment

    def list_appointments(
        self,
        instructor_id: int | None = None,
        student_id: int | None = None,
        on_date: date | None = None,
        include_inactive: bool = False,
    ) -> list[Appointment]:
        query = self.db.query(Appointment)
        if instructor_id is not None:
            query = query.filter(Appointment.instructor_id == instructor_id)
        if student_id is not None:
            query = query.filter(Appointment.student_id == student_id)
        if on_date is not None:
            query = query.filter(Appointment.date == on_date)
        if not include_inactive:
            query = query.filter(Appointment.status.in_((SCHEDULED, CONFIRMED)))
        return query.order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()

    def create(
        self,
        candidate: AppointmentCandidate,
        *,
        enforce_horizon: bool = False,
        enforce_booking_gate: bool = False,
    ) -> Appointment:
        if enforce_booking_gate and candidate.student_id is not None:
            self._enforce_booking_gate(candidate.student_id)

        result = self._validator().validate(candidate, enforce_horizon=enforce_horizon)
        if not result.valid:
            raise SchedulingError.from_violation(result.violation)

        appointment = Appointment(
            instructor_id=candidate.instructor_id,
            student_id=candidate.student_id,
            class_type_id=candidate.class_type_id,
            resource_id=candidate.resource_id,
            date=candidate.date,
            start_time=candidate.start_time,
            end_time=candidate.end_time,
            status=SCHEDULED,
        )
        self.db.add(appointment)
        self._commit()
        self.db.refresh(appointment)

        logger.info(
            'Appointment %s created for instructor %s on %s %s-%s.',
            appointment.id,
            appointment.instructor_id,
            appointment.date,
            appointment.start_time,
            appointment.end_time,
        )
        return appointment

    def book_for_student(self, candidate: AppointmentCandidate) -> Appointment:
        """Student booking path: booking gate, horizon and automatic resource."""
        if candidate.student_id is None:
            raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'A student is required to book a class.')
        self._enforce_booking_gate(candidate.student_id)

        if candidate.resource_id is None:
            class_type = self.db.get(ClassType, candidate.class_type_id)
            if class_type is not None and class_type.requires_resource:
                resource = resource_service.select_resource_for_class_type(
                    self.db,
                    candidate.instructor_id,
                    class_type,
                    candidate.date,
                    candidate.start_time,
                    candidate.end_time,
                )
                if resource is not None:
                    candidate = replace(candidate, resource_id=resource.id)
                elif resource_service.candidate_resources(self.db, candidate.instructor_id, class_type.resource_type):
                    raise SchedulingError(ViolationKind.RESOURCE_CONFLICT, 'No resource is free at that time.')

        return self.create(candidate, enforce_horizon=True)

    def update(self, appointment_id: int, patch: dict[str, Any]) -> Appointment:
        appointment = self.get(appointment_id)
        if appointment.status == COMPLETED:
            raise SchedulingError(ViolationKind.APPOINTMENT_FINALIZED)

        unknown_fields = set(patch) - PATCHABLE_FIELDS
        if unknown_fields:
            raise SchedulingError(
                ViolationKind.VALIDATION_FAILED,
                f'Fields cannot be updated: {", ".join(sorted(unknown_fields))}.',
            )
        missing_values = [field for field in REQUIRED_FIELDS & set(patch) if patch[field] is None]
        if missing_values:
            raise SchedulingError(
                ViolationKind.VALIDATION_FAILED,
                f'Fields cannot be empty: {", ".join(sorted(missing_values))}.',
            )

        changed = {field: value for field, value in patch.items() if getattr(appointment, field) != value}
        if not changed:
            return appointment

        checks = checks_for_patch(set(changed))
        if appointment.status == CANCELLED:
            # A cancelled row holds no time, so only its own shape is checked.
            checks = checks & {Check.RESOURCE_REQUIREMENT}

        candidate = _candidate_from(appointment, changed)
        result = self._validator().validate(
            candidate,
            exclude_appointment_id=appointment.id,
            checks=checks,
        )
        if not result.valid:
            raise SchedulingError.from_violation(result.violation)

        for field, value in changed.items():
            setattr(appointment, field, value)
        self._commit()
        self.db.refresh(appointment)

        logger.info('Appointment %s updated (%s).', appointment.id, ', '.join(sorted(changed)))
        return appointment

    def set_status(self, appointment_id: int, new_status: str, *, apply_cancellation_policy: bool = True) -> Appointment:
        if new_status == CANCELLED:
            return self.cancel(appointment_id, apply_policy=apply_cancellation_policy).appointment

        appointment = self._transition_target(appointment_id, new_status)
        if appointment.status == new_status:
            return appointment

        appointment.status = new_status
        self._commit()
        self.db.refresh(appointment)
        logger.info('Appointment %s is now %s.', appointment.id, new_status)
        return appointment

    def _transition_target(self, appointment_id: int, new_status: str) -> Appointment:
        if new_status not in APPOINTMENT_STATUSES:
            raise SchedulingError(ViolationKind.VALIDATION_FAILED, f'Unknown status: {new_status}.')

        appointment = self.get(appointment_id)
        if appointment.status == COMPLETED:
            raise SchedulingError(ViolationKind.APPOINTMENT_FINALIZED)
        if appointment.status != new_status and new_status not in ALLOWED_TRANSITIONS[appointment.status]:
            raise SchedulingError(
                ViolationKind.INVALID_STATUS_TRANSITION,
                f'Cannot change status from {appointment.status} to {new_status}.',
            )
        return appointment

    def cancel(self, appointment_id: int, reason: str | None = None, *, apply_policy: bool = True) -> LifecycleResult:
        """Cancel an appointment.

        With ``apply_policy`` (student and admin cancellations) a late
        cancellation is either rejected or penalized according to the
        cancellation settings. Instructor-initiated cancellations skip it.
        """
        appointment = self._transition_target(appointment_id, CANCELLED)
        if appointment.status == CANCELLED:
            return LifecycleResult(appointment=appointment)

        penalty = None
        if apply_policy:
            now = self.clock()
            settings = self.settings.cancellation_settings()
            if penalty_service.is_cancellation_late(appointment, settings, now) and not settings.allow_after_limit:
                raise SchedulingError(
                    ViolationKind.CANCELLATION_TOO_LATE,
                    f'Classes must be cancelled at least {settings.hours_limit} hours in advance.',
                )
            if penalty_service.should_penalize_cancellation(appointment, settings, now):
                penalty = penalty_service.add_penalty(
                    self.db,
                    user_id=appointment.student_id,
                    amount=settings.late_penalty_amount,
                    reason=LATE_CANCELLATION,
                    appointment_id=appointment.id,
                )

        appointment.status = CANCELLED
        appointment.cancellation_reason = reason or None
        self._commit()
        self.db.refresh(appointment)
        if penalty is not None:
            self.db.refresh(penalty)

        logger.info('Appointment %s cancelled (penalty applied: %s).', appointment.id, penalty is not None)
        return LifecycleResult(appointment=appointment, penalty=penalty)

    def record_attendance(self, appointment_id: int, attended: bool) -> LifecycleResult:
        """Mark attendance, complete the class and apply the no-show penalty."""
        appointment = self._transition_target(appointment_id, COMPLETED)
        settings = self.settings.attendance_settings()
        now = self.clock()
        tolerance = timedelta(minutes=settings.tolerance_minutes)
        if now < appointment.starts_at - tolerance:
            raise SchedulingError(
                ViolationKind.VALIDATION_FAILED,
                'Attendance can only be recorded once the class is about to start.',
            )
        if not attended and now < appointment.starts_at + tolerance:
            raise SchedulingError(
                ViolationKind.VALIDATION_FAILED,
                'A student cannot be marked absent before the arrival tolerance has elapsed.',
            )

        penalty = None
        if appointment.student_id is not None and penalty_service.should_penalize_no_show(attended, settings):
            penalty = penalty_service.add_penalty(
                self.db,
                user_id=appointment.student_id,
                amount=settings.no_show_penalty_amount,
                reason=NO_SHOW,
                appointment_id=appointment.id,
            )

        appointment.attended = attended
        appointment.status = COMPLETED
        self._commit()
        self.db.refresh(appointment)
        if penalty is not None:
            self.db.refresh(penalty)

        logger.info('Attendance recorded for appointment %s (attended: %s).', appointment.id, attended)
        return LifecycleResult(appointment=appointment, penalty=penalty)

    def delete(self, appointment_id: int) -> None:
        appointment = self.get(appointment_id)
        if appointment.status == COMPLETED:
            raise SchedulingError(ViolationKind.APPOINTMENT_FINALIZED)

        self.db.delete(appointment)
        self._commit()
        logger.info('Appointment %s deleted.', appointment_id)

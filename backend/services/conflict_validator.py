"""Pre-commit checks for a proposed appointment.

The checks run in a fixed order and the first failure is reported, so every
rejection maps to one specific message. They are a fast, descriptive
pre-check; overlap is enforced authoritatively by the database constraints
installed in ``backend.database.ensure_appointment_schema``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum

from sqlalchemy.orm import Query, Session

from backend.core import config
from backend.core.errors import Violation, ViolationKind
from backend.models.appointment import CANCELLED, Appointment
from backend.models.class_type import ClassType
from backend.models.resource import Resource, ResourceBlock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppointmentCandidate:
    instructor_id: int
    student_id: int | None
    class_type_id: int
    date: date
    start_time: time
    end_time: time
    resource_id: int | None = None


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    violation: Violation | None = None

    @classmethod
    def ok(cls) -> 'ValidationResult':
        return cls(valid=True)

    @classmethod
    def fail(cls, kind: ViolationKind, message: str | None = None) -> 'ValidationResult':
        return cls(valid=False, violation=Violation.of(kind, message))


class Check(str, Enum):
    RESOURCE_REQUIREMENT = 'resource_requirement'
    RESOURCE_AVAILABILITY = 'resource_availability'
    INSTRUCTOR = 'instructor'
    STUDENT = 'student'
    HORIZON = 'horizon'


ALL_CHECKS = frozenset(Check)


def is_within_booking_horizon(candidate_date: date, start_time: time, now: datetime) -> bool:
    # Same window the availability generator offers: tomorrow through today + horizon.
    today = now.date()
    if datetime.combine(candidate_date, start_time) <= now:
        return False
    return today + timedelta(days=1) <= candidate_date <= today + timedelta(days=config.BOOKING_HORIZON_DAYS)


class ConflictValidator:
    def __init__(self, db: Session, now: datetime | None = None):
        self.db = db
        self.now = now or datetime.now()

    def _active_overlapping(self, candidate: AppointmentCandidate, exclude_appointment_id: int | None) -> Query:
        query = self.db.query(Appointment).filter(
            Appointment.date == candidate.date,
            Appointment.status != CANCELLED,
            Appointment.start_time < candidate.end_time,
            Appointment.end_time > candidate.start_time,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query

    def check_resource_requirement(self, candidate: AppointmentCandidate) -> ValidationResult:
        class_type = self.db.get(ClassType, candidate.class_type_id)
        if class_type is None:
            return ValidationResult.fail(ViolationKind.NOT_FOUND, 'Class type not found.')

        if class_type.requires_resource and candidate.resource_id is None:
            return ValidationResult.fail(ViolationKind.MISSING_RESOURCE)

        return ValidationResult.ok()

    def check_resource_availability(
        self,
        candidate: AppointmentCandidate,
        exclude_appointment_id: int | None = None,
    ) -> ValidationResult:
        if candidate.resource_id is None:
            return ValidationResult.ok()

        resource = self.db.get(Resource, candidate.resource_id)
        if resource is None:
            return ValidationResult.fail(ViolationKind.NOT_FOUND, 'Resource not found.')

        booked = self._active_overlapping(candidate, exclude_appointment_id).filter(
            Appointment.resource_id == candidate.resource_id,
        ).first()
        if booked:
            logger.warning(
                'Resource %s already booked by appointment %s on %s.',
                candidate.resource_id,
                booked.id,
                candidate.date,
            )
            return ValidationResult.fail(ViolationKind.RESOURCE_CONFLICT)

        if not resource.active:
            return ValidationResult.fail(ViolationKind.RESOURCE_UNAVAILABLE, 'The resource is inactive.')

        blocked = self.db.query(ResourceBlock).filter(
            ResourceBlock.resource_id == candidate.resource_id,
            ResourceBlock.date == candidate.date,
            ResourceBlock.start_time < candidate.end_time,
            ResourceBlock.end_time > candidate.start_time,
        ).first()
        if blocked:
            return ValidationResult.fail(ViolationKind.RESOURCE_UNAVAILABLE)

        return ValidationResult.ok()

    def check_instructor_availability(
        self,
        candidate: AppointmentCandidate,
        exclude_appointment_id: int | None = None,
    ) -> ValidationResult:
        booked = self._active_overlapping(candidate, exclude_appointment_id).filter(
            Appointment.instructor_id == candidate.instructor_id,
        ).first()
        if booked:
            logger.warning(
                'Instructor %s already has appointment %s on %s %s-%s.',
                candidate.instructor_id,
                booked.id,
                candidate.date,
                booked.start_time,
                booked.end_time,
            )
            return ValidationResult.fail(ViolationKind.INSTRUCTOR_CONFLICT)

        return ValidationResult.ok()

    def check_student_double_booking(
        self,
        candidate: AppointmentCandidate,
        exclude_appointment_id: int | None = None,
    ) -> ValidationResult:
        if candidate.student_id is None:
            return ValidationResult.ok()

        # Only the same class type conflicts; a theoretical and a practical
        # class may share a window.
        booked = self._active_overlapping(candidate, exclude_appointment_id).filter(
            Appointment.student_id == candidate.student_id,
            Appointment.class_type_id == candidate.class_type_id,
        ).first()
        if booked:
            return ValidationResult.fail(ViolationKind.DUPLICATE_CLASS_SLOT)

        return ValidationResult.ok()

    def check_booking_horizon(self, candidate: AppointmentCandidate) -> ValidationResult:
        if not is_within_booking_horizon(candidate.date, candidate.start_time, self.now):
            return ValidationResult.fail(
                ViolationKind.BOOKING_HORIZON_EXCEEDED,
                f'Classes can only be booked within the next {config.BOOKING_HORIZON_DAYS} days.',
            )
        return ValidationResult.ok()

    def validate(
        self,
        candidate: AppointmentCandidate,
        *,
        enforce_horizon: bool = False,
        exclude_appointment_id: int | None = None,
        checks: frozenset[Check] = ALL_CHECKS,
    ) -> ValidationResult:
        if candidate.start_time >= candidate.end_time:
            return ValidationResult.fail(ViolationKind.VALIDATION_FAILED, 'Start time must be before end time.')

        steps = [
            (Check.RESOURCE_REQUIREMENT, lambda: self.check_resource_requirement(candidate)),
            (Check.RESOURCE_AVAILABILITY, lambda: self.check_resource_availability(candidate, exclude_appointment_id)),
            (Check.INSTRUCTOR, lambda: self.check_instructor_availability(candidate, exclude_appointment_id)),
            (Check.STUDENT, lambda: self.check_student_double_booking(candidate, exclude_appointment_id)),
        ]
        if enforce_horizon:
            steps.append((Check.HORIZON, lambda: self.check_booking_horizon(candidate)))

        for check, run in steps:
            if check not in checks:
                continue
            result = run()
            if not result.valid:
                return result

        return ValidationResult.ok()

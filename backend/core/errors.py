"""Business-rule violations raised by the scheduling services."""

from dataclasses import dataclass
from enum import Enum

from fastapi import HTTPException, status


class ViolationKind(str, Enum):
    MISSING_RESOURCE = 'missing_resource'
    RESOURCE_CONFLICT = 'resource_conflict'
    RESOURCE_UNAVAILABLE = 'resource_unavailable'
    INSTRUCTOR_CONFLICT = 'instructor_conflict'
    DUPLICATE_CLASS_SLOT = 'duplicate_class_slot'
    BOOKING_HORIZON_EXCEEDED = 'booking_horizon_exceeded'
    APPOINTMENT_FINALIZED = 'appointment_finalized'
    CANCELLATION_TOO_LATE = 'cancellation_too_late'
    PENDING_DEBT = 'pending_debt'
    NO_SHOW_LIMIT_EXCEEDED = 'no_show_limit_exceeded'
    INVALID_STATUS_TRANSITION = 'invalid_status_transition'
    SCHEDULE_OVERLAP = 'schedule_overlap'
    NOT_FOUND = 'not_found'
    VALIDATION_FAILED = 'validation_failed'


DEFAULT_MESSAGES = {
    ViolationKind.MISSING_RESOURCE: 'This class type requires a resource.',
    ViolationKind.RESOURCE_CONFLICT: 'The resource is already booked at that time.',
    ViolationKind.RESOURCE_UNAVAILABLE: 'The resource is not available at that time (blocked or under maintenance).',
    ViolationKind.INSTRUCTOR_CONFLICT: 'The instructor already has a class at that time.',
    ViolationKind.DUPLICATE_CLASS_SLOT: 'The student already has a class of this type at that time.',
    ViolationKind.BOOKING_HORIZON_EXCEEDED: 'Classes can only be booked within the booking window.',
    ViolationKind.APPOINTMENT_FINALIZED: 'A completed class cannot be modified.',
    ViolationKind.CANCELLATION_TOO_LATE: 'The cancellation time limit has passed.',
    ViolationKind.PENDING_DEBT: 'pending debt',
    ViolationKind.NO_SHOW_LIMIT_EXCEEDED: 'no-show limit exceeded',
    ViolationKind.INVALID_STATUS_TRANSITION: 'This status change is not allowed.',
    ViolationKind.SCHEDULE_OVERLAP: 'The schedule overlaps another active schedule for that day.',
    ViolationKind.NOT_FOUND: 'Not found.',
    ViolationKind.VALIDATION_FAILED: 'Invalid request.',
}

_HTTP_STATUS = {
    ViolationKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ViolationKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ViolationKind.RESOURCE_CONFLICT: status.HTTP_409_CONFLICT,
    ViolationKind.RESOURCE_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ViolationKind.INSTRUCTOR_CONFLICT: status.HTTP_409_CONFLICT,
    ViolationKind.DUPLICATE_CLASS_SLOT: status.HTTP_409_CONFLICT,
    ViolationKind.SCHEDULE_OVERLAP: status.HTTP_409_CONFLICT,
}


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    message: str

    @classmethod
    def of(cls, kind: ViolationKind, message: str | None = None) -> 'Violation':
        return cls(kind=kind, message=message or DEFAULT_MESSAGES[kind])

    def as_dict(self) -> dict:
        return {'kind': self.kind.value, 'message': self.message}


class SchedulingError(Exception):
    """A rejected scheduling operation.

    Carries a machine-readable ``ViolationKind`` so callers never have to
    inspect the message text.
    """

    def __init__(self, kind: ViolationKind, message: str | None = None):
        self.violation = Violation.of(kind, message)
        super().__init__(self.violation.message)

    @classmethod
    def from_violation(cls, violation: Violation) -> 'SchedulingError':
        return cls(violation.kind, violation.message)

    @property
    def kind(self) -> ViolationKind:
        return self.violation.kind

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=_HTTP_STATUS.get(self.kind, status.HTTP_422_UNPROCESSABLE_ENTITY),
            detail=self.violation.as_dict(),
        )

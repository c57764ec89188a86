"""Resource selection for bookings and resource block windows."""

import logging
from datetime import date, datetime, time

from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError, ViolationKind
from backend.models.appointment import CANCELLED, Appointment
from backend.models.class_type import ClassType
from backend.models.resource import InstructorResource, Resource, ResourceBlock

logger = logging.getLogger(__name__)


def candidate_resources(db: Session, instructor_id: int, resource_type: str | None) -> list[Resource]:
    """Active resources an instructor may use, assigned ones first.

    Falls back to every active resource of the type when the instructor has
    no assignment of that type.
    """
    query = db.query(Resource).filter(Resource.active.is_(True))
    if resource_type is not None:
        query = query.filter(Resource.type == resource_type)

    assigned = query.join(InstructorResource, InstructorResource.resource_id == Resource.id).filter(
        InstructorResource.instructor_id == instructor_id,
    ).order_by(Resource.id.asc()).all()
    if assigned:
        return assigned

    return query.order_by(Resource.id.asc()).all()


def is_resource_free(db: Session, resource_id: int, on_date: date, start_time: time, end_time: time) -> bool:
    booked = db.query(Appointment.id).filter(
        Appointment.resource_id == resource_id,
        Appointment.date == on_date,
        Appointment.status != CANCELLED,
        Appointment.start_time < end_time,
        Appointment.end_time > start_time,
    ).first()
    if booked:
        return False

    blocked = db.query(ResourceBlock.id).filter(
        ResourceBlock.resource_id == resource_id,
        ResourceBlock.date == on_date,
        ResourceBlock.start_time < end_time,
        ResourceBlock.end_time > start_time,
    ).first()
    return blocked is None


def select_resource_for_class_type(
    db: Session,
    instructor_id: int,
    class_type: ClassType,
    on_date: date,
    start_time: time,
    end_time: time,
) -> Resource | None:
    if not class_type.requires_resource:
        return None

    for resource in candidate_resources(db, instructor_id, class_type.resource_type):
        if is_resource_free(db, resource.id, on_date, start_time, end_time):
            return resource

    logger.info(
        'No free %s resource for instructor %s on %s %s-%s.',
        class_type.resource_type or 'any',
        instructor_id,
        on_date,
        start_time,
        end_time,
    )
    return None


def list_resource_blocks(db: Session, resource_id: int | None = None, from_date: date | None = None) -> list[ResourceBlock]:
    query = db.query(ResourceBlock)
    if resource_id is not None:
        query = query.filter(ResourceBlock.resource_id == resource_id)
    if from_date is not None:
        query = query.filter(ResourceBlock.date >= from_date)
    return query.order_by(ResourceBlock.date.asc(), ResourceBlock.start_time.asc()).all()


def create_resource_block(
    db: Session,
    resource_id: int,
    on_date: date,
    start_time: time,
    end_time: time,
    reason: str | None = None,
) -> ResourceBlock:
    if start_time >= end_time:
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, 'Start time must be before end time.')
    if db.get(Resource, resource_id) is None:
        raise SchedulingError(ViolationKind.NOT_FOUND, 'Resource not found.')

    overlapping_block = db.query(ResourceBlock).filter(
        ResourceBlock.resource_id == resource_id,
        ResourceBlock.date == on_date,
        ResourceBlock.start_time < end_time,
        ResourceBlock.end_time > start_time,
    ).first()
    if overlapping_block:
        raise SchedulingError(ViolationKind.RESOURCE_UNAVAILABLE, 'This time is already blocked.')

    overlapping_appointment = db.query(Appointment).filter(
        Appointment.resource_id == resource_id,
        Appointment.date == on_date,
        Appointment.status != CANCELLED,
        Appointment.start_time < end_time,
        Appointment.end_time > start_time,
    ).first()
    if overlapping_appointment:
        raise SchedulingError(
            ViolationKind.RESOURCE_CONFLICT,
            'This time is already booked by a class that uses the resource.',
        )

    block = ResourceBlock(
        resource_id=resource_id,
        date=on_date,
        start_time=start_time,
        end_time=end_time,
        reason=reason,
    )
    db.add(block)
    db.commit()
    db.refresh(block)
    logger.info('Resource %s blocked on %s %s-%s.', resource_id, on_date, start_time, end_time)
    return block


def remove_resource_block(db: Session, block_id: int) -> None:
    block = db.get(ResourceBlock, block_id)
    if block is None:
        raise SchedulingError(ViolationKind.NOT_FOUND, 'Resource block not found.')
    db.delete(block)
    db.commit()


def upcoming_blocks(db: Session, now: datetime | None = None) -> list[ResourceBlock]:
    now = now or datetime.now()
    return list_resource_blocks(db, from_date=now.date())

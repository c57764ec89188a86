"""Instructor availability model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, ForeignKey, Integer, String, Time
from backend.database import Base

ALLOWED_SLOT_MINUTES = (15, 30, 60, 120)


class InstructorSchedule(Base):
    """Recurring weekly availability window for an instructor.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """
    __tablename__ = "instructor_schedules"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_instructor_schedules_time_order"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_instructor_schedules_day"),
    )

    id = Column(Integer, primary_key=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_minutes = Column(Integer, nullable=False, default=60)
    class_type_id = Column(Integer, ForeignKey("class_types.id"), nullable=True)
    active = Column(Boolean, nullable=False, default=True)


class ScheduleOverride(Base):
    """One-off change to an instructor's availability on a specific date."""
    __tablename__ = "schedule_overrides"

    id = Column(Integer, primary_key=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    available = Column(Boolean, nullable=False, default=False)
    slot_minutes = Column(Integer, nullable=False, default=60)
    class_type_id = Column(Integer, ForeignKey("class_types.id"), nullable=True)
    reason = Column(String)

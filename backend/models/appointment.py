"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Time
from backend.database import Base

SCHEDULED = 'scheduled'
CONFIRMED = 'confirmed'
CANCELLED = 'cancelled'
COMPLETED = 'completed'

APPOINTMENT_STATUSES = (SCHEDULED, CONFIRMED, CANCELLED, COMPLETED)


class Appointment(Base):
    """Represents a booked class between an instructor and a student."""
    __tablename__ = "appointments"
    __table_args__ = (CheckConstraint("start_time < end_time", name="ck_appointments_time_order"),)

    id = Column(Integer, primary_key=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    class_type_id = Column(Integer, ForeignKey("class_types.id"), nullable=False)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default=SCHEDULED)
    attended = Column(Boolean, nullable=True)
    cancellation_reason = Column(String)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

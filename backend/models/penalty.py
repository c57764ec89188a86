"""Penalty model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from backend.database import Base

LATE_CANCELLATION = 'late_cancellation'
NO_SHOW = 'no_show'


class Penalty(Base):
    """A monetary charge owed by a student."""
    __tablename__ = "penalties"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

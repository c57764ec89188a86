"""Resource model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, ForeignKey, Integer, String, Time, UniqueConstraint
from backend.database import Base

RESOURCE_TYPES = ('classroom', 'vehicle')


class Resource(Base):
    """A classroom or vehicle that classes may require."""
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    plate = Column(String)
    brand = Column(String)
    model = Column(String)
    year = Column(Integer)
    color = Column(String)
    capacity = Column(Integer)
    active = Column(Boolean, nullable=False, default=True)


class InstructorResource(Base):
    """Assignment of a resource to an instructor."""
    __tablename__ = "instructor_resources"
    __table_args__ = (UniqueConstraint("instructor_id", "resource_id", name="uq_instructor_resource"),)

    id = Column(Integer, primary_key=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)


class ResourceBlock(Base):
    """Window in which a resource cannot be booked (maintenance, repairs)."""
    __tablename__ = "resource_blocks"
    __table_args__ = (CheckConstraint("start_time < end_time", name="ck_resource_blocks_time_order"),)

    id = Column(Integer, primary_key=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String)

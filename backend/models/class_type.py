"""Class type model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from backend.database import Base


class ClassType(Base):
    """A category of class, e.g. theoretical or practical."""
    __tablename__ = "class_types"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    requires_resource = Column(Boolean, nullable=False, default=False)
    resource_type = Column(String, nullable=True)  # classroom/vehicle

"""System setting model definitions."""

from sqlalchemy import Column, Integer, String
from backend.database import Base

SETTING_TYPES = ('string', 'int', 'bool', 'json')


class SystemSetting(Base):
    """Admin-editable business rule parameter."""
    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True)
    setting_key = Column(String, nullable=False, unique=True, index=True)
    value = Column(String)
    type = Column(String, nullable=False, default='string')
    description = Column(String)

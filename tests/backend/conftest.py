import os
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.availability import InstructorSchedule, ScheduleOverride  # noqa: E402
from backend.models.class_type import ClassType  # noqa: E402
from backend.models.penalty import Penalty  # noqa: E402
from backend.models.resource import InstructorResource, Resource, ResourceBlock  # noqa: E402
from backend.models.system_setting import SystemSetting  # noqa: E402
from backend.models.user import User  # noqa: E402
from backend.services.appointment_service import AppointmentService  # noqa: E402
from backend.services.settings_service import SettingsCache, SettingsResolver  # noqa: E402

# Monday. Tests book classes on the following days.
NOW = datetime(2026, 3, 2, 7, 0)

TABLES = [
    User.__table__,
    ClassType.__table__,
    Resource.__table__,
    InstructorResource.__table__,
    ResourceBlock.__table__,
    InstructorSchedule.__table__,
    ScheduleOverride.__table__,
    Appointment.__table__,
    Penalty.__table__,
    SystemSetting.__table__,
]


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def school(db):
    """Two instructors, two students, the two class types and three resources."""
    instructor = User(email='ana@school.test', name='Ana', role='instructor')
    other_instructor = User(email='luis@school.test', name='Luis', role='instructor')
    student = User(email='maria@student.test', name='Maria', role='student')
    other_student = User(email='pedro@student.test', name='Pedro', role='student')
    theoretical = ClassType(name='theoretical', requires_resource=False, resource_type='classroom')
    practical = ClassType(name='practical', requires_resource=True, resource_type='vehicle')
    car = Resource(name='Car 1', type='vehicle', plate='ABC123', active=True)
    other_car = Resource(name='Car 2', type='vehicle', plate='XYZ789', active=True)
    classroom = Resource(name='Room A', type='classroom', capacity=20, active=True)

    db.add_all([
        instructor, other_instructor, student, other_student,
        theoretical, practical, car, other_car, classroom,
    ])
    db.commit()

    return SimpleNamespace(
        instructor_id=instructor.id,
        other_instructor_id=other_instructor.id,
        student_id=student.id,
        other_student_id=other_student.id,
        theoretical_id=theoretical.id,
        practical_id=practical.id,
        car_id=car.id,
        other_car_id=other_car.id,
        classroom_id=classroom.id,
    )


@pytest.fixture
def make_settings():
    def factory(**values) -> SettingsResolver:
        rows = []
        for key, value in values.items():
            if isinstance(value, bool):
                rows.append(SystemSetting(setting_key=key, value=str(value).lower(), type='bool'))
            elif isinstance(value, int):
                rows.append(SystemSetting(setting_key=key, value=str(value), type='int'))
            else:
                rows.append(SystemSetting(setting_key=key, value=value, type='string'))
        return SettingsResolver(lambda: rows, SettingsCache())

    return factory


@pytest.fixture
def make_service(db, make_settings):
    def factory(now: datetime = NOW, **settings) -> AppointmentService:
        return AppointmentService(db, make_settings(**settings), clock=lambda: now)

    return factory


@pytest.fixture
def now() -> datetime:
    return NOW

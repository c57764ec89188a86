from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False

# Constraint name -> violation kind, used to translate IntegrityError from the
# exclusion constraints below.
APPOINTMENT_EXCLUSION_CONSTRAINTS = {
    'appointments_instructor_overlap_excl': 'instructor_conflict',
    'appointments_resource_overlap_excl': 'resource_conflict',
    'appointments_student_class_overlap_excl': 'duplicate_class_slot',
}

_APPOINTMENT_TIME_RANGE = "tsrange(date + start_time, date + end_time, '[)')"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema() -> None:
    """Create the overlap indexes and, on PostgreSQL, the exclusion constraints.

    The constraints are the authoritative guard against double booking; the
    application-level conflict validator only provides early, descriptive
    errors.
    """
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_instructor_date ON appointments(instructor_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_resource_date ON appointments(resource_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_student_date ON appointments(student_id, date)')
            )

            if engine.dialect.name == 'postgresql':
                connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
                existing_constraints = {
                    row[0]
                    for row in connection.execute(
                        text("SELECT conname FROM pg_constraint WHERE conrelid = 'appointments'::regclass")
                    )
                }
                exclusion_steps = [
                    (
                        'appointments_instructor_overlap_excl',
                        f'instructor_id WITH =, {_APPOINTMENT_TIME_RANGE} WITH &&',
                    ),
                    (
                        'appointments_resource_overlap_excl',
                        f'resource_id WITH =, {_APPOINTMENT_TIME_RANGE} WITH &&',
                    ),
                    (
                        'appointments_student_class_overlap_excl',
                        f'student_id WITH =, class_type_id WITH =, {_APPOINTMENT_TIME_RANGE} WITH &&',
                    ),
                ]
                for constraint_name, elements in exclusion_steps:
                    if constraint_name not in existing_constraints:
                        connection.execute(
                            text(
                                f'ALTER TABLE appointments ADD CONSTRAINT {constraint_name} '
                                f"EXCLUDE USING gist ({elements}) WHERE (status <> 'cancelled')"
                            )
                        )

        _appointment_schema_checked = True

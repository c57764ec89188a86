import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, engine, ensure_appointment_schema
from backend.models import appointment, availability, class_type, penalty, resource, system_setting, user
from backend.routes import (
    appointment_routes,
    availability_routes,
    penalty_routes,
    schedule_routes,
    settings_routes,
    student_routes,
    teacher_routes,
)
from backend.services.settings_service import SettingsCache

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

config.validate_runtime_config()

app = FastAPI(title='Driving School Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.state.settings_cache = SettingsCache(ttl_seconds=config.SETTINGS_CACHE_TTL_SECONDS)

logger = logging.getLogger(__name__)

# Imported for their table definitions.
MODELS = (user, class_type, resource, availability, appointment, penalty, system_setting)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Driving School Scheduling API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(schedule_routes.router, prefix='/schedules')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(student_routes.router, prefix='/student')
app.include_router(teacher_routes.router, prefix='/teacher')
app.include_router(penalty_routes.router, prefix='/penalties')
app.include_router(settings_routes.router, prefix='/system-settings')

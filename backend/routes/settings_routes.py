from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routes.common import ensure_database_ready, get_settings_cache, service_errors
from backend.services import settings_service
from backend.services.settings_service import SettingsCache

router = APIRouter(tags=['system-settings'])


class SystemSettingResponse(BaseModel):
    id: int
    setting_key: str
    value: str | None = None
    type: str
    description: str | None = None

    class Config:
        from_attributes = True


class UpdateSystemSettingRequest(BaseModel):
    value: str
    type: Literal['string', 'int', 'bool', 'json'] | None = None
    description: str | None = None


@router.get('', response_model=list[SystemSettingResponse])
def list_system_settings(db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return settings_service.list_settings(db)


@router.put('/{setting_key}', response_model=SystemSettingResponse)
def update_system_setting(
    setting_key: str,
    data: UpdateSystemSettingRequest,
    db: Session = Depends(get_db),
    cache: SettingsCache = Depends(get_settings_cache),
):
    ensure_database_ready()

    with service_errors(db):
        return settings_service.update_setting(
            db,
            cache,
            setting_key,
            data.value,
            setting_type=data.type,
            description=data.description,
        )

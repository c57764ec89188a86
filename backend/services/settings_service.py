"""Business-rule settings with a time-limited cache and hardcoded defaults."""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import SchedulingError, ViolationKind
from backend.models.system_setting import SETTING_TYPES, SystemSetting

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, Any] = {
    'cancellation_hours_limit': 4,
    'cancellation_allow_after_limit': True,
    'cancellation_late_penalty_enabled': True,
    'cancellation_late_penalty_amount': 50000,
    'attendance_tolerance_minutes': 10,
    'attendance_count_absent_as_no_show': True,
    'attendance_no_show_penalty_enabled': True,
    'attendance_no_show_penalty_amount': 50000,
    'attendance_no_show_limit': 3,
}


@dataclass(frozen=True)
class CancellationSettings:
    hours_limit: float
    allow_after_limit: bool
    late_penalty_enabled: bool
    late_penalty_amount: int


@dataclass(frozen=True)
class AttendanceSettings:
    tolerance_minutes: int
    count_absent_as_no_show: bool
    no_show_penalty_enabled: bool
    no_show_penalty_amount: int
    no_show_limit: int


class SettingsCache:
    """Holds one snapshot of the settings table for ``ttl_seconds``."""

    def __init__(self, ttl_seconds: float = config.SETTINGS_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: dict[str, Any] | None = None
        self._stored_at = 0.0

    def get(self) -> dict[str, Any] | None:
        if self._snapshot is None:
            return None
        if self._clock() - self._stored_at >= self.ttl_seconds:
            return None
        return self._snapshot

    def set(self, snapshot: dict[str, Any]) -> None:
        self._snapshot = snapshot
        self._stored_at = self._clock()

    def invalidate(self) -> None:
        self._snapshot = None
        self._stored_at = 0.0


def convert_setting_value(raw_value: str | None, setting_type: str) -> Any:
    if raw_value is None:
        return None

    if setting_type == 'int':
        return int(str(raw_value).strip())
    if setting_type == 'bool':
        return str(raw_value).strip().lower() in {'true', '1'}
    if setting_type == 'json':
        return json.loads(raw_value)
    return raw_value


def _declared_type(setting: SystemSetting) -> str:
    # Business-rule keys always resolve to the type of their default.
    if setting.setting_key in DEFAULT_SETTINGS:
        return _default_type(setting.setting_key)
    return setting.type or 'string'


def build_snapshot(settings: Iterable[SystemSetting]) -> dict[str, Any]:
    snapshot: dict[str, Any] = {}
    for setting in settings:
        setting_type = _declared_type(setting)
        try:
            value = convert_setting_value(setting.value, setting_type)
        except (TypeError, ValueError):
            logger.warning('Ignoring system setting %s: value %r is not a valid %s.', setting.setting_key, setting.value, setting_type)
            continue
        if value is not None:
            snapshot[setting.setting_key] = value
    return snapshot


def load_settings_from_db(db: Session) -> Callable[[], list[SystemSetting]]:
    def loader() -> list[SystemSetting]:
        try:
            return db.query(SystemSetting).all()
        except SQLAlchemyError:
            db.rollback()
            raise

    return loader


class SettingsResolver:
    def __init__(self, loader: Callable[[], Iterable[SystemSetting]], cache: SettingsCache):
        self._loader = loader
        self._cache = cache

    def _snapshot(self) -> dict[str, Any]:
        cached = self._cache.get()
        if cached is not None:
            return cached

        try:
            snapshot = build_snapshot(self._loader())
        except SQLAlchemyError:
            # Defaults only; nothing is cached so the next call retries.
            logger.exception('Could not load system settings; using defaults.')
            return {}

        self._cache.set(snapshot)
        return snapshot

    def get_setting(self, key: str, fallback: Any = None) -> Any:
        snapshot = self._snapshot()
        if key in snapshot:
            return snapshot[key]
        if key in DEFAULT_SETTINGS:
            return DEFAULT_SETTINGS[key]
        return fallback

    def cancellation_settings(self) -> CancellationSettings:
        return CancellationSettings(
            hours_limit=self.get_setting('cancellation_hours_limit'),
            allow_after_limit=self.get_setting('cancellation_allow_after_limit'),
            late_penalty_enabled=self.get_setting('cancellation_late_penalty_enabled'),
            late_penalty_amount=self.get_setting('cancellation_late_penalty_amount'),
        )

    def attendance_settings(self) -> AttendanceSettings:
        return AttendanceSettings(
            tolerance_minutes=self.get_setting('attendance_tolerance_minutes'),
            count_absent_as_no_show=self.get_setting('attendance_count_absent_as_no_show'),
            no_show_penalty_enabled=self.get_setting('attendance_no_show_penalty_enabled'),
            no_show_penalty_amount=self.get_setting('attendance_no_show_penalty_amount'),
            no_show_limit=self.get_setting('attendance_no_show_limit'),
        )


def list_settings(db: Session) -> list[SystemSetting]:
    return db.query(SystemSetting).order_by(SystemSetting.setting_key.asc()).all()


def update_setting(
    db: Session,
    cache: SettingsCache,
    key: str,
    value: str,
    setting_type: str | None = None,
    description: str | None = None,
) -> SystemSetting:
    setting = db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()
    if key in DEFAULT_SETTINGS:
        effective_type = _default_type(key)
        if setting_type is not None and setting_type != effective_type:
            raise SchedulingError(
                ViolationKind.VALIDATION_FAILED,
                f'{key} must be stored as {effective_type}, not {setting_type}.',
            )
    else:
        effective_type = setting_type or (setting.type if setting is not None else 'string')

    if effective_type not in SETTING_TYPES:
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, f'Unknown setting type: {effective_type}.')
    try:
        convert_setting_value(value, effective_type)
    except (TypeError, ValueError) as exc:
        raise SchedulingError(ViolationKind.VALIDATION_FAILED, f'{value!r} is not a valid {effective_type} value.') from exc

    if setting is None:
        setting = SystemSetting(setting_key=key)
        db.add(setting)
    setting.type = effective_type
    setting.value = value
    if description is not None:
        setting.description = description

    db.commit()
    db.refresh(setting)
    cache.invalidate()
    logger.info('System setting %s updated.', key)
    return setting


def _default_type(key: str) -> str:
    default = DEFAULT_SETTINGS.get(key)
    if isinstance(default, bool):
        return 'bool'
    if isinstance(default, int):
        return 'int'
    return 'string'

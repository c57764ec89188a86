import pytest
from sqlalchemy.exc import OperationalError

from backend.core.errors import SchedulingError, ViolationKind
from backend.models.system_setting import SystemSetting
from backend.services.settings_service import (
    CancellationSettings,
    SettingsCache,
    SettingsResolver,
    convert_setting_value,
    load_settings_from_db,
    update_setting,
)


class _FakeClock:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


class _CountingLoader:
    def __init__(self, rows) -> None:
        self.rows = rows
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.rows


def test_defaults_are_used_when_no_settings_are_stored() -> None:
    resolver = SettingsResolver(lambda: [], SettingsCache())

    assert resolver.cancellation_settings() == CancellationSettings(
        hours_limit=4,
        allow_after_limit=True,
        late_penalty_enabled=True,
        late_penalty_amount=50000,
    )
    attendance = resolver.attendance_settings()
    assert attendance.tolerance_minutes == 10
    assert attendance.count_absent_as_no_show is True
    assert attendance.no_show_penalty_enabled is True
    assert attendance.no_show_penalty_amount == 50000
    assert attendance.no_show_limit == 3


def test_stored_values_are_converted_by_declared_type() -> None:
    rows = [
        SystemSetting(setting_key='cancellation_hours_limit', value='24', type='int'),
        SystemSetting(setting_key='cancellation_allow_after_limit', value='0', type='bool'),
        SystemSetting(setting_key='opening_days', value='[1, 2, 3]', type='json'),
        SystemSetting(setting_key='school_name', value='Autoescuela Norte', type='string'),
    ]
    resolver = SettingsResolver(lambda: rows, SettingsCache())

    assert resolver.get_setting('cancellation_hours_limit') == 24
    assert resolver.get_setting('cancellation_allow_after_limit') is False
    assert resolver.get_setting('opening_days') == [1, 2, 3]
    assert resolver.get_setting('school_name') == 'Autoescuela Norte'


def test_unknown_key_returns_caller_fallback() -> None:
    resolver = SettingsResolver(lambda: [], SettingsCache())

    assert resolver.get_setting('missing_key') is None
    assert resolver.get_setting('missing_key', fallback=7) == 7


def test_invalid_stored_value_falls_back_to_default() -> None:
    rows = [SystemSetting(setting_key='attendance_no_show_limit', value='three', type='int')]
    resolver = SettingsResolver(lambda: rows, SettingsCache())

    assert resolver.attendance_settings().no_show_limit == 3


def test_snapshot_is_cached_until_ttl_expires() -> None:
    clock = _FakeClock()
    loader = _CountingLoader([SystemSetting(setting_key='attendance_no_show_limit', value='5', type='int')])
    resolver = SettingsResolver(loader, SettingsCache(ttl_seconds=300, clock=clock))

    assert resolver.get_setting('attendance_no_show_limit') == 5
    clock.value += 299
    assert resolver.get_setting('attendance_no_show_limit') == 5
    assert loader.calls == 1

    clock.value += 1
    resolver.get_setting('attendance_no_show_limit')
    assert loader.calls == 2


def test_invalidate_forces_reload() -> None:
    loader = _CountingLoader([])
    cache = SettingsCache()
    resolver = SettingsResolver(loader, cache)

    resolver.get_setting('cancellation_hours_limit')
    cache.invalidate()
    resolver.get_setting('cancellation_hours_limit')

    assert loader.calls == 2


def test_loader_failure_degrades_to_defaults() -> None:
    def failing_loader():
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    resolver = SettingsResolver(failing_loader, SettingsCache())

    assert resolver.cancellation_settings().hours_limit == 4
    assert resolver.attendance_settings().no_show_limit == 3


@pytest.mark.parametrize(
    ('raw_value', 'setting_type', 'expected'),
    [
        ('10', 'int', 10),
        ('true', 'bool', True),
        ('TRUE', 'bool', True),
        ('1', 'bool', True),
        ('no', 'bool', False),
        ('{"a": 1}', 'json', {'a': 1}),
        ('plain', 'string', 'plain'),
        (None, 'int', None),
    ],
)
def test_convert_setting_value(raw_value, setting_type, expected) -> None:
    assert convert_setting_value(raw_value, setting_type) == expected


def test_update_setting_persists_and_invalidates_cache(db) -> None:
    cache = SettingsCache()
    resolver = SettingsResolver(load_settings_from_db(db), cache)
    assert resolver.get_setting('cancellation_hours_limit') == 4

    setting = update_setting(db, cache, 'cancellation_hours_limit', '12')

    assert setting.type == 'int'
    assert resolver.get_setting('cancellation_hours_limit') == 12


def test_update_setting_rejects_value_of_wrong_type(db) -> None:
    with pytest.raises(SchedulingError) as exception_info:
        update_setting(db, SettingsCache(), 'attendance_no_show_limit', 'many')

    assert exception_info.value.kind == ViolationKind.VALIDATION_FAILED
    assert db.query(SystemSetting).count() == 0


def test_known_key_stored_as_string_resolves_to_its_default_type() -> None:
    rows = [
        SystemSetting(setting_key='cancellation_hours_limit', value='6', type='string'),
        SystemSetting(setting_key='attendance_no_show_limit', value='lots', type='string'),
    ]
    resolver = SettingsResolver(lambda: rows, SettingsCache())

    assert resolver.cancellation_settings().hours_limit == 6
    assert resolver.attendance_settings().no_show_limit == 3


def test_update_setting_rejects_wrong_type_for_known_key(db) -> None:
    with pytest.raises(SchedulingError) as exception_info:
        update_setting(db, SettingsCache(), 'cancellation_hours_limit', '4', setting_type='string')

    assert exception_info.value.kind == ViolationKind.VALIDATION_FAILED
    assert db.query(SystemSetting).count() == 0


def test_update_setting_keeps_declared_type_for_custom_key(db) -> None:
    setting = update_setting(db, SettingsCache(), 'school_name', 'Autoescuela Norte')

    assert setting.type == 'string'

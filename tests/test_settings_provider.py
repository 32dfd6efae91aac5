# tests/test_settings_provider.py

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import InvalidInput
from app.crud import settings as crud_settings
from app.schemas.settings import LoyaltySettingsUpdate
from app.services.settings import SettingsProvider


class FlakySessionFactory:
    """Фабрика сессий, которую можно "сломать" посреди теста."""

    def __init__(self, factory):
        self._factory = factory
        self.broken = False

    def __call__(self):
        if self.broken:
            raise OperationalError("SELECT loyalty_settings", {}, Exception("database is down"))
        return self._factory()


def test_get_reads_settings_row(components):
    loyalty_settings = components.settings_provider.get()

    assert loyalty_settings.earning_percent == 4.0
    assert loyalty_settings.max_discount_percent == 20.0
    assert loyalty_settings.expiry_days == 45


def test_cached_value_is_served_until_ttl(components, db_session, clock):
    provider = components.settings_provider
    provider.get()

    # Прямая запись в БД без invalidate()
    crud_settings.save_settings_row(db_session, {"earning_percent": 7.0})
    db_session.commit()

    clock.advance(seconds=29)
    assert provider.get().earning_percent == 4.0

    clock.advance(seconds=2)
    assert provider.get().earning_percent == 7.0


def test_invalidate_forces_reload(components, db_session):
    provider = components.settings_provider
    provider.get()

    crud_settings.save_settings_row(db_session, {"earning_percent": 7.0})
    db_session.commit()
    provider.invalidate()

    assert provider.get().earning_percent == 7.0


def test_update_merges_and_invalidates(components, db_session):
    provider = components.settings_provider
    provider.get()

    updated = provider.update(db_session, LoyaltySettingsUpdate(expiry_days=30))

    assert updated.expiry_days == 30
    assert updated.earning_percent == 4.0
    assert provider.get().expiry_days == 30


@pytest.mark.parametrize(
    "update",
    [
        LoyaltySettingsUpdate(),
        LoyaltySettingsUpdate(earning_percent=25),
        LoyaltySettingsUpdate(expiry_days=0),
        LoyaltySettingsUpdate(welcome_bonus=5000),
        # Начисление не может быть больше максимальной скидки
        LoyaltySettingsUpdate(earning_percent=15, max_discount_percent=10),
    ],
)
def test_update_rejects_invalid_settings(components, db_session, update):
    with pytest.raises(InvalidInput):
        components.settings_provider.update(db_session, update)

    assert components.settings_provider.get().earning_percent == 4.0


def test_missing_row_falls_back_to_defaults(session_factory, clock):
    provider = SettingsProvider(session_factory, clock=clock)

    loyalty_settings = provider.get()

    assert loyalty_settings.earning_percent == 4.0
    assert loyalty_settings.welcome_bonus == 500


def test_read_failure_returns_last_known_good(session_factory, settings_row, db_session, clock):
    flaky = FlakySessionFactory(session_factory)
    provider = SettingsProvider(flaky, clock=clock)

    crud_settings.save_settings_row(db_session, {"earning_percent": 6.0})
    db_session.commit()
    assert provider.get().earning_percent == 6.0

    flaky.broken = True
    provider.invalidate()

    assert provider.get().earning_percent == 6.0


def test_read_failure_without_cache_returns_defaults(session_factory, settings_row, clock):
    flaky = FlakySessionFactory(session_factory)
    flaky.broken = True
    provider = SettingsProvider(flaky, clock=clock)

    assert provider.get().earning_percent == 4.0
    assert provider.get().expiry_days == 45

# tests/conftest.py
import os

# Обязательные переменные окружения должны быть заданы ДО импорта app.*
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("CASHIER_API_KEY", "test-cashier-key")
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session, sessionmaker

from app.core.clock import FrozenClock
from app.crud import settings as crud_settings
from app.db.session import Base, create_db_engine
# Импортируем все модели для создания таблиц
from app.models.loyalty import LoyaltyTransaction  # noqa: F401
from app.models.settings import LoyaltySettingsRecord  # noqa: F401
from app.models.store import Store
from app.models.account import Account
from app.services.ledger import create_ledger_service

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

DEFAULT_SETTINGS = {
    "earning_percent": 4.0,
    "max_discount_percent": 20.0,
    "expiry_days": 45,
    "min_redemption_amount": 1.0,
    "welcome_bonus": 500,
}


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def engine(tmp_path):
    """
    Файловая SQLite на каждый тест: настройки читаются в отдельной сессии,
    поэтому базе нужны независимые соединения (in-memory для этого не подходит).
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory) -> Session:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def settings_row(db_session):
    row = crud_settings.save_settings_row(db_session, DEFAULT_SETTINGS)
    db_session.commit()
    return row


@pytest.fixture
def components(session_factory, clock, settings_row):
    return create_ledger_service(session_factory, clock=clock)


@pytest.fixture
def ledger(components):
    return components.ledger


@pytest.fixture
def store(db_session):
    store = Store(name="Магазин на Ленина")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def other_store(db_session):
    store = Store(name="Магазин на Мира")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def make_account(db_session, clock):
    """Фабрика аккаунтов с заданным балансом и датой последней активности."""
    def _make_account(balance: int = 0, last_activity: datetime | None = None, **kwargs) -> Account:
        account = Account(
            current_balance=balance,
            last_activity=last_activity or clock.now(),
            registration_date=clock.now(),
            **kwargs,
        )
        db_session.add(account)
        db_session.commit()
        return account
    return _make_account


@pytest.fixture
async def client(session_factory, clock, settings_row):
    from app.main import create_app

    app = create_app(session_factory=session_factory, clock=clock)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_auth_headers() -> dict:
    return {"X-Admin-Key": "test-admin-key"}


@pytest.fixture
def cashier_auth_headers() -> dict:
    return {"X-Cashier-Key": "test-cashier-key"}

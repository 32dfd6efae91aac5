# app/dependencies.py

import logging
import secrets
from typing import Iterator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from app.core.config import settings
from app.services.ledger import LedgerService
from app.services.settings import SettingsProvider

# --- Инициализация логгера ---
logger = logging.getLogger(__name__)

# --- Схемы аутентификации ---
# Статические ключи: касса и админка - внутренние клиенты, пользователей у сервиса нет
admin_key_scheme = APIKeyHeader(name="X-Admin-Key", auto_error=False)
cashier_key_scheme = APIKeyHeader(name="X-Cashier-Key", auto_error=False)

# --- Управление сессией БД ---
def get_db(request: Request) -> Iterator[Session]:
    """
    Основная зависимость FastAPI для получения сессии БД.
    Фабрика сессий берется из app.state, чтобы тесты могли подменить базу.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()

# --- Компоненты ледгера ---
def get_ledger(request: Request) -> LedgerService:
    return request.app.state.ledger

def get_settings_provider(request: Request) -> SettingsProvider:
    return request.app.state.settings_provider

# --- Зависимости авторизации ---

def _check_key(provided: Optional[str], expected: str, scope: str) -> None:
    if not provided or not secrets.compare_digest(provided, expected):
        logger.warning(f"Rejected {scope} request: missing or invalid API key.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )


def require_cashier_key(api_key: Optional[str] = Depends(cashier_key_scheme)) -> str:
    """Защищает кассовые эндпоинты. Возвращает имя клиента для логов."""
    _check_key(api_key, settings.CASHIER_API_KEY, "cashier")
    return "cashier"


def require_admin_key(api_key: Optional[str] = Depends(admin_key_scheme)) -> str:
    """
    Зависимость для защиты админских эндпоинтов.
    Возвращаемое имя записывается в метаданные ручных корректировок.
    """
    _check_key(api_key, settings.ADMIN_API_KEY, "admin")
    return "admin"

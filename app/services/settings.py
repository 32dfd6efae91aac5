# app/services/settings.py

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import locales
from app.core.clock import Clock
from app.core.config import settings as app_settings # Используем псевдоним, чтобы избежать конфликтов
from app.core.errors import InvalidInput, StorageError
from app.crud import settings as crud_settings
from app.schemas.settings import LoyaltySettings, LoyaltySettingsUpdate

logger = logging.getLogger(__name__)


def default_loyalty_settings() -> LoyaltySettings:
    """Жестко заданные правила на случай, если БД недоступна и кеша еще нет."""
    return LoyaltySettings(
        earning_percent=app_settings.DEFAULT_EARNING_PERCENT,
        max_discount_percent=app_settings.DEFAULT_MAX_DISCOUNT_PERCENT,
        expiry_days=app_settings.DEFAULT_EXPIRY_DAYS,
        min_redemption_amount=app_settings.DEFAULT_MIN_REDEMPTION_AMOUNT,
        welcome_bonus=app_settings.DEFAULT_WELCOME_BONUS,
    )


class SettingsProvider:
    """
    Кеширующее чтение настроек лояльности с ограниченным TTL.

    - `get()` отдает кеш, если он моложе TTL, иначе перечитывает строку из БД;
    - `invalidate()` сбрасывает кеш, следующий `get()` гарантированно идет в БД;
    - при ошибке чтения возвращается последнее удачно прочитанное значение,
      а если его нет - значения по умолчанию. Ледгер никогда не падает из-за настроек.

    Настройки читаются в отдельной сессии, чтобы сбой чтения не испортил
    транзакцию вызывающего кода.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Optional[Clock] = None,
        ttl_seconds: int = app_settings.SETTINGS_CACHE_TTL_SECONDS,
    ):
        self._session_factory = session_factory
        self._clock = clock or Clock()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._lock = threading.Lock()
        self._cached: Optional[LoyaltySettings] = None
        self._cached_at: Optional[datetime] = None
        self._last_good: Optional[LoyaltySettings] = None
        # Увеличивается при каждом invalidate(); чтение, начатое до сброса,
        # не должно положить в кеш устаревшие данные.
        self._generation = 0

    def get(self) -> LoyaltySettings:
        now = self._clock.now()
        with self._lock:
            if self._cached is not None and now - self._cached_at < self._ttl:
                return self._cached
            generation = self._generation

        try:
            fresh = self._load()
        except (SQLAlchemyError, ValidationError):
            logger.error("Failed to read loyalty settings, using fallback values.", exc_info=True)
            with self._lock:
                return self._last_good or default_loyalty_settings()

        with self._lock:
            if fresh is None:
                # Строки еще нет - работаем на значениях по умолчанию, но не кешируем их
                logger.warning("Loyalty settings row is missing, using default values.")
                return self._last_good or default_loyalty_settings()
            self._last_good = fresh
            if generation == self._generation:
                self._cached = fresh
                self._cached_at = now
        return fresh

    def invalidate(self) -> None:
        """Принудительно сбрасывает кеш. Вызывать сразу после записи настроек."""
        with self._lock:
            self._generation += 1
            self._cached = None
            self._cached_at = None
        logger.info("Loyalty settings cache has been invalidated.")

    def update(self, db: Session, settings_data: LoyaltySettingsUpdate) -> LoyaltySettings:
        """
        Обновляет настройки: объединяет с текущими значениями, валидирует
        итоговую комбинацию, сохраняет и сбрасывает кеш.
        """
        update_payload = settings_data.model_dump(exclude_unset=True, exclude_none=True)
        if not update_payload:
            raise InvalidInput(locales.ERROR_SETTINGS_EMPTY_UPDATE)

        current = crud_settings.get_settings_row(db)
        base = LoyaltySettings.model_validate(current) if current else default_loyalty_settings()
        merged = base.model_dump(exclude={"updated_at"})
        merged.update(update_payload)
        try:
            validated = LoyaltySettings.model_validate(merged)
        except ValidationError as e:
            reason = "; ".join(err["msg"] for err in e.errors())
            raise InvalidInput(locales.ERROR_SETTINGS_INVALID.format(reason=reason)) from e

        try:
            crud_settings.save_settings_row(db, validated.model_dump(exclude={"updated_at"}))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to save loyalty settings.", exc_info=True)
            raise StorageError() from e

        # Сброс строго после коммита: следующий вызов ледгера увидит новые правила
        self.invalidate()
        logger.info(f"Loyalty settings updated: {list(update_payload.keys())}")
        return self.get()

    def _load(self) -> Optional[LoyaltySettings]:
        with self._session_factory() as db:
            row = crud_settings.get_settings_row(db)
            if row is None:
                return None
            return LoyaltySettings.model_validate(row)

# app/services/idempotency.py

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from app.core.clock import Clock
from app.core.config import settings

logger = logging.getLogger(__name__)

IdempotencyKey = Tuple[int, int, float, str]


class IdempotencyGuard:
    """
    Защита от двойного клика и сетевых повторов на кассе.

    Ключ (account_id, store_id, amount, operation_type) запоминается в памяти процесса
    на короткое окно (10 секунд). Это лучшая попытка, а не гарантия: данные теряются
    при перезапуске и не разделяются между несколькими воркерами.
    """

    def __init__(self, clock: Optional[Clock] = None, ttl_seconds: int = settings.IDEMPOTENCY_TTL_SECONDS):
        self._clock = clock or Clock()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._lock = threading.Lock()
        self._recent: Dict[IdempotencyKey, datetime] = {}

    def check_and_record(self, account_id: int, store_id: int, amount: float, operation_type: str) -> bool:
        """
        Возвращает False, если такой же запрос уже был в пределах окна.
        Иначе запоминает его и возвращает True. Проверка и запись - одна критическая секция.
        """
        key = (account_id, store_id, float(amount), operation_type)
        now = self._clock.now()
        with self._lock:
            self._collect_garbage(now)
            recorded_at = self._recent.get(key)
            if recorded_at is not None and now - recorded_at < self._ttl:
                return False
            self._recent[key] = now
            return True

    def forget(self, account_id: int, store_id: int, amount: float, operation_type: str) -> None:
        with self._lock:
            self._recent.pop((account_id, store_id, float(amount), operation_type), None)

    def _collect_garbage(self, now: datetime) -> None:
        expired = [key for key, recorded_at in self._recent.items() if now - recorded_at >= self._ttl]
        for key in expired:
            del self._recent[key]

# app/core/clock.py

from datetime import datetime, timedelta, timezone


def as_utc(value: datetime) -> datetime:
    """
    Приводит дату к aware-UTC.
    SQLite возвращает "наивные" даты, хотя мы всегда пишем UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """Источник текущего времени. Внедряется во все компоненты ледгера."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """Часы с ручным управлением временем, для тестов и скриптов."""

    def __init__(self, now: datetime):
        self._now = as_utc(now)

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = as_utc(now)

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

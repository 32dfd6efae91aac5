# app/tasks_registry.py

from typing import Callable

from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services import points_expiration
from app.services.ledger import LedgerService

# --- "Обертки", которые создают сессию БД для каждой задачи ---

async def run_expire_points(ledger: LedgerService, session_factory: Callable[[], Session] = SessionLocal, dry_run: bool | None = None):
    return await points_expiration.expire_points_task(ledger, session_factory, dry_run=dry_run)

async def run_cleanup_transactions(ledger: LedgerService, session_factory: Callable[[], Session] = SessionLocal, dry_run: bool | None = None):
    return await points_expiration.cleanup_transactions_task(ledger, session_factory, dry_run=dry_run)

async def run_notify_expiring_points(ledger: LedgerService, session_factory: Callable[[], Session] = SessionLocal, dry_run: bool | None = None):
    # У напоминаний нет режима dry-run, параметр принимается для единообразия
    return await points_expiration.notify_about_expiring_points_task(ledger, session_factory)


# --- Словарь-реестр всех задач, доступных для ручного запуска ---
# Ключ - уникальное имя задачи, которое используется в API.
# 'function' - сама функция для вызова.
# 'description' - описание для отображения в админке.
# 'supports_dry_run' - умеет ли задача только посчитать, ничего не меняя.

TASKS = {
    "expire_points": {
        "function": run_expire_points,
        "description": "Сжигает весь баланс покупателей, не проявлявших активность дольше срока действия баллов.",
        "supports_dry_run": True,
    },
    "cleanup_transactions": {
        "function": run_cleanup_transactions,
        "description": "Удаляет историю операций старше срока действия баллов плюс один день.",
        "supports_dry_run": True,
    },
    "notify_expiring_points": {
        "function": run_notify_expiring_points,
        "description": "Отправляет покупателям напоминания о скором сгорании баллов.",
        "supports_dry_run": False,
    },
}

# Отдельная функция для получения списка задач для API
def get_tasks_list():
    return [
        {"task_name": name, "description": data["description"], "supports_dry_run": data["supports_dry_run"]}
        for name, data in TASKS.items()
    ]

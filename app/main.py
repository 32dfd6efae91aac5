# app/main.py

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

# Конфигурация и ядро
from app.core.clock import Clock
from app.core.config import settings as config
from app.core.errors import LedgerError
from app.core.logging_config import setup_logging
from app.core.redis import redis_client
from app.db.session import SessionLocal

# Роутеры FastAPI
from app.routers.v1.api import api_router

# Фоновые задачи и сервисы
from app.services.ledger import create_ledger_service
from app.services.points_expiration import (
    cleanup_transactions_task,
    expire_points_task,
    notify_about_expiring_points_task,
)

# --- Инициализация ---
logger = logging.getLogger(__name__)

STARTUP_LOCK_KEY = "loyalty_scheduler_lock"


# --- Обработчики ошибок ---
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Ошибки ледгера отдаются кассе с машиночитаемым кодом."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Глобальный обработчик для всех необработанных исключений.
    Логирует ошибку и возвращает 500 без деталей.
    """
    logger.critical(f"Unhandled exception for request: {request.method} {request.url}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error.", "code": "INTERNAL_ERROR"},
    )


def schedule_jobs(scheduler: AsyncIOScheduler, app: FastAPI) -> None:
    """Регистрирует ночные задачи. Время задается в UTC, как и граница сгорания."""
    ledger = app.state.ledger
    session_factory = app.state.session_factory
    timezone = config.SCHEDULER_TIMEZONE

    scheduler.add_job(
        expire_points_task, 'cron', hour=config.EXPIRE_POINTS_CRON_HOUR, minute=0, timezone=timezone,
        args=[ledger, session_factory], id="expire_points", replace_existing=True,
    )
    scheduler.add_job(
        cleanup_transactions_task, 'cron', hour=config.CLEANUP_TRANSACTIONS_CRON_HOUR, minute=0, timezone=timezone,
        args=[ledger, session_factory], id="cleanup_transactions", replace_existing=True,
    )
    scheduler.add_job(
        notify_about_expiring_points_task, 'cron', hour=config.NOTIFY_EXPIRING_CRON_HOUR, minute=0, timezone=timezone,
        args=[ledger, session_factory], id="notify_expiring_points", replace_existing=True,
    )


# --- Lifespan Manager (запуск и остановка приложения) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application lifespan startup...")

    # Блокировка через Redis: планировщик должен работать только в одном воркере,
    # иначе ночное сгорание запустится несколько раз параллельно
    is_main_worker = await redis_client.set(STARTUP_LOCK_KEY, "1", ex=60, nx=True)
    scheduler = app.state.scheduler

    if is_main_worker:
        logger.info("This is the main worker. Starting scheduler...")
        if not scheduler.running:
            schedule_jobs(scheduler, app)
            scheduler.start()
            logger.info("Scheduler started with background jobs.")
    else:
        logger.info("This is a secondary worker. Skipping scheduler setup.")

    yield

    # Код при остановке
    if is_main_worker:
        logger.info("Main worker shutting down...")
        if scheduler.running:
            scheduler.shutdown()
            logger.info("Scheduler shut down.")
        await redis_client.delete(STARTUP_LOCK_KEY)
    else:
        logger.info("Secondary worker shutting down.")


# --- Создание FastAPI приложения ---
def create_app(session_factory: Callable[[], Session] = SessionLocal, clock: Optional[Clock] = None) -> FastAPI:
    """
    Собирает приложение со своими экземплярами ледгера и кешей.
    Тесты передают фабрику сессий тестовой базы и замороженные часы.
    """
    app = FastAPI(
        title="Loyalty Points Ledger",
        description="Points ledger for retail stores: earn, redeem, expiration",
        version="0.1.0",
        lifespan=lifespan,
    )

    components = create_ledger_service(session_factory, clock=clock)
    app.state.session_factory = session_factory
    app.state.ledger = components.ledger
    app.state.settings_provider = components.settings_provider
    app.state.scheduler = AsyncIOScheduler()

    # --- Регистрация обработчиков исключений ---
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --- Подключение роутеров FastAPI ---
    app.include_router(api_router)
    return app


app = create_app()

# app/services/points_expiration.py

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.bot.services import notification as bot_notification_service
from app.core.config import settings
from app.crud import account as crud_account
from app.db.session import SessionLocal
from app.schemas.loyalty import CleanupResult, SweepResult
from app.services.ledger import LedgerService

logger = logging.getLogger(__name__)

# Уведомлять за 7, 3 и 1 день до сгорания
NOTIFY_DAYS_BEFORE_EXPIRATION = [7, 3, 1]


async def expire_points_task(
    ledger: LedgerService,
    session_factory: Callable[[], Session] = SessionLocal,
    dry_run: Optional[bool] = None,
) -> Optional[SweepResult]:
    """
    Основная задача: сжигает весь баланс у аккаунтов без активности дольше срока.
    Ошибки логируются и не роняют планировщик; повторный запуск безопасен.
    Уведомления отправляются только после коммита и не влияют на результат.
    """
    dry_run = settings.JOBS_DRY_RUN if dry_run is None else dry_run
    logger.info("--- Starting scheduled job: Expire Loyalty Points ---")

    result = None
    try:
        with session_factory() as db:
            result = ledger.run_expiration_sweep(db, dry_run=dry_run)

            if not dry_run:
                for expired in result.expired_accounts:
                    try:
                        account = crud_account.get_account(db, expired.account_id)
                        if account:
                            await bot_notification_service.send_points_expired_notification(
                                db, account, expired.points_expired
                            )
                            # Пауза, чтобы не превысить лимиты API Telegram
                            await asyncio.sleep(0.1)
                    except Exception:
                        logger.error(f"Failed to notify account {expired.account_id} about expired points", exc_info=True)

    except Exception:
        logger.error("An error occurred during expire points task", exc_info=True)

    logger.info("--- Finished scheduled job: Expire Loyalty Points ---")
    return result


async def cleanup_transactions_task(
    ledger: LedgerService,
    session_factory: Callable[[], Session] = SessionLocal,
    dry_run: Optional[bool] = None,
) -> Optional[CleanupResult]:
    """Удаляет историю старше срока сгорания плюс день запаса."""
    dry_run = settings.JOBS_DRY_RUN if dry_run is None else dry_run
    logger.info("--- Starting scheduled job: Cleanup Old Transactions ---")

    result = None
    try:
        with session_factory() as db:
            result = ledger.run_retention_cleanup(db, dry_run=dry_run)
    except Exception:
        logger.error("An error occurred during transaction cleanup task", exc_info=True)

    logger.info("--- Finished scheduled job: Cleanup Old Transactions ---")
    return result


async def notify_about_expiring_points_task(
    ledger: LedgerService,
    session_factory: Callable[[], Session] = SessionLocal,
) -> int:
    """
    Фоновая задача для отправки упреждающих уведомлений о сгорании баллов.
    Возвращает количество отправленных напоминаний.
    """
    logger.info("--- Starting scheduled job: Notify About Expiring Points ---")

    notified = 0
    try:
        with session_factory() as db:
            accounts = crud_account.list_active_accounts_with_balance(db)
            for account in accounts:
                days_left = ledger.expiration.days_until_expiry(account)
                if days_left not in NOTIFY_DAYS_BEFORE_EXPIRATION:
                    continue
                try:
                    logger.info(f"Notifying account {account.id} about {account.current_balance} points expiring in {days_left} days.")
                    await bot_notification_service.send_points_expiring_soon_notification(
                        db=db,
                        account=account,
                        points_expiring=account.current_balance,
                        days_left=days_left,
                    )
                    notified += 1
                    await asyncio.sleep(0.1)
                except Exception:
                    logger.error(f"Failed to send expiring points notification to account {account.id}", exc_info=True)

    except Exception:
        logger.error("An error occurred during expiring points notification task", exc_info=True)

    logger.info("--- Finished scheduled job: Notify About Expiring Points ---")
    return notified

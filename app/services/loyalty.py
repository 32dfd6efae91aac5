# app/services/loyalty.py

import logging
from typing import Callable

from sqlalchemy.orm import Session

from app.bot.services import notification as bot_notification_service
from app.crud import account as crud_account
from app.db.session import SessionLocal

logger = logging.getLogger(__name__)

# Побочные эффекты после коммита операции с баллами.
# Запускаются через BackgroundTasks в отдельной сессии; их сбой не откатывает операцию.

async def notify_points_earned(
    account_id: int,
    points_earned: int,
    new_balance: int,
    session_factory: Callable[[], Session] = SessionLocal,
):
    if points_earned <= 0:
        return
    try:
        with session_factory() as db:
            account = crud_account.get_account(db, account_id)
            if account:
                await bot_notification_service.send_points_earned_notification(db, account, points_earned, new_balance)
    except Exception:
        logger.error(f"Failed to send earn notification for account {account_id}", exc_info=True)


async def notify_points_redeemed(
    account_id: int,
    points_redeemed: int,
    cashback_earned: int,
    new_balance: int,
    session_factory: Callable[[], Session] = SessionLocal,
):
    try:
        with session_factory() as db:
            account = crud_account.get_account(db, account_id)
            if account:
                await bot_notification_service.send_points_redeemed_notification(
                    db, account, points_redeemed, cashback_earned, new_balance
                )
    except Exception:
        logger.error(f"Failed to send redeem notification for account {account_id}", exc_info=True)

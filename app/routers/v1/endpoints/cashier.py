# app/routers/v1/endpoints/cashier.py

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from app.dependencies import get_db, get_ledger, require_cashier_key
from app.schemas.loyalty import AccountBalance, EarnRequest, EarnResult, RedeemRequest, RedeemResult
from app.services import loyalty as loyalty_notifications
from app.services.ledger import LedgerService

logger = logging.getLogger(__name__)

# Все кассовые эндпоинты требуют заголовок X-Cashier-Key
router = APIRouter(dependencies=[Depends(require_cashier_key)])


# Эндпоинты синхронные: ледгер работает с блокирующей сессией, FastAPI вынесет их в пул потоков
@router.post("/earn", response_model=EarnResult)
def earn_points_endpoint(
    request_data: EarnRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    [КАССА] Начисляет баллы за покупку.
    Повтор того же запроса в течение нескольких секунд отклоняется с кодом DUPLICATE_TRANSACTION.
    """
    result = ledger.earn(
        db,
        account_id=request_data.account_id,
        store_id=request_data.store_id,
        purchase_amount=request_data.purchase_amount,
        metadata=request_data.metadata,
    )
    background_tasks.add_task(
        loyalty_notifications.notify_points_earned,
        request_data.account_id,
        result.points_earned,
        result.new_balance,
        session_factory=request.app.state.session_factory,
    )
    return result


@router.post("/redeem", response_model=RedeemResult)
def redeem_points_endpoint(
    request_data: RedeemRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    [КАССА] Списывает баллы в счет скидки и начисляет кешбэк на оплаченный остаток.
    При проигранной гонке за баланс возвращает 409 CONCURRENCY_CONFLICT - операцию нужно повторить.
    """
    result = ledger.redeem(
        db,
        account_id=request_data.account_id,
        store_id=request_data.store_id,
        purchase_amount=request_data.purchase_amount,
        points_to_redeem=request_data.points_to_redeem,
        metadata=request_data.metadata,
    )
    background_tasks.add_task(
        loyalty_notifications.notify_points_redeemed,
        request_data.account_id,
        request_data.points_to_redeem,
        result.cashback_earned,
        result.new_balance,
        session_factory=request.app.state.session_factory,
    )
    return result


@router.get("/accounts/{account_id}/balance", response_model=AccountBalance)
def get_account_balance_endpoint(
    account_id: int,
    db: Session = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """[КАССА] Доступный к списанию баланс и сводка по сгоранию."""
    return ledger.get_balance(db, account_id)

# app/routers/v1/endpoints/admin/accounts.py

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.dependencies import get_db, get_ledger, require_admin_key
from app.schemas.admin import AccountInfo, OpenAccountRequest
from app.schemas.loyalty import AccountBalance, AdjustBalanceRequest, AdjustBalanceResult, LoyaltyHistory
from app.services.ledger import LedgerService

logger = logging.getLogger(__name__)

# Префикс /accounts будет добавлен на уровне выше в admin/__init__.py
router = APIRouter()


@router.post("", response_model=AccountInfo, status_code=status.HTTP_201_CREATED)
def open_account_endpoint(
    request_data: OpenAccountRequest,
    db: Session = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    [АДМИН] Регистрирует участника программы с приветственным бонусом.
    Для уже известного telegram_id возвращает существующий аккаунт.
    """
    return ledger.open_account(db, telegram_id=request_data.telegram_id, first_name=request_data.first_name)


@router.get("/{account_id}/balance", response_model=AccountBalance)
def get_account_balance_endpoint(
    account_id: int,
    db: Session = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    return ledger.get_balance(db, account_id)


@router.post("/{account_id}/balance/adjust", response_model=AdjustBalanceResult)
def adjust_account_balance_endpoint(
    account_id: int,
    request_data: AdjustBalanceRequest,
    db: Session = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
    actor: str = Depends(require_admin_key),
):
    """
    [АДМИН] Ручное начисление (delta > 0) или списание (delta < 0) баллов.
    Причина сохраняется в истории как заголовок операции.
    """
    return ledger.adjust_balance(db, account_id, request_data.delta, request_data.reason, actor=actor)


@router.get("/{account_id}/transactions", response_model=LoyaltyHistory)
def get_account_transactions_endpoint(
    account_id: int,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """[АДМИН] История операций аккаунта, от новых к старым."""
    return ledger.get_history(db, account_id, skip=(page - 1) * size, limit=size)

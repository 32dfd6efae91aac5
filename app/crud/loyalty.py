# app/crud/loyalty.py

from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from app.models.loyalty import LoyaltyTransaction, TransactionOrigin, TransactionType

# --- Базовые CRUD-операции ---

def create_transaction(
    db: Session,
    account_id: int,
    type: TransactionType,
    amount: int,
    origin: TransactionOrigin,
    title: str,
    created_at: datetime,
    store_id: int | None = None,
    purchase_amount: float | None = None,
    details: Dict[str, Any] | None = None,
) -> LoyaltyTransaction:
    """
    Создает объект транзакции и добавляет его в сессию.
    Требует внешнего вызова db.commit().
    """
    transaction = LoyaltyTransaction(
        account_id=account_id,
        store_id=store_id,
        type=type.value,
        amount=amount,
        origin=origin.value,
        title=title,
        purchase_amount=purchase_amount,
        details=details or None,
        created_at=created_at,
    )
    db.add(transaction)
    return transaction

def get_account_transactions(
    db: Session,
    account_id: int,
    skip: int = 0,
    limit: int = 20
) -> List[LoyaltyTransaction]:
    """Получает пагинированный список транзакций аккаунта (от новых к старым)."""
    return db.query(LoyaltyTransaction).filter(
        LoyaltyTransaction.account_id == account_id
    ).order_by(
        LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc()
    ).offset(skip).limit(limit).all()

def count_account_transactions(db: Session, account_id: int) -> int:
    """Подсчитывает общее количество транзакций у аккаунта."""
    return db.query(LoyaltyTransaction).filter(LoyaltyTransaction.account_id == account_id).count()

# --- Очистка истории ---

def count_transactions_older_than(db: Session, cutoff: datetime) -> int:
    return db.query(LoyaltyTransaction).filter(LoyaltyTransaction.created_at < cutoff).count()

def delete_transactions_older_than(db: Session, cutoff: datetime) -> int:
    """Удаляет транзакции старше cutoff и возвращает количество удаленных строк."""
    return db.query(LoyaltyTransaction).filter(
        LoyaltyTransaction.created_at < cutoff
    ).delete(synchronize_session=False)

# app/crud/account.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.account import Account


def get_account(db: Session, account_id: int) -> Account | None:
    """Получает аккаунт по первичному ключу."""
    return db.query(Account).filter(Account.id == account_id).first()

def get_account_by_telegram_id(db: Session, telegram_id: int) -> Account | None:
    return db.query(Account).filter(Account.telegram_id == telegram_id).first()

def create_account(
    db: Session,
    registered_at: datetime,
    telegram_id: int | None = None,
    first_name: str | None = None,
) -> Account:
    """
    Создает аккаунт с нулевым балансом и добавляет его в сессию.
    Приветственный бонус начисляется отдельно через apply_balance_delta.
    Требует внешнего вызова db.commit().
    """
    account = Account(
        telegram_id=telegram_id,
        first_name=first_name,
        current_balance=0,
        last_activity=registered_at,
        registration_date=registered_at,
    )
    db.add(account)
    db.flush()
    return account

def list_expired_candidates(db: Session, cutoff: datetime) -> List[Account]:
    """Активные аккаунты с положительным балансом и последней активностью раньше cutoff."""
    return db.query(Account).filter(
        Account.is_active.is_(True),
        Account.last_activity < cutoff,
        Account.current_balance > 0,
    ).order_by(Account.id.asc()).all()

def list_active_accounts_with_balance(db: Session) -> List[Account]:
    return db.query(Account).filter(
        Account.is_active.is_(True),
        Account.current_balance > 0,
    ).order_by(Account.id.asc()).all()


def apply_balance_delta(
    db: Session,
    account_id: int,
    delta: int,
    *,
    min_balance: int = 0,
    expected_balance: Optional[int] = None,
    inactive_before: Optional[datetime] = None,
    purchase_increment: int = 0,
    saved_increment: float = 0,
    activity_at: Optional[datetime] = None,
) -> int | None:
    """
    Единственный способ изменить баланс: один атомарный UPDATE
    `current_balance = current_balance + delta` с проверками в WHERE и RETURNING.

    Условия:
    - `current_balance >= min_balance` (списание не больше того, что есть на счете);
    - `current_balance + delta >= 0`;
    - `expected_balance` - баланс не изменился с момента чтения (для сгорания);
    - `inactive_before` - аккаунт все еще неактивен (для сгорания).

    Возвращает новый баланс или None, если строка не прошла проверки
    (аккаунт не найден или его баланс успели изменить). Коммит - на вызывающей стороне.
    """
    conditions = [
        Account.id == account_id,
        Account.current_balance + delta >= 0,
    ]
    if min_balance > 0:
        conditions.append(Account.current_balance >= min_balance)
    if expected_balance is not None:
        conditions.append(Account.current_balance == expected_balance)
    if inactive_before is not None:
        conditions.append(Account.last_activity < inactive_before)

    values = {"current_balance": Account.current_balance + delta}
    if purchase_increment:
        values["total_purchases"] = Account.total_purchases + purchase_increment
    if saved_increment:
        values["total_saved"] = Account.total_saved + saved_increment
    if activity_at is not None:
        values["last_activity"] = activity_at

    stmt = (
        update(Account)
        .where(*conditions)
        .values(**values)
        .returning(Account.current_balance)
        .execution_options(synchronize_session=False)
    )
    row = db.execute(stmt).first()
    if row is None:
        return None
    return row.current_balance

# tests/test_admin_operations.py

from datetime import timedelta

import pytest

from app.core.errors import AccountNotFound, InsufficientBalance, InvalidInput
from app.crud import account as crud_account
from app.crud import loyalty as crud_loyalty
from app.models.account import Account
from app.models.loyalty import TransactionOrigin, TransactionType
from tests.utils import account_records

REASON = "Компенсация за сбой на кассе"


def ledger_sum(db, account_id):
    """Баланс, восстановленный по истории операций."""
    total = 0
    for record in account_records(db, account_id):
        total += record.amount if record.type == TransactionType.EARN.value else -record.amount
    return total


def test_adjust_credit(ledger, db_session, make_account):
    account = make_account(balance=100)

    result = ledger.adjust_balance(db_session, account.id, 250, REASON, actor="admin")

    assert result.new_balance == 350
    record = crud_loyalty.get_account_transactions(db_session, account.id)[0]
    assert record.id == result.transaction_id
    assert record.type == TransactionType.EARN.value
    assert record.origin == TransactionOrigin.ADMIN_ADJUSTMENT.value
    assert record.title == REASON
    assert record.details == {"actor": "admin"}


def test_adjust_debit(ledger, db_session, make_account):
    account = make_account(balance=100)

    result = ledger.adjust_balance(db_session, account.id, -40, REASON, actor="admin")

    assert result.new_balance == 60
    record = crud_loyalty.get_account_transactions(db_session, account.id)[0]
    assert record.type == TransactionType.SPEND.value
    assert record.amount == 40


def test_adjust_cannot_go_negative(ledger, db_session, make_account):
    account = make_account(balance=100)

    with pytest.raises(InsufficientBalance) as exc_info:
        ledger.adjust_balance(db_session, account.id, -150, REASON, actor="admin")

    assert exc_info.value.available == 100
    assert db_session.get(Account, account.id).current_balance == 100
    assert crud_loyalty.count_account_transactions(db_session, account.id) == 0


def test_adjust_is_not_customer_activity(ledger, db_session, make_account, clock):
    last_activity = clock.now() - timedelta(days=20)
    account = make_account(balance=100, last_activity=last_activity)

    ledger.adjust_balance(db_session, account.id, 10, REASON, actor="admin")

    stored = db_session.get(Account, account.id).last_activity
    assert stored.replace(tzinfo=None) == last_activity.replace(tzinfo=None)


@pytest.mark.parametrize(
    "delta, reason",
    [
        (0, REASON),
        (100_001, REASON),
        (-100_001, REASON),
        (10, "коротко"),
        (10, "x" * 501),
    ],
)
def test_adjust_validation(ledger, db_session, make_account, delta, reason):
    account = make_account(balance=100)
    with pytest.raises(InvalidInput):
        ledger.adjust_balance(db_session, account.id, delta, reason, actor="admin")


def test_adjust_unknown_account(ledger, db_session):
    with pytest.raises(AccountNotFound):
        ledger.adjust_balance(db_session, 999, 10, REASON, actor="admin")


def test_open_account_credits_welcome_bonus(ledger, db_session):
    account = ledger.open_account(db_session, telegram_id=555, first_name="Анна")

    assert account.current_balance == 500
    records = account_records(db_session, account.id)
    assert [(r.origin, r.amount) for r in records] == [(TransactionOrigin.WELCOME_BONUS.value, 500)]


def test_open_account_is_get_or_create(ledger, db_session):
    first = ledger.open_account(db_session, telegram_id=555)
    second = ledger.open_account(db_session, telegram_id=555)

    assert first.id == second.id
    assert crud_loyalty.count_account_transactions(db_session, first.id) == 1


def test_open_account_returns_account_registered_concurrently(ledger, session_factory, db_session, mocker):
    """Другая сессия регистрирует тот же telegram_id между проверкой и вставкой."""
    other = session_factory()
    try:
        existing_id = ledger.open_account(other, telegram_id=555).id
    finally:
        other.close()

    get_by_telegram_id = crud_account.get_account_by_telegram_id
    lookups = []

    def missing_on_first_lookup(db, telegram_id):
        lookups.append(telegram_id)
        if len(lookups) == 1:
            return None
        return get_by_telegram_id(db, telegram_id)

    mocker.patch(
        "app.services.ledger.crud_account.get_account_by_telegram_id", side_effect=missing_on_first_lookup
    )

    account = ledger.open_account(db_session, telegram_id=555)

    assert account.id == existing_id
    assert lookups == [555, 555]
    assert db_session.query(Account).filter(Account.telegram_id == 555).count() == 1
    assert crud_loyalty.count_account_transactions(db_session, existing_id) == 1


def test_history_is_newest_first_and_reconciles(ledger, db_session, store, clock):
    account = ledger.open_account(db_session, telegram_id=777)
    clock.advance(minutes=1)
    ledger.earn(db_session, account.id, store.id, 1000)
    clock.advance(minutes=1)
    ledger.redeem(db_session, account.id, store.id, 1000, 100)

    history = ledger.get_history(db_session, account.id, skip=0, limit=2)

    assert history.total == 4
    assert len(history.transactions) == 2
    assert history.transactions[0].created_at >= history.transactions[1].created_at
    # 500 + 40 - 100 + 36
    assert history.balance == 476
    assert ledger_sum(db_session, account.id) == 476

# tests/test_points_expiration.py

from datetime import timedelta
from unittest.mock import AsyncMock

from app.core.errors import StorageError
from app.models.account import Account
from app.services.points_expiration import (
    cleanup_transactions_task,
    expire_points_task,
    notify_about_expiring_points_task,
)


async def test_expire_points_task_notifies_after_commit(ledger, session_factory, db_session, make_account, clock, mocker):
    mock_notify = mocker.patch(
        "app.bot.services.notification.send_points_expired_notification", new_callable=AsyncMock
    )
    account = make_account(balance=700, last_activity=clock.now() - timedelta(days=46), telegram_id=1001)

    result = await expire_points_task(ledger, session_factory, dry_run=False)

    assert result.points_expired == 700
    assert mock_notify.await_count == 1
    notified_account, points = mock_notify.await_args.args[1:]
    assert notified_account.id == account.id
    assert points == 700
    db_session.expire_all()
    assert db_session.get(Account, account.id).current_balance == 0


async def test_expire_points_task_dry_run_sends_nothing(ledger, session_factory, db_session, make_account, clock, mocker):
    mock_notify = mocker.patch(
        "app.bot.services.notification.send_points_expired_notification", new_callable=AsyncMock
    )
    account = make_account(balance=700, last_activity=clock.now() - timedelta(days=46))

    result = await expire_points_task(ledger, session_factory, dry_run=True)

    assert result.dry_run is True
    mock_notify.assert_not_awaited()
    db_session.expire_all()
    assert db_session.get(Account, account.id).current_balance == 700


async def test_notification_failure_does_not_roll_back_expiration(
    ledger, session_factory, db_session, make_account, clock, mocker
):
    mocker.patch(
        "app.bot.services.notification.send_points_expired_notification",
        new_callable=AsyncMock,
        side_effect=RuntimeError("telegram is down"),
    )
    account = make_account(balance=700, last_activity=clock.now() - timedelta(days=46))

    result = await expire_points_task(ledger, session_factory, dry_run=False)

    assert result.accounts_affected == 1
    db_session.expire_all()
    assert db_session.get(Account, account.id).current_balance == 0


async def test_task_errors_are_logged_not_raised(ledger, session_factory, mocker):
    mocker.patch.object(ledger, "run_expiration_sweep", side_effect=StorageError())
    mocker.patch.object(ledger, "run_retention_cleanup", side_effect=StorageError())

    assert await expire_points_task(ledger, session_factory) is None
    assert await cleanup_transactions_task(ledger, session_factory) is None


async def test_notify_expiring_points_task(ledger, session_factory, make_account, clock, mocker):
    mock_notify = mocker.patch(
        "app.bot.services.notification.send_points_expiring_soon_notification", new_callable=AsyncMock
    )
    soon = make_account(balance=300, last_activity=clock.now() - timedelta(days=39))
    make_account(balance=300, last_activity=clock.now() - timedelta(days=30))
    make_account(balance=0, last_activity=clock.now() - timedelta(days=44))

    notified = await notify_about_expiring_points_task(ledger, session_factory)

    assert notified == 1
    kwargs = mock_notify.await_args.kwargs
    assert kwargs["account"].id == soon.id
    assert kwargs["points_expiring"] == 300
    assert kwargs["days_left"] == 7

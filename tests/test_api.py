# tests/test_api.py

from datetime import timedelta
from unittest.mock import AsyncMock

from httpx import AsyncClient

from app.models.account import Account
from app.tasks_registry import TASKS


async def test_cashier_endpoints_require_key(client: AsyncClient, admin_auth_headers: dict):
    payload = {"account_id": 1, "store_id": 1, "purchase_amount": 1000}

    response = await client.post("/api/v1/cashier/earn", json=payload)
    assert response.status_code == 401

    # Ключ админки не подходит для кассы
    response = await client.post("/api/v1/cashier/earn", json=payload, headers=admin_auth_headers)
    assert response.status_code == 401


async def test_earn_endpoint(client: AsyncClient, cashier_auth_headers: dict, make_account, store, mocker):
    mock_notify = mocker.patch(
        "app.bot.services.notification.send_points_earned_notification", new_callable=AsyncMock
    )
    account = make_account(balance=500, telegram_id=1001)

    response = await client.post(
        "/api/v1/cashier/earn",
        json={
            "account_id": account.id,
            "store_id": store.id,
            "purchase_amount": 1000,
            "metadata": {"cashier_name": "Ирина", "terminal_id": "T-01"},
        },
        headers=cashier_auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["points_earned"] == 40
    assert data["new_balance"] == 540

    # Уведомление уходит после коммита, в фоновой задаче
    assert mock_notify.await_count == 1
    assert mock_notify.await_args.args[2:] == (40, 540)


async def test_duplicate_earn_returns_conflict(client: AsyncClient, cashier_auth_headers: dict, make_account, store, mocker):
    mocker.patch("app.bot.services.notification.send_points_earned_notification", new_callable=AsyncMock)
    account = make_account(balance=0)
    payload = {"account_id": account.id, "store_id": store.id, "purchase_amount": 1000}

    first = await client.post("/api/v1/cashier/earn", json=payload, headers=cashier_auth_headers)
    second = await client.post("/api/v1/cashier/earn", json=payload, headers=cashier_auth_headers)

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["code"] == "DUPLICATE_TRANSACTION"


async def test_redeem_endpoint(client: AsyncClient, cashier_auth_headers: dict, make_account, store, mocker):
    mock_notify = mocker.patch(
        "app.bot.services.notification.send_points_redeemed_notification", new_callable=AsyncMock
    )
    account = make_account(balance=300)

    response = await client.post(
        "/api/v1/cashier/redeem",
        json={"account_id": account.id, "store_id": store.id, "purchase_amount": 1000, "points_to_redeem": 100},
        headers=cashier_auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["transaction_id"] > 0
    assert data["cashback_earned"] == 36
    assert data["discount_applied"] == 100
    assert data["new_balance"] == 236
    assert mock_notify.await_count == 1
    assert mock_notify.await_args.args[2:] == (100, 36, 236)


async def test_redeem_over_cap_is_rejected(client: AsyncClient, cashier_auth_headers: dict, make_account, store, db_session):
    account = make_account(balance=200)

    response = await client.post(
        "/api/v1/cashier/redeem",
        json={"account_id": account.id, "store_id": store.id, "purchase_amount": 1000, "points_to_redeem": 250},
        headers=cashier_auth_headers,
    )

    assert response.status_code == 400
    data = response.json()
    assert data["code"] == "MAX_DISCOUNT_EXCEEDED"
    assert data["details"]["max_discount"] == 200
    db_session.expire_all()
    assert db_session.get(Account, account.id).current_balance == 200


async def test_invalid_purchase_amount(client: AsyncClient, cashier_auth_headers: dict, make_account, store):
    account = make_account(balance=200)

    response = await client.post(
        "/api/v1/cashier/earn",
        json={"account_id": account.id, "store_id": store.id, "purchase_amount": -5},
        headers=cashier_auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


async def test_unknown_account_returns_404(client: AsyncClient, cashier_auth_headers: dict):
    response = await client.get("/api/v1/cashier/accounts/999/balance", headers=cashier_auth_headers)

    assert response.status_code == 404
    assert response.json()["code"] == "ACCOUNT_NOT_FOUND"


async def test_balance_endpoint_hides_expired_points(client: AsyncClient, cashier_auth_headers: dict, make_account, clock):
    account = make_account(balance=700, last_activity=clock.now() - timedelta(days=46))

    response = await client.get(f"/api/v1/cashier/accounts/{account.id}/balance", headers=cashier_auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["current_balance"] == 700
    assert data["available_balance"] == 0
    assert data["expiring"]["expired_now"] == 700


async def test_admin_endpoints_require_key(client: AsyncClient, cashier_auth_headers: dict):
    response = await client.get("/api/v1/admin/settings/loyalty", headers=cashier_auth_headers)
    assert response.status_code == 401


async def test_admin_loyalty_settings(client: AsyncClient, admin_auth_headers: dict):
    response = await client.get("/api/v1/admin/settings/loyalty", headers=admin_auth_headers)
    assert response.status_code == 200
    assert response.json()["earning_percent"] == 4.0

    response = await client.put(
        "/api/v1/admin/settings/loyalty", json={"earning_percent": 5}, headers=admin_auth_headers
    )
    assert response.status_code == 200
    assert response.json()["earning_percent"] == 5.0
    assert response.json()["max_discount_percent"] == 20.0

    response = await client.put(
        "/api/v1/admin/settings/loyalty", json={"earning_percent": 30}, headers=admin_auth_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


async def test_settings_update_applies_to_next_earn(
    client: AsyncClient, admin_auth_headers: dict, cashier_auth_headers: dict, make_account, store, mocker
):
    mocker.patch("app.bot.services.notification.send_points_earned_notification", new_callable=AsyncMock)
    account = make_account(balance=0)

    await client.put("/api/v1/admin/settings/loyalty", json={"earning_percent": 10}, headers=admin_auth_headers)
    response = await client.post(
        "/api/v1/cashier/earn",
        json={"account_id": account.id, "store_id": store.id, "purchase_amount": 1000},
        headers=cashier_auth_headers,
    )

    assert response.json()["points_earned"] == 100


async def test_admin_open_account_and_adjust(client: AsyncClient, admin_auth_headers: dict):
    response = await client.post(
        "/api/v1/admin/accounts", json={"telegram_id": 42, "first_name": "Олег"}, headers=admin_auth_headers
    )
    assert response.status_code == 201
    account = response.json()
    assert account["current_balance"] == 500

    response = await client.post(
        f"/api/v1/admin/accounts/{account['id']}/balance/adjust",
        json={"delta": -200, "reason": "Ошибочное начисление по акции"},
        headers=admin_auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["new_balance"] == 300

    response = await client.get(
        f"/api/v1/admin/accounts/{account['id']}/transactions", headers=admin_auth_headers
    )
    assert response.status_code == 200
    history = response.json()
    assert history["total"] == 2
    assert history["balance"] == 300
    assert history["transactions"][0]["origin"] == "admin_adjustment"
    assert history["transactions"][0]["details"] == {"actor": "admin"}


async def test_admin_adjust_below_zero(client: AsyncClient, admin_auth_headers: dict, make_account):
    account = make_account(balance=100)

    response = await client.post(
        f"/api/v1/admin/accounts/{account.id}/balance/adjust",
        json={"delta": -500, "reason": "Ошибочное начисление по акции"},
        headers=admin_auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_BALANCE"
    assert response.json()["details"]["available"] == 100


async def test_admin_tasks_list(client: AsyncClient, admin_auth_headers: dict):
    response = await client.get("/api/v1/admin/tasks", headers=admin_auth_headers)

    assert response.status_code == 200
    names = {task["task_name"] for task in response.json()}
    assert names == {"expire_points", "cleanup_transactions", "notify_expiring_points"}


async def test_admin_run_task(client: AsyncClient, admin_auth_headers: dict, mocker):
    mock_task = AsyncMock()
    mocker.patch.dict(TASKS["expire_points"], {"function": mock_task})

    response = await client.post(
        "/api/v1/admin/tasks/run", json={"task_name": "expire_points", "dry_run": True}, headers=admin_auth_headers
    )

    assert response.status_code == 202
    assert response.json()["status"] == "accepted"
    assert mock_task.call_count == 1
    assert mock_task.call_args.kwargs == {"dry_run": True}


async def test_admin_run_unknown_task(client: AsyncClient, admin_auth_headers: dict):
    response = await client.post(
        "/api/v1/admin/tasks/run", json={"task_name": "update_levels"}, headers=admin_auth_headers
    )
    assert response.status_code == 422

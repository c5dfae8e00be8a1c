from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from pointmart_api.models.account import Account
from pointmart_api.models.order import Order, OrderStatusEnum


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


async def _register(client: AsyncClient, login: str, password: str = "s3cret-pass"):
    return await client.post("/api/user/register", json={"login": login, "password": password})


async def _upload(client: AsyncClient, number: str):
    return await client.post("/api/user/orders", content=number, headers={"Content-Type": "text/plain"})


@pytest.mark.asyncio
async def test_register_and_login_issue_session_cookie(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await _register(client, "alice")
        assert response.status_code == 200
        assert "Authorization" in response.cookies

        duplicate = await _register(client, "alice")
        assert duplicate.status_code == 409

    async with _client(app) as client:
        bad_login = await client.post("/api/user/login", json={"login": "alice", "password": "wrong"})
        assert bad_login.status_code == 401
        assert "Authorization" not in bad_login.cookies

        login = await client.post("/api/user/login", json={"login": "alice", "password": "s3cret-pass"})
        assert login.status_code == 200
        assert "Authorization" in login.cookies

        balance = await client.get("/api/user/balance")
        assert balance.status_code == 200


@pytest.mark.asyncio
async def test_register_rejects_malformed_payloads(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        missing = await client.post("/api/user/register", json={"login": "alice"})
        blank = await client.post("/api/user/register", json={"login": "  ", "password": "x"})
        too_long = await _register(client, "alice", password="p" * 73)

    assert missing.status_code == 400
    assert blank.status_code == 400
    assert too_long.status_code == 400


@pytest.mark.asyncio
async def test_user_routes_require_session(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        assert (await client.get("/api/user/orders")).status_code == 401
        assert (await client.get("/api/user/balance")).status_code == 401
        assert (await _upload(client, "79927398713")).status_code == 401

        client.cookies.set("Authorization", "not-a-token")
        assert (await client.get("/api/user/withdrawals")).status_code == 401


@pytest.mark.asyncio
async def test_order_upload_status_codes(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as alice, _client(app) as bob:
        await _register(alice, "alice")
        await _register(bob, "bob")

        assert (await alice.get("/api/user/orders")).status_code == 204

        assert (await _upload(alice, "79927398713")).status_code == 202
        assert (await _upload(alice, "79927398713")).status_code == 200
        assert (await _upload(bob, "79927398713")).status_code == 409
        assert (await _upload(alice, "79927398710")).status_code == 422
        assert (await _upload(alice, "")).status_code == 400
        wrong_type = await alice.post("/api/user/orders", json="12345678903")
        assert wrong_type.status_code == 400

        listing = await alice.get("/api/user/orders")

    assert listing.status_code == 200
    payload = listing.json()
    assert len(payload) == 1
    assert payload[0]["number"] == "79927398713"
    assert payload[0]["status"] == "NEW"
    assert "accrual" not in payload[0]
    assert "uploaded_at" in payload[0]


@pytest.mark.asyncio
async def test_orders_listing_shows_accrual_for_processed_orders(app_with_db) -> None:
    app, session_factory = app_with_db

    async with _client(app) as client:
        await _register(client, "alice")
        await _upload(client, "79927398713")

        async with session_factory() as session:
            await session.execute(
                update(Order)
                .where(Order.number == "79927398713")
                .values(status=OrderStatusEnum.PROCESSED, accrual=Decimal("500"))
            )
            await session.commit()

        payload = (await client.get("/api/user/orders")).json()

    assert payload[0]["status"] == "PROCESSED"
    assert payload[0]["accrual"] == 500


@pytest.mark.asyncio
async def test_withdraw_flow(app_with_db) -> None:
    app, session_factory = app_with_db

    async with _client(app) as client:
        await _register(client, "alice")

        assert (await client.get("/api/user/balance")).json() == {"current": 0, "withdrawn": 0}
        assert (await client.get("/api/user/withdrawals")).status_code == 204

        broke = await client.post("/api/user/balance/withdraw", json={"order": "2377225624", "sum": 10})
        assert broke.status_code == 402

        async with session_factory() as session:
            await session.execute(update(Account).values(balance=Decimal("500")))
            await session.commit()

        ok = await client.post("/api/user/balance/withdraw", json={"order": "2377225624", "sum": 100.5})
        assert ok.status_code == 200

        reused = await client.post("/api/user/balance/withdraw", json={"order": "2377225624", "sum": 1})
        bad_number = await client.post("/api/user/balance/withdraw", json={"order": "79927398710", "sum": 1})
        zero = await client.post("/api/user/balance/withdraw", json={"order": "12345678903", "sum": 0})
        malformed = await client.post("/api/user/balance/withdraw", json={"order": "12345678903"})

        balance = (await client.get("/api/user/balance")).json()
        withdrawals = (await client.get("/api/user/withdrawals")).json()

    assert reused.status_code == 409
    assert bad_number.status_code == 422
    assert zero.status_code == 400
    assert malformed.status_code == 400
    assert balance == {"current": 399.5, "withdrawn": 100.5}
    assert len(withdrawals) == 1
    assert withdrawals[0]["order"] == "2377225624"
    assert withdrawals[0]["sum"] == 100.5
    assert "processed_at" in withdrawals[0]


@pytest.mark.asyncio
async def test_withdraw_rejects_sums_finer_than_one_cent(app_with_db) -> None:
    app, session_factory = app_with_db

    async with _client(app) as client:
        await _register(client, "alice")

        async with session_factory() as session:
            await session.execute(update(Account).values(balance=Decimal("0.01")))
            await session.commit()

        response = await client.post("/api/user/balance/withdraw", json={"order": "2377225624", "sum": 0.005})
        balance = (await client.get("/api/user/balance")).json()
        withdrawals = await client.get("/api/user/withdrawals")

    assert response.status_code == 400
    assert balance == {"current": 0.01, "withdrawn": 0}
    assert withdrawals.status_code == 204

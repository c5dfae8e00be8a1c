from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from pointmart_api.core.settings import settings
from pointmart_api.workers import AccrualWorkerMetrics, WorkerState


@pytest.mark.asyncio
async def test_healthz_reports_ok(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readyz_reports_disabled_worker(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "accrual_worker_enabled", False)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        response = await client.get("/readyz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["accrual_worker"]["status"] == "disabled"


@pytest.mark.asyncio
async def test_readyz_degrades_when_worker_is_failing(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "accrual_worker_enabled", True)
    metrics = AccrualWorkerMetrics()
    metrics.record_error("accrual service unreachable")
    app.state.accrual_worker = SimpleNamespace(
        metrics=metrics,
        is_running=True,
        state=WorkerState.RUNNING,
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        response = await client.get("/readyz")

    payload = response.json()
    component = payload["components"]["accrual_worker"]
    assert payload["status"] == "degraded"
    assert component["status"] == "degraded"
    assert component["detail"] == "accrual service unreachable"
    assert component["metrics"]["orders_failed"] == 0


@pytest.mark.asyncio
async def test_readyz_flags_stopped_worker(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "accrual_worker_enabled", True)
    app.state.accrual_worker = SimpleNamespace(
        metrics=AccrualWorkerMetrics(),
        is_running=False,
        state=WorkerState.STOPPED,
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        payload = (await client.get("/readyz")).json()

    assert payload["status"] == "degraded"
    assert payload["components"]["accrual_worker"]["status"] == "starting"

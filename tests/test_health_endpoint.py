import pytest
from httpx import ASGITransport, AsyncClient

from popboost_api.core.settings import settings


@pytest.mark.asyncio
async def test_healthz_reports_environment(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["environment"] == settings.environment


@pytest.mark.asyncio
async def test_readiness_checks_database(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/health/readyz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["rate_limiter"]["status"] == "ready"
    assert payload["status"] == "ready"


@pytest.mark.asyncio
async def test_readiness_degrades_when_rate_limits_bypassed(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "rate_limit_bypass", True)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    assert response.json()["status"] == "degraded"
    assert response.json()["components"]["rate_limiter"]["status"] == "disabled"

"""Health endpoint tests."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test basic health check endpoint."""
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_health_check_db(client: AsyncClient):
    """Test health check with database connectivity."""
    response = await client.get("/api/health/db")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"


@pytest.mark.asyncio
async def test_health_check_broker(client: AsyncClient):
    with patch("stormlink.api.health.settings") as mock_settings:
        mock_settings.broker_url = "memory://"
        response = await client.get("/api/health/broker")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "broker": "connected"}


@pytest.mark.asyncio
async def test_health_check_broker_not_configured(client: AsyncClient):
    with patch("stormlink.api.health.settings") as mock_settings:
        mock_settings.broker_url = ""
        response = await client.get("/api/health/broker")

    assert response.status_code == 503
    assert response.json()["broker"] == "not_configured"


@pytest.mark.asyncio
async def test_health_check_broker_unreachable(client: AsyncClient):
    with patch("stormlink.api.health.check_broker", side_effect=ConnectionRefusedError("refused")):
        response = await client.get("/api/health/broker")

    assert response.status_code == 503
    assert response.json()["broker"] == "disconnected"


@pytest.mark.asyncio
async def test_readiness(client: AsyncClient):
    with patch("stormlink.api.health.check_broker", return_value="connected"):
        response = await client.get("/api/health/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "connected", "broker": "connected"}


@pytest.mark.asyncio
async def test_readiness_degraded_without_broker(client: AsyncClient):
    with patch("stormlink.api.health.check_broker", return_value="not_configured"):
        response = await client.get("/api/health/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient):
    response = await client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

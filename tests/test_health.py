"""Tests for health check endpoints."""

import pytest
from fastapi.testclient import TestClient

from storefront.api.dependencies import get_app_settings
from storefront.infrastructure.config import Settings
from storefront.main import app


@pytest.fixture
def bare_client() -> TestClient:
    """Client with no provider keys configured."""
    app.dependency_overrides[get_app_settings] = lambda: Settings(_env_file=None)
    return TestClient(app)


def test_health_check(client: TestClient) -> None:
    """Test health endpoint returns healthy status."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "storefront-api"
    assert "version" in data


def test_readiness_check(client: TestClient) -> None:
    """Test readiness endpoint reports configured providers."""
    response = client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["storage_backend"] == "memory"
    assert data["payments_configured"] is True
    assert data["shipping_configured"] is True


def test_ready_without_provider_keys(bare_client: TestClient) -> None:
    """Missing provider keys are reported, not treated as unready."""
    data = bare_client.get("/ready").json()
    assert data["status"] == "ready"
    assert data["payments_configured"] is False
    assert data["shipping_configured"] is False

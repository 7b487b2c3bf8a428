"""
Tests for docrag/main.py
Operational endpoints and service lifecycle.
"""

import pytest
from fastapi.testclient import TestClient

from docrag.core.config import settings
from docrag.main import create_app


@pytest.fixture
def client(services, monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "")
    with TestClient(create_app(services)) as test_client:
        yield test_client


class TestEndpoints:
    """Test the operational HTTP endpoints."""

    def test_metrics_exposed(self, client):
        """Test Prometheus metrics are served."""
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "docrag_index_operations_total" in response.text

    def test_health_reports_dependencies(self, client):
        """Test health lists every dependency and flags disconnected stores."""
        body = client.get("/health").json()

        assert body["service"] == settings.service_name
        assert body["status"] == "unhealthy"
        assert body["services"]["postgres"]["status"] == "unhealthy"
        assert body["services"]["qdrant"]["status"] == "unhealthy"
        assert body["services"]["openai"]["status"] == "not_configured"

    def test_readiness(self, client):
        """Test readiness is false while the stores are unreachable."""
        body = client.get("/ready").json()

        assert body == {
            "service": settings.service_name,
            "ready": False,
            "postgres": False,
            "qdrant": False,
        }

    def test_services_attached_to_app(self, services):
        """Test the container is reachable from the application state."""
        app = create_app(services)

        assert app.state.services is services

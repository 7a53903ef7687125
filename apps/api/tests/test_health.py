"""Tests for health endpoints and middleware."""

from fastapi.testclient import TestClient

from attest_api.db.schema import ensure_schema
from attest_api.db.session import engine
from attest_api.main import app

client = TestClient(app)


def test_health_check():
    """Test health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "attest-api"


def test_readiness_check():
    """Test readiness endpoint."""
    ensure_schema(engine)
    response = client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {
        "database": True,
        "schema": True,
        "object_storage": True,
        "nonce_store": True,
    }


def test_root():
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "Attested PDF Intake API"


def test_correlation_id_round_trip():
    response = client.get("/health", headers={"x-correlation-id": "abc-123"})
    assert response.headers["x-correlation-id"] == "abc-123"
    assert client.get("/health").headers["x-correlation-id"]


def test_protected_route_without_principal():
    response = client.get("/v1/attestations")
    assert response.status_code == 401


def test_gateway_key_enforced(monkeypatch):
    from attest_api.settings import get_settings

    monkeypatch.setattr(get_settings(), "gateway_key", "gateway-secret")
    headers = {"x-tenant-id": "1", "x-user-id": "7", "x-username": "jdoe"}

    assert client.get("/v1/pdf-uploads/recent", headers=headers).status_code == 401
    wrong = client.get("/v1/pdf-uploads/recent", headers={**headers, "x-gateway-key": "nope"})
    assert wrong.status_code == 401


def test_metrics_exposed_without_principal():
    response = client.get("/metrics/")
    assert response.status_code == 200
    assert "attest_intake_requests" in response.text

import pytest
from fastapi.testclient import TestClient

from app.core import health as health_module
from app.main import app

client = TestClient(app)


@pytest.fixture(autouse=True)
def _mock_env(monkeypatch):
    monkeypatch.setattr(health_module.settings, "environment", "test")
    yield


def _patch_checks(monkeypatch, db_status: dict, redis_status: dict) -> None:
    async def fake_db():
        return db_status

    async def fake_redis():
        return redis_status

    monkeypatch.setattr(health_module, "_check_db", fake_db)
    monkeypatch.setattr(health_module, "_check_redis", fake_redis)


def test_health_live_returns_ok() -> None:
    response = client.get("/api/health/live")
    assert response.status_code == 200
    payload = response.json()
    assert payload.get("status") == "ok"
    assert "timestamp" in payload


def test_health_ready_ok(monkeypatch) -> None:
    _patch_checks(monkeypatch, {"status": "ok"}, {"status": "ok"})

    response = client.get("/api/health/ready")
    assert response.status_code == 200
    payload = response.json()
    assert payload.get("status") == "ok"
    assert payload.get("ready") is True
    assert payload.get("environment") == "test"
    assert payload.get("version") == health_module.APP_VERSION
    assert payload["checks"]["database"]["status"] == "ok"
    assert payload["checks"]["redis"]["status"] == "ok"


def test_health_ready_degraded(monkeypatch) -> None:
    _patch_checks(monkeypatch, {"status": "error", "error": "unreachable"}, {"status": "ok"})

    response = client.get("/api/health/ready")
    assert response.status_code == 200
    payload = response.json()
    assert payload.get("status") == "degraded"
    assert payload.get("ready") is False
    assert payload["checks"]["database"]["status"] == "error"


def test_loan_service_heartbeat() -> None:
    response = client.get("/api/loans/health")
    assert response.status_code == 200
    assert response.text == "Loan Service is running"

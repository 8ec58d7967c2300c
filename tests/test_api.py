from datetime import datetime

import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from scripts.file_watcher import WatchHealth
from storage.base import StorageError
from storage.models import AuthAttempt, GeoInfo


@pytest.fixture
def client(backend, monkeypatch):
    api_main.app.dependency_overrides[api_main.get_backend] = lambda: backend
    monkeypatch.setattr(api_main, "open_backend", lambda: backend)
    yield TestClient(api_main.app)
    api_main.app.dependency_overrides.clear()


def test_health_ok_without_watcher(client):
    body = client.get("/health").json()
    assert body == {"status": "ok", "watcher": {"status": "stopped"}}


def test_health_reports_degraded_watcher(client, monkeypatch):
    class Service:
        health = WatchHealth(status="degraded", consecutive_failures=4, last_error="OSError: gone")

    monkeypatch.setattr(api_main, "get_service", lambda: Service())

    body = client.get("/health").json()
    assert body["status"] == "degraded"
    assert body["watcher"]["last_error"] == "OSError: gone"


def test_health_reports_db_failure(client, backend):
    backend.close()

    body = client.get("/health").json()
    assert body["status"] == "degraded"
    assert "not connected" in body["error"]


def test_health_reports_unopenable_db(client, monkeypatch):
    def unopenable():
        raise StorageError("cannot open /nonexistent/ssheat.db: unable to open database file")

    monkeypatch.setattr(api_main, "open_backend", unopenable)

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["error"].startswith("cannot open")


def test_list_attempts(client, backend):
    backend.save_attempt(AuthAttempt(ip="10.0.0.5", username="root", host="host", timestamp=datetime(2026, 3, 14, 10, 2, 33)))
    backend.save_attempt(AuthAttempt(ip="10.0.0.6", username=None, host="host", timestamp=datetime(2026, 3, 14, 10, 2, 40)))

    rows = client.get("/attempts").json()
    assert [r["ip"] for r in rows] == ["10.0.0.6", "10.0.0.5"]

    rows = client.get("/attempts", params={"ip": "10.0.0.5"}).json()
    assert len(rows) == 1
    assert rows[0]["username"] == "root"
    assert rows[0]["attempted_at"] == "2026-03-14T10:02:33"


def test_list_attempts_db_error(client, monkeypatch, backend):
    def broken(filters):
        raise StorageError("disk I/O error")

    monkeypatch.setattr(backend, "query_attempts", broken)

    response = client.get("/attempts")
    assert response.status_code == 500
    assert response.json()["detail"] == "DB error: disk I/O error"


def test_geo_lookup(client, backend):
    backend.save_geo_info(GeoInfo(ip="10.0.0.5", country_code="NL", city="Amsterdam"))

    assert client.get("/geo/10.0.0.5").json()["city"] == "Amsterdam"
    assert client.get("/geo/10.0.0.9").status_code == 404

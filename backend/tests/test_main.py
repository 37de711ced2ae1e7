"""Application factory, probes, lifespan and error rendering.

Covers app construction and metadata, which REST and GraphQL paths are
mounted, /health and /readyz against a healthy and an unreachable store,
pool start and stop around the lifespan, and that a 500 body carries the
generic message instead of the driver's.
"""

from __future__ import annotations

import uuid
from typing import cast

import pytest
from fastapi import testclient

from app import main
from app.api import disasters as api_disasters
from app.core import errors
from app.db import database


def test_create_app() -> None:
    """Test that create_app returns a configured FastAPI instance."""
    app = main.create_app()
    assert app is not None
    assert app.title == "Disaster Records API"
    assert app.version == "0.1.0"


def test_app_includes_routers() -> None:
    """Test that all API routers are included in the app."""
    app = main.create_app()
    routes: list[str] = [
        cast(str, getattr(route, "path", ""))
        for route in app.routes  # type: ignore[attr-defined]
        if hasattr(route, "path")
    ]
    assert "/health" in routes
    assert "/readyz" in routes
    assert "/graphql" in routes
    assert "/api/v1/disasters" in routes
    assert "/api/v1/disasters/near" in routes
    assert "/api/v1/disasters/bulk" in routes
    assert "/api/v1/disasters/{disaster_id}" in routes


def test_health_endpoint(client: testclient.TestClient) -> None:
    """Test the health check endpoint returns ok status."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


def test_readyz(client: testclient.TestClient) -> None:
    response = client.get("/readyz")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "db": "connected"}


def test_readyz_unavailable(failing_client: testclient.TestClient) -> None:
    response = failing_client.get("/readyz")
    assert response.status_code == 503
    assert response.json()["db"] == "disconnected"


class _BrokenStore(database.InMemoryDisasterRepository):
    async def get(self, disaster_id: str):  # type: ignore[no-untyped-def]
        raise errors.StoreError('relation "disasters" does not exist')


def test_store_error_hides_driver_message() -> None:
    app = main.create_app()
    repo = _BrokenStore()
    app.dependency_overrides[api_disasters._get_repo] = lambda: repo
    client = testclient.TestClient(app)
    try:
        response = client.get(f"/api/v1/disasters/{uuid.uuid4()}")
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Database operation failed"
        assert body["code"] == "INTERNAL_ERROR"
        assert "relation" not in response.text
    finally:
        app.dependency_overrides.clear()


def test_lifespan_starts_and_stops_database(monkeypatch: pytest.MonkeyPatch) -> None:
    """The pool is opened on startup, exposed on app.state and closed."""
    events: list[str] = []

    class FakeDatabase:
        def __init__(self, settings: object) -> None:
            self.settings = settings

        def start(self) -> None:
            events.append("start")

        def stop(self) -> None:
            events.append("stop")

    monkeypatch.setattr(database, "Database", FakeDatabase)
    app = main.create_app()
    with testclient.TestClient(app) as client:
        assert isinstance(app.state.database, FakeDatabase)
        assert client.get("/health").status_code == 200
        assert events == ["start"]
    assert events == ["start", "stop"]


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **fields: object) -> None:
        self.events.append((level, event, fields))

    def error(self, event: str, **fields: object) -> None:
        self._record("error", event, **fields)

    def warning(self, event: str, **fields: object) -> None:
        self._record("warning", event, **fields)

    def exception(self, event: str, **fields: object) -> None:
        self._record("exception", event, **fields)


def test_store_failure_log_includes_request_body(
    failing_client: testclient.TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    recorder = _RecordingLogger()
    monkeypatch.setattr(main, "logger", recorder)
    item = {
        "type": "flood",
        "location": {"type": "Point", "coordinates": [10.0, 45.0]},
        "date": "2025-02-01",
        "status": "active",
    }
    response = failing_client.post(
        "/api/v1/disasters/bulk", json=[item], headers={"X-Request-ID": "req-7"}
    )
    assert response.status_code == 400
    level, event, fields = recorder.events[-1]
    assert (level, event) == ("error", "store operation failed")
    assert fields["route"] == "/api/v1/disasters/bulk"
    assert fields["method"] == "POST"
    assert fields["code"] == "BULK_INSERT_ERROR"
    assert '"flood"' in cast(str, fields["body"])


def test_unexpected_error_keeps_request_id_header(
    failing_client: testclient.TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    recorder = _RecordingLogger()
    monkeypatch.setattr(main, "logger", recorder)
    response = failing_client.get(
        "/api/v1/disasters", headers={"X-Request-ID": "req-500"}
    )
    assert response.status_code == 500
    assert response.json()["requestId"] == "req-500"
    assert response.headers["X-Request-ID"] == "req-500"
    assert recorder.events[-1][:2] == ("exception", "unhandled error")

"""Tests for the status server module."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from seedwave.server.dashboard import create_dashboard_app
from seedwave.server.state import ServiceState
from seedwave.sync.cache import CacheEntry
from seedwave.sync.controller import SyncController

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _status_payload(**overrides) -> dict:
    payload = {
        "connected": True,
        "last_sync_at": "2026-01-01T00:00:00+00:00",
        "sync_count": 0,
        "errors": [],
        "is_online": True,
        "active": True,
        "interval_ms": 3000,
        "resource_keys": ["/api/sectors", "/api/brands"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def _make_client():
    """Factory that returns (TestClient, ServiceState)."""

    def _factory(*, with_controller: bool = False, entries: dict[str, CacheEntry] | None = None):
        state = ServiceState()

        if with_controller:
            ctrl = MagicMock()
            ctrl.force_sync = AsyncMock()
            ctrl.resource_keys = ("/api/sectors", "/api/brands")
            ctrl.get_status.return_value = _status_payload()
            state.controller = ctrl

        if entries is not None:
            cache = MagicMock()
            cache.get.side_effect = lambda key: entries.get(key)
            state.cache = cache

        app = create_dashboard_app(state)
        return TestClient(app), state

    return _factory


# ---------------------------------------------------------------------------
# Health / status
# ---------------------------------------------------------------------------


def test_health(_make_client) -> None:
    client, _state = _make_client()
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert "uptime_seconds" in body


def test_status_without_controller(_make_client) -> None:
    client, _state = _make_client()
    resp = client.get("/api/status")
    assert resp.status_code == 200
    body = resp.json()
    assert "uptime_seconds" in body
    assert "sync" not in body
    assert body["transition"]["is_transitioning"] is False


def test_status_with_controller(_make_client) -> None:
    client, _state = _make_client(with_controller=True)
    body = client.get("/api/status").json()
    assert body["sync"]["sync_count"] == 0
    assert body["sync"]["is_online"] is True


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


def test_sync_status(_make_client) -> None:
    client, _state = _make_client(with_controller=True)
    resp = client.get("/api/sync/status")
    assert resp.status_code == 200
    assert resp.json()["resource_keys"] == ["/api/sectors", "/api/brands"]


def test_sync_status_not_configured(_make_client) -> None:
    client, _state = _make_client()
    resp = client.get("/api/sync/status")
    assert resp.status_code == 503


def test_force_sync(_make_client) -> None:
    client, state = _make_client(with_controller=True)
    state.controller.get_status.return_value = _status_payload(
        connected=False,
        is_online=False,
        sync_count=1,
        errors=["Force sync error: timeout"],
    )

    resp = client.post("/api/sync")

    assert resp.status_code == 200
    state.controller.force_sync.assert_awaited_once()
    assert resp.json()["errors"] == ["Force sync error: timeout"]


def test_force_sync_not_configured(_make_client) -> None:
    client, _state = _make_client()
    resp = client.post("/api/sync")
    assert resp.status_code == 503


def test_force_sync_with_inactive_controller(fake_cache) -> None:
    state = ServiceState()
    state.controller = SyncController(fake_cache)
    client = TestClient(create_dashboard_app(state))

    resp = client.post("/api/sync")

    assert resp.status_code == 200
    assert resp.json()["sync_count"] == 0
    assert fake_cache.calls == []


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


def test_resources_listing(_make_client) -> None:
    fetched = datetime(2026, 1, 1, tzinfo=UTC)
    entries = {"/api/sectors": CacheEntry(value=[1, 2], fetched_at=fetched, stale=False)}
    client, _state = _make_client(with_controller=True, entries=entries)

    body = client.get("/api/resources").json()

    assert body["total"] == 2
    sectors, brands = body["items"]
    assert sectors["key"] == "/api/sectors"
    assert sectors["has_value"] is True
    assert sectors["fetched_at"] == fetched.isoformat()
    assert brands == {"key": "/api/brands", "has_value": False}


def test_resource_value(_make_client) -> None:
    entries = {
        "/api/dashboard/stats": CacheEntry(
            value={"brands": 42},
            fetched_at=datetime(2026, 1, 1, tzinfo=UTC),
            stale=False,
        )
    }
    client, _state = _make_client(with_controller=True, entries=entries)

    resp = client.get("/api/resources/api/dashboard/stats")

    assert resp.status_code == 200
    body = resp.json()
    assert body["key"] == "/api/dashboard/stats"
    assert body["value"] == {"brands": 42}


def test_resource_not_cached(_make_client) -> None:
    entries = {"/api/brands": CacheEntry(error="timeout")}
    client, _state = _make_client(with_controller=True, entries=entries)

    assert client.get("/api/resources/api/sectors").status_code == 404
    assert client.get("/api/resources/api/brands").status_code == 404


# ---------------------------------------------------------------------------
# Sector transition
# ---------------------------------------------------------------------------


def test_transition_flow(_make_client) -> None:
    client, _state = _make_client()

    body = client.post(
        "/api/transition/start",
        json={"current_sector": "agriculture", "target_sector": "fintech"},
    ).json()
    assert body["is_transitioning"] is True
    assert body["target_sector"] == "fintech"

    body = client.post("/api/transition/progress", json={"progress": 40}).json()
    assert body["progress"] == 40
    assert body["current_sector"] == "agriculture"

    body = client.post("/api/transition/complete").json()
    assert body["is_transitioning"] is False
    assert body["progress"] == 100

    body = client.post("/api/transition/reset").json()
    assert body["progress"] == 0
    assert client.get("/api/transition").json() == body


def test_transition_progress_out_of_range(_make_client) -> None:
    client, _state = _make_client()
    resp = client.post("/api/transition/progress", json={"progress": 120})
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------


def test_ws_sends_status_on_connect(fake_cache) -> None:
    state = ServiceState()
    state.controller = SyncController(fake_cache)
    client = TestClient(create_dashboard_app(state))

    with client.websocket_connect("/ws") as ws:
        message = ws.receive_json()

    assert message["type"] == "status"
    assert message["data"]["sync_count"] == 0
    assert message["data"]["connected"] is True


def test_ws_pushes_status_change(fake_cache) -> None:
    state = ServiceState()
    controller = SyncController(fake_cache)
    state.controller = controller
    fake_cache.failures["/api/brands"] = RuntimeError("timeout")

    with TestClient(create_dashboard_app(state)) as client:
        handle = client.portal.call(controller.activate, ["/api/sectors", "/api/brands"], 60_000)
        with client.websocket_connect("/ws") as ws:
            initial = ws.receive_json()
            client.post("/api/sync")
            # The activation broadcast may still arrive first.
            update = ws.receive_json()
            while update["data"]["sync_count"] == 0:
                update = ws.receive_json()
        client.portal.call(handle.deactivate)

    assert initial["data"]["sync_count"] == 0
    assert update["type"] == "status"
    assert update["data"]["sync_count"] == 1
    assert update["data"]["errors"] == ["Force sync error: timeout"]

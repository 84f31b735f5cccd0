"""HTTP and WebSocket status surface for the Seedwave sync service."""

from __future__ import annotations

import asyncio
import contextlib
import json
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from seedwave.server.state import ServiceState
    from seedwave.sync.status import SyncStatus

log = structlog.get_logger(__name__)


class TransitionStart(BaseModel):
    current_sector: str | None = None
    target_sector: str | None = None


class TransitionProgress(BaseModel):
    progress: float = Field(ge=0.0, le=100.0)


class ConnectionManager:
    """Manages WebSocket connections and broadcasts status updates."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.add(ws)

    def disconnect(self, ws: WebSocket) -> None:
        self._connections.discard(ws)

    async def broadcast(self, message: dict) -> None:
        payload = json.dumps(message)
        dead: list[WebSocket] = []
        for ws in self._connections:
            try:
                await ws.send_text(payload)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self._connections.discard(ws)


def _not_configured() -> JSONResponse:
    return JSONResponse({"error": "sync not configured"}, status_code=503)


def create_dashboard_app(state: ServiceState) -> FastAPI:
    """Build the FastAPI application that exposes sync status and controls."""
    manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ARG001, ANN001
        if state.controller is None:
            yield
            return

        updates: asyncio.Queue[dict] = asyncio.Queue()

        def _on_status(status: SyncStatus) -> None:
            updates.put_nowait(status.to_dict())

        async def _broadcast_loop() -> None:
            while True:
                data = await updates.get()
                await manager.broadcast({"type": "status", "data": data})

        unsubscribe = state.controller.subscribe(_on_status)
        task = asyncio.create_task(_broadcast_loop())
        try:
            yield
        finally:
            unsubscribe()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    app = FastAPI(title="seedwave-sync", docs_url=None, redoc_url=None, lifespan=lifespan)

    # -- health / overview ----------------------------------------------------

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True, "uptime_seconds": state.uptime_seconds()}

    @app.get("/api/status")
    async def api_status() -> dict:
        return state.get_status()

    # -- sync -----------------------------------------------------------------

    @app.get("/api/sync/status")
    async def api_sync_status():  # noqa: ANN201
        if not state.controller:
            return _not_configured()
        return state.controller.get_status()

    @app.post("/api/sync")
    async def api_sync_now():  # noqa: ANN201
        if not state.controller:
            return _not_configured()
        log.info("force_sync_requested")
        await state.controller.force_sync()
        return state.controller.get_status()

    # -- cached resources -----------------------------------------------------

    @app.get("/api/resources")
    async def api_resources():  # noqa: ANN201
        if not state.controller or not state.cache:
            return _not_configured()
        items = []
        for key in state.controller.resource_keys:
            entry = state.cache.get(key)
            items.append({"key": key, **(entry.to_dict() if entry else {"has_value": False})})
        return {"items": items, "total": len(items)}

    @app.get("/api/resources/{key:path}")
    async def api_resource(key: str):  # noqa: ANN201
        if not state.cache:
            return _not_configured()
        key = "/" + key.lstrip("/")
        entry = state.cache.get(key)
        if entry is None or entry.fetched_at is None:
            return JSONResponse({"error": f"resource not cached: {key}"}, status_code=404)
        return {"key": key, **entry.to_dict(), "value": entry.value}

    # -- sector transition ----------------------------------------------------

    @app.get("/api/transition")
    async def api_transition() -> dict:
        return state.transitions.state.model_dump()

    @app.post("/api/transition/start")
    async def api_transition_start(body: TransitionStart) -> dict:
        return state.transitions.start(body.current_sector, body.target_sector).model_dump()

    @app.post("/api/transition/progress")
    async def api_transition_progress(body: TransitionProgress) -> dict:
        return state.transitions.update_progress(body.progress).model_dump()

    @app.post("/api/transition/complete")
    async def api_transition_complete() -> dict:
        return state.transitions.complete().model_dump()

    @app.post("/api/transition/reset")
    async def api_transition_reset() -> dict:
        return state.transitions.reset().model_dump()

    # -- WebSocket ------------------------------------------------------------

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket) -> None:
        await manager.connect(ws)
        try:
            if state.controller:
                await ws.send_text(json.dumps({"type": "status", "data": state.controller.status.to_dict()}))
            while True:
                await ws.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(ws)

    return app

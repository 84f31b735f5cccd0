"""Runtime state shared between the sync service and its HTTP surface."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from seedwave.sync.transition import TransitionTracker

if TYPE_CHECKING:
    from seedwave.sync.cache import HttpResourceCache
    from seedwave.sync.controller import SyncController

log = structlog.get_logger(__name__)


class ServiceState:
    """Holds mutable runtime state shared across the service."""

    def __init__(self) -> None:
        self.started_at: datetime = datetime.now(UTC)
        self.shutdown_event: asyncio.Event = asyncio.Event()
        self.controller: SyncController | None = None
        self.cache: HttpResourceCache | None = None
        self.transitions: TransitionTracker = TransitionTracker()

    def uptime_seconds(self) -> float:
        return round((datetime.now(UTC) - self.started_at).total_seconds(), 2)

    def get_status(self) -> dict:
        """Return a snapshot of the current service status."""
        status: dict = {
            "uptime_seconds": self.uptime_seconds(),
            "started_at": self.started_at.isoformat(),
        }
        if self.controller:
            status["sync"] = self.controller.get_status()
        status["transition"] = self.transitions.state.model_dump()
        return status

    def request_shutdown(self) -> None:
        """Signal the service to shut down gracefully."""
        log.info("shutdown_requested")
        self.shutdown_event.set()

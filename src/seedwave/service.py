"""Foreground service: sync controller plus the status server, in one event loop."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from typing import TYPE_CHECKING

import structlog
import uvicorn

from seedwave.server.dashboard import create_dashboard_app
from seedwave.server.state import ServiceState
from seedwave.sync.cache import HttpResourceCache
from seedwave.sync.controller import SyncController

if TYPE_CHECKING:
    from seedwave.config import AppConfig

log = structlog.get_logger(__name__)


async def run_service(config: AppConfig, state: ServiceState | None = None) -> None:
    """Run until SIGINT/SIGTERM or until ``state.request_shutdown()`` is called."""
    state = state or ServiceState()

    async with HttpResourceCache(config.api) as cache:
        controller = SyncController(cache, error_capacity=config.sync.error_capacity)
        state.cache = cache
        state.controller = controller

        handle = controller.activate(config.sync.resource_keys, config.sync.interval_ms)
        loop = asyncio.get_running_loop()
        signals = (signal.SIGTERM, signal.SIGINT)
        server: uvicorn.Server | None = None
        server_task: asyncio.Task[None] | None = None

        try:
            for sig in signals:
                loop.add_signal_handler(sig, state.request_shutdown)

            server = uvicorn.Server(
                uvicorn.Config(
                    create_dashboard_app(state),
                    host=config.server.host,
                    port=config.server.port,
                    log_level=config.server.log_level,
                    loop="asyncio",
                )
            )
            server_task = asyncio.create_task(server.serve())
            log.info(
                "service_started",
                api=config.api.base_url,
                server=config.server_url,
                keys=len(config.sync.resource_keys),
            )

            # uvicorn may capture the signals itself, so a finished server also
            # counts as a shutdown request.
            shutdown_task = asyncio.create_task(state.shutdown_event.wait())
            await asyncio.wait({shutdown_task, server_task}, return_when=asyncio.FIRST_COMPLETED)
            if not shutdown_task.done():
                shutdown_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await shutdown_task
            log.info("initiating graceful shutdown")
        finally:
            # Let an in-flight batch finish before the cache closes.
            handle.deactivate()
            await handle.wait_closed()

            for sig in signals:
                loop.remove_signal_handler(sig)

            if server is not None:
                server.should_exit = True
            if server_task is not None:
                await server_task

    log.info("service shut down cleanly")

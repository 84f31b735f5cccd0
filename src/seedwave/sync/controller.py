"""Sync controller: keeps a fixed set of portal resources fresh in the cache."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from seedwave.sync.status import DEFAULT_ERROR_CAPACITY, StatusCell, StatusListener, SyncStatus

if TYPE_CHECKING:
    from seedwave.sync.cache import ResourceCache

log = structlog.get_logger(__name__)

_TICK_ERROR_PREFIX = "Sync error"
_FORCE_ERROR_PREFIX = "Force sync error"


class SyncHandle:
    """Returned by :meth:`SyncController.activate`; cancels the periodic loop."""

    def __init__(self, controller: SyncController, task: asyncio.Task[None], stop_event: asyncio.Event) -> None:
        self._controller = controller
        self._task = task
        self._stop_event = stop_event

    @property
    def active(self) -> bool:
        return not self._stop_event.is_set()

    def deactivate(self) -> None:
        self._controller.deactivate(self)

    async def wait_closed(self) -> None:
        """Wait until the loop has exited, including any batch still in flight."""
        await self._task


class SyncController:
    """Refreshes tracked resource keys periodically and on demand.

    Every batch dispatches one cache operation per key, waits for all of them
    to settle and then replaces the status exactly once.  Fetch failures end
    up in the status, never in an exception raised to the caller.
    """

    def __init__(
        self,
        cache: ResourceCache,
        *,
        error_capacity: int = DEFAULT_ERROR_CAPACITY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._cache = cache
        self._error_capacity = error_capacity
        self._clock = clock or (lambda: datetime.now(UTC))
        self._cell = StatusCell(SyncStatus.initial(error_capacity))
        self._keys: tuple[str, ...] = ()
        self._interval_ms: int | None = None
        self._handle: SyncHandle | None = None
        self._generation = 0

    # -- status reader --

    @property
    def status(self) -> SyncStatus:
        return self._cell.value

    @property
    def is_online(self) -> bool:
        return self._cell.value.connected

    @property
    def resource_keys(self) -> tuple[str, ...]:
        return self._keys

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        return self._cell.subscribe(listener)

    def get_status(self) -> dict:
        return {
            **self._cell.value.to_dict(),
            "is_online": self.is_online,
            "active": self.is_active,
            "interval_ms": self._interval_ms,
            "resource_keys": list(self._keys),
        }

    # -- lifecycle --

    def activate(self, resource_keys: Iterable[str], interval_ms: int) -> SyncHandle:
        """Start refreshing *resource_keys* every *interval_ms* milliseconds.

        The first tick fires one interval after activation.  Must be called
        from a running event loop.
        """
        keys = tuple(resource_keys)
        if not keys:
            raise ValueError("at least one resource key is required")
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        if self._handle is not None:
            raise RuntimeError("controller is already active")

        self._generation += 1
        self._keys = keys
        self._interval_ms = interval_ms
        self._cell.set(SyncStatus.initial(self._error_capacity))

        stop_event = asyncio.Event()
        task = asyncio.create_task(self._loop(self._generation, keys, interval_ms / 1000, stop_event))
        self._handle = SyncHandle(self, task, stop_event)
        log.info("controller_activated", generation=self._generation, keys=len(keys), interval_ms=interval_ms)
        return self._handle

    def deactivate(self, handle: SyncHandle) -> None:
        """Stop future ticks for *handle*. Calling it again is a no-op."""
        if handle._stop_event.is_set():
            return
        handle._stop_event.set()
        if self._handle is handle:
            self._handle = None
        log.info("controller_deactivated")

    async def force_sync(self) -> None:
        """Refetch every tracked key now and record the outcome."""
        if not self._keys:
            log.warning("force_sync_skipped", reason="no tracked resources")
            return
        await self._run_batch(
            self._generation, self._keys, self._cache.refetch, _FORCE_ERROR_PREFIX, trigger="manual"
        )

    # -- internals --

    async def _loop(
        self, generation: int, keys: tuple[str, ...], interval: float, stop_event: asyncio.Event
    ) -> None:
        while not stop_event.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            if stop_event.is_set():
                break
            await self._run_batch(generation, keys, self._cache.invalidate, _TICK_ERROR_PREFIX, trigger="periodic")

    async def _run_batch(
        self,
        generation: int,
        keys: tuple[str, ...],
        operation: Callable[[str], Awaitable[None]],
        error_prefix: str,
        *,
        trigger: str,
    ) -> None:
        # Cache events logged while the batch runs carry the same context.
        with structlog.contextvars.bound_contextvars(trigger=trigger, generation=generation):
            results = await asyncio.gather(
                *(_dispatch(operation, key) for key in keys),
                return_exceptions=True,
            )
            failures = [
                (key, res) for key, res in zip(keys, results, strict=True) if isinstance(res, BaseException)
            ]

            if generation != self._generation:
                log.info("sync_batch_discarded", current_generation=self._generation, failed_keys=len(failures))
                return

            # No await below this point: the status changes in one step.
            now = self._clock()
            current = self._cell.value
            if not failures:
                self._cell.set(current.succeeded(now))
                log.info("sync_batch_completed", keys=len(keys), sync_count=current.sync_count + 1)
                return

            detail = _describe(failures[0][1])
            self._cell.set(current.failed(now, f"{error_prefix}: {detail}"))
            log.warning(
                "sync_batch_failed",
                failed_keys=[key for key, _ in failures],
                errors=[_describe(exc) for _, exc in failures],
                sync_count=current.sync_count + 1,
            )


async def _dispatch(operation: Callable[[str], Awaitable[None]], key: str) -> None:
    await operation(key)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__

"""Resource cache for the Seedwave portal API, backed by httpx.

Each resource key is the path of a portal endpoint (``/api/sectors``,
``/api/brands``, ...).  The cache stores the last decoded JSON body per key.

- ``invalidate(key)`` marks the entry stale and refetches it; concurrent
  invalidations of the same key share one in-flight request.
- ``refetch(key)`` always issues a new request.

Any failure raises :class:`ResourceFetchError` and leaves the previous value
in place.  The httpx timeout is the only bound on a hanging endpoint.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx
import structlog

from seedwave.config import ApiConfig

log = structlog.get_logger(__name__)


class ResourceFetchError(Exception):
    """Raised when a resource could not be fetched or decoded."""

    def __init__(self, key: str, detail: str) -> None:
        super().__init__(detail)
        self.key = key
        self.detail = detail


class ResourceCache(Protocol):
    """The cache operations the sync controller depends on."""

    async def invalidate(self, key: str) -> None: ...

    async def refetch(self, key: str) -> None: ...


@dataclass
class CacheEntry:
    value: Any = None
    fetched_at: datetime | None = None
    stale: bool = True
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
            "stale": self.stale,
            "error": self.error,
            "has_value": self.fetched_at is not None,
        }


class HttpResourceCache:
    """Async resource cache that fetches portal endpoints over HTTP."""

    def __init__(
        self,
        config: ApiConfig,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[None]] = {}

    async def __aenter__(self) -> HttpResourceCache:
        headers = {"Accept": "application/json"}
        token = self._config.api_token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        kw: dict = {
            "base_url": self._config.base_url,
            "timeout": self._config.timeout_seconds,
            "headers": headers,
        }
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- reads --

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def entries(self) -> dict[str, CacheEntry]:
        return dict(self._entries)

    # -- cache operations --

    async def invalidate(self, key: str) -> None:
        """Mark *key* stale and wait for its background refetch to settle."""
        self._entries.setdefault(key, CacheEntry()).stale = True
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch(key))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        await asyncio.shield(task)

    async def refetch(self, key: str) -> None:
        """Fetch *key* now, regardless of staleness or in-flight requests."""
        await self._fetch(key)

    def _forget(self, key: str, task: asyncio.Task[None]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters may have been cancelled.
            task.exception()

    async def _fetch(self, key: str) -> None:
        if self._client is None:
            raise RuntimeError("HttpResourceCache used outside of 'async with'")

        entry = self._entries.setdefault(key, CacheEntry())
        try:
            resp = await self._client.get(key)
            resp.raise_for_status()
            value = resp.json()
        except httpx.TimeoutException as exc:
            raise self._failed(entry, key, "timeout") from exc
        except httpx.HTTPStatusError as exc:
            raise self._failed(entry, key, f"HTTP {exc.response.status_code} for {key}") from exc
        except httpx.RequestError as exc:
            raise self._failed(entry, key, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise self._failed(entry, key, f"invalid JSON from {key}") from exc

        entry.value = value
        entry.fetched_at = datetime.now(UTC)
        entry.stale = False
        entry.error = None
        log.debug("resource_fetched", key=key)

    def _failed(self, entry: CacheEntry, key: str, detail: str) -> ResourceFetchError:
        entry.error = detail
        log.warning("resource_fetch_failed", key=key, error=detail)
        return ResourceFetchError(key, detail)

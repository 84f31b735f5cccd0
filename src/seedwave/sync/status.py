"""Sync status value types and the observable cell that holds them."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

import structlog

log = structlog.get_logger(__name__)

DEFAULT_ERROR_CAPACITY = 5


@dataclass(frozen=True)
class ErrorLog:
    """Bounded FIFO of error messages; the oldest entry is evicted first."""

    capacity: int = DEFAULT_ERROR_CAPACITY
    entries: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("error log capacity must be at least 1")

    def append(self, message: str) -> ErrorLog:
        entries = (*self.entries, message)[-self.capacity :]
        return replace(self, entries=entries)

    @property
    def latest(self) -> str | None:
        return self.entries[-1] if self.entries else None

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class SyncStatus:
    connected: bool = True
    last_sync_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    sync_count: int = 0
    error_log: ErrorLog = field(default_factory=ErrorLog)

    @classmethod
    def initial(cls, error_capacity: int = DEFAULT_ERROR_CAPACITY) -> SyncStatus:
        return cls(error_log=ErrorLog(capacity=error_capacity))

    @property
    def errors(self) -> tuple[str, ...]:
        return self.error_log.entries

    def succeeded(self, at: datetime) -> SyncStatus:
        """Return the status after a batch in which every key refreshed."""
        return replace(self, connected=True, last_sync_at=at, sync_count=self.sync_count + 1)

    def failed(self, at: datetime, message: str) -> SyncStatus:
        """Return the status after a batch with at least one failing key."""
        return replace(
            self,
            connected=False,
            last_sync_at=at,
            sync_count=self.sync_count + 1,
            error_log=self.error_log.append(message),
        )

    def to_dict(self) -> dict:
        return {
            "connected": self.connected,
            "last_sync_at": self.last_sync_at.isoformat(),
            "sync_count": self.sync_count,
            "errors": list(self.errors),
        }


StatusListener = Callable[[SyncStatus], None]


class StatusCell:
    """Holds the current :class:`SyncStatus` and notifies subscribers on change.

    Listeners are called synchronously from :meth:`set`, in subscription
    order.  A listener that raises is logged and does not prevent the
    others from being notified.
    """

    def __init__(self, value: SyncStatus | None = None) -> None:
        self._value = value if value is not None else SyncStatus.initial()
        self._listeners: list[StatusListener] = []

    @property
    def value(self) -> SyncStatus:
        return self._value

    def set(self, value: SyncStatus) -> None:
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as exc:
                log.warning("status_listener_failed", error=str(exc))

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register *listener*; return a callable that removes it again."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

"""Sync module: controller, resource cache, status model."""

from seedwave.sync.cache import CacheEntry, HttpResourceCache, ResourceCache, ResourceFetchError
from seedwave.sync.controller import SyncController, SyncHandle
from seedwave.sync.status import ErrorLog, StatusCell, SyncStatus
from seedwave.sync.transition import TransitionState, TransitionTracker

__all__ = [
    "CacheEntry",
    "ErrorLog",
    "HttpResourceCache",
    "ResourceCache",
    "ResourceFetchError",
    "StatusCell",
    "SyncController",
    "SyncHandle",
    "SyncStatus",
    "TransitionState",
    "TransitionTracker",
]

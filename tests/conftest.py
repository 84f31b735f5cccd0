"""Shared fixtures for Seedwave tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest


@pytest.fixture()
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect all Seedwave runtime files to a temporary directory.

    Patches ``seedwave.config.get_base_dir`` (and the re-imported reference in
    ``seedwave.cli``) so that nothing touches the real ``~/.seedwave/``.
    """
    fake_base = tmp_path / ".seedwave"
    fake_base.mkdir()
    (fake_base / "logs").mkdir()

    monkeypatch.setattr("seedwave.config.get_base_dir", lambda: fake_base)
    monkeypatch.setattr("seedwave.cli.get_base_dir", lambda: fake_base)

    return fake_base


class FakeCache:
    """In-memory stand-in for the resource cache.

    ``failures`` maps a key to the exception its operation raises; ``gate``,
    when set, holds every operation until it is released.
    """

    def __init__(self) -> None:
        self.failures: dict[str, BaseException] = {}
        self.calls: list[tuple[str, str]] = []
        self.completed: list[str] = []
        self.gate: asyncio.Event | None = None

    async def invalidate(self, key: str) -> None:
        await self._op("invalidate", key)

    async def refetch(self, key: str) -> None:
        await self._op("refetch", key)

    async def _op(self, op: str, key: str) -> None:
        self.calls.append((op, key))
        exc = self.failures.get(key)
        if exc is not None:
            raise exc
        if self.gate is not None:
            await self.gate.wait()
        self.completed.append(key)


@pytest.fixture()
def fake_cache() -> FakeCache:
    return FakeCache()

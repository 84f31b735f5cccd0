"""Sector transition progress, shown while the portal switches sectors."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TransitionState(BaseModel):
    is_transitioning: bool = False
    current_sector: str | None = None
    target_sector: str | None = None
    progress: float = Field(default=0.0, ge=0.0, le=100.0)


class TransitionTracker:
    """Tracks a single in-progress sector transition."""

    def __init__(self) -> None:
        self._state = TransitionState()

    @property
    def state(self) -> TransitionState:
        return self._state

    def start(self, current_sector: str | None = None, target_sector: str | None = None) -> TransitionState:
        self._state = TransitionState(
            is_transitioning=True,
            current_sector=current_sector,
            target_sector=target_sector,
            progress=0.0,
        )
        return self._state

    def update_progress(self, progress: float) -> TransitionState:
        """Set progress, clamped to 0..100. Sectors are left unchanged."""
        clamped = min(max(progress, 0.0), 100.0)
        self._state = self._state.model_copy(update={"progress": clamped})
        return self._state

    def complete(self) -> TransitionState:
        self._state = TransitionState(is_transitioning=False, progress=100.0)
        return self._state

    def reset(self) -> TransitionState:
        self._state = TransitionState()
        return self._state

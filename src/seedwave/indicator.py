"""Terminal rendering of a sync status snapshot."""

from __future__ import annotations

from datetime import datetime

from rich.text import Text


def _local_time(iso_str: str | None) -> str:
    if not iso_str:
        return "—"
    try:
        return datetime.fromisoformat(iso_str.replace("Z", "+00:00")).astimezone().strftime("%H:%M:%S")
    except ValueError:
        return iso_str


def render_indicator(status: dict) -> Text:
    """Render a ``/api/sync/status`` payload as a one- or two-line badge.

    Shows SYNCED or OFFLINE, the sync count, the local time of the last
    batch and, when offline, the most recent error.
    """
    online = bool(status.get("is_online", status.get("connected", False)))
    text = Text()
    if online:
        text.append(" SYNCED ", style="bold black on green")
    else:
        text.append(" OFFLINE ", style="bold white on red")
    text.append(f"  syncs {status.get('sync_count', 0)}")
    text.append(f"  last {_local_time(status.get('last_sync_at'))}", style="dim")

    errors = status.get("errors") or []
    if errors and not online:
        text.append("\n")
        text.append(errors[-1], style="red")
    return text

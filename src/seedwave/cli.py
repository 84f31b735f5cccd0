"""CLI interface for the Seedwave sync service."""

from __future__ import annotations

import typing
from collections import deque

import httpx
import typer
from pydantic import SecretStr
from rich.console import Console

from seedwave.config import ensure_dirs, get_base_dir, load_config, save_config
from seedwave.indicator import render_indicator
from seedwave.logging import SERVICE_LOG, SYNC_LOG

app = typer.Typer(
    name="seedwave",
    help="Keep Seedwave portal data fresh and report its sync status.",
    add_completion=False,
)
console = Console()


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


# ---------------------------------------------------------------------------
# Service helper
# ---------------------------------------------------------------------------


def request_service(method: str, path: str) -> dict:
    """Call the running service's status server and return the JSON body.

    Raises a user-friendly error (via ``typer.Exit``) when the service is not
    reachable or answers with an error status.
    """
    cfg = load_config()
    try:
        with httpx.Client(base_url=cfg.server_url) as client:
            response = client.request(method, path, timeout=30.0)
            response.raise_for_status()
            return response.json()
    except httpx.ConnectError:
        console.print(
            f"[red]Could not connect to the sync service[/red] at [bold]{cfg.server_url}[/bold].  "
            "Is it running?  Try [bold]seedwave run[/bold].",
        )
        raise typer.Exit(1) from None
    except httpx.HTTPStatusError as exc:
        console.print(f"[red]Service returned an error:[/red] {exc.response.status_code}")
        raise typer.Exit(1) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def run(
    log_level: str = typer.Option("", "--log-level", "-l", help="Override the configured log level"),
) -> None:
    """Run the sync controller and status server in the foreground."""
    import asyncio

    from seedwave.logging import setup_logging
    from seedwave.service import run_service

    ensure_dirs()
    cfg = load_config()
    setup_logging(log_level or cfg.server.log_level, cfg.log_dir, console=True)

    console.print(
        f"[green]Syncing[/green] {len(cfg.sync.resource_keys)} resources from [bold]{cfg.api.base_url}[/bold] "
        f"every {cfg.sync.interval_ms} ms; status at [bold]{cfg.server_url}[/bold]",
    )
    asyncio.run(run_service(cfg))


@app.command()
def status() -> None:
    """Show connectivity, sync count, last sync time and recent errors."""
    data = request_service("GET", "/api/sync/status")

    console.print()
    console.print(render_indicator(data))

    errors = data.get("errors") or []
    if len(errors) > 1:
        console.print("\n  [bold cyan]Recent errors[/bold cyan]")
        for message in errors:
            console.print(f"    {message}", highlight=False, markup=False)

    keys = data.get("resource_keys") or []
    if keys:
        console.print(f"\n  [bold cyan]Tracked[/bold cyan] ({len(keys)}, every {data.get('interval_ms')} ms)")
        for key in keys:
            console.print(f"    {key}")
    console.print()


@app.command()
def sync() -> None:
    """Force an immediate refetch of every tracked resource."""
    data = request_service("POST", "/api/sync")
    console.print(render_indicator(data))


@app.command()
def logs(
    tail_lines: int = typer.Option(50, "--lines", "-n", help="Number of lines to show"),
    sync: bool = typer.Option(False, "--sync", help="Show sync.log (JSON) instead of service.log"),
) -> None:
    """Show recent service log output (use --sync for the JSON sync log)."""
    filename = SYNC_LOG if sync else SERVICE_LOG
    log_file = get_base_dir() / "logs" / filename
    if not log_file.exists():
        console.print(f"[yellow]Log file not found:[/yellow] {log_file}")
        raise typer.Exit(1)

    with open(log_file, encoding="utf-8") as fh:
        last_lines = deque(fh, maxlen=tail_lines)

    if not last_lines:
        console.print("[dim]Log file is empty.[/dim]")
        return

    for line in last_lines:
        _print_log_line(line)


def _log_line_style(line: str) -> str | None:
    """Return a Rich style string based on the structlog level found in *line*."""
    lower = line.lower()
    if "[error" in lower or "[critical" in lower or '"level": "error"' in lower or '"level": "critical"' in lower:
        return "red"
    if "[warning" in lower or '"level": "warning"' in lower:
        return "yellow"
    if "[debug" in lower or '"level": "debug"' in lower:
        return "dim"
    return None


def _print_log_line(line: str) -> None:
    line = line.rstrip("\n")
    if not line:
        return
    console.print(line, style=_log_line_style(line), highlight=False, markup=False)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _mask(secret: SecretStr) -> str:
    """Return '***' if the secret is non-empty, else '(not set)'."""
    return "[bold]***[/bold]" if secret.get_secret_value() else "[dim](not set)[/dim]"


config_app = typer.Typer(name="config", help="View and modify configuration.", add_completion=False)
app.add_typer(config_app)


@config_app.command(name="show")
def config_show() -> None:
    """Show current configuration (the API token is masked)."""
    cfg = load_config()

    console.print("\n[bold]Current Configuration[/bold]\n")

    console.print("[bold cyan]\\[api][/bold cyan]")
    console.print(f"  base_url        = {cfg.api.base_url}")
    console.print(f"  api_token       = {_mask(cfg.api.api_token)}")
    console.print(f"  timeout_seconds = {cfg.api.timeout_seconds}")

    console.print("\n[bold cyan]\\[sync][/bold cyan]")
    console.print(f"  interval_ms    = {cfg.sync.interval_ms}")
    console.print(f"  error_capacity = {cfg.sync.error_capacity}")
    console.print("  resource_keys  =")
    for key in cfg.sync.resource_keys:
        console.print(f"    {key}")

    console.print("\n[bold cyan]\\[server][/bold cyan]")
    console.print(f"  host      = {cfg.server.host}")
    console.print(f"  port      = {cfg.server.port}")
    console.print(f"  log_level = {cfg.server.log_level}")
    console.print()


@config_app.command(name="set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. sync.interval_ms"),
    value: str = typer.Argument(help="New value (comma-separated for lists)"),
) -> None:
    """Set a configuration value (e.g. seedwave config set sync.interval_ms 5000)."""
    parts = key.split(".", maxsplit=1)
    if len(parts) != 2:
        console.print("[red]Key must be in section.field format (e.g. sync.interval_ms).[/red]")
        raise typer.Exit(1)

    section_name, field_name = parts

    cfg = load_config()
    section_map = {
        "api": cfg.api,
        "sync": cfg.sync,
        "server": cfg.server,
    }

    if section_name not in section_map:
        console.print(f"[red]Unknown section:[/red] {section_name}")
        console.print(f"[dim]Valid sections: {', '.join(section_map)}[/dim]")
        raise typer.Exit(1)

    section_model = section_map[section_name]
    fields = type(section_model).model_fields
    if field_name not in fields:
        console.print(f"[red]Unknown field:[/red] {section_name}.{field_name}")
        console.print(f"[dim]Valid fields: {', '.join(fields)}[/dim]")
        raise typer.Exit(1)

    try:
        coerced = _coerce_value(value, fields[field_name].annotation)
        section_data = section_model.model_dump(mode="python")
        section_data[field_name] = coerced
        new_section = type(section_model)(**section_data)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Invalid value:[/red] {exc}")
        raise typer.Exit(1) from exc

    setattr(cfg, section_name, new_section)
    save_config(cfg)

    display_val = "***" if isinstance(coerced, SecretStr) else coerced
    console.print(f"[green]Set[/green] {key} = {display_val}")


def _coerce_value(raw: str, field_type: object) -> object:
    """Coerce a string value to the expected field type."""
    if field_type is SecretStr:
        return SecretStr(raw)

    if field_type is int:
        return int(raw)

    if field_type is float:
        return float(raw)

    if typing.get_origin(field_type) is list:
        return [item.strip() for item in raw.split(",") if item.strip()]

    return raw


"""Configuration management for the Seedwave sync service."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_BASE_DIR_NAME = ".seedwave"
_CONFIG_FILE = "config.toml"
_LOG_DIR = "logs"

DEFAULT_RESOURCE_KEYS = [
    "/api/sectors",
    "/api/brands",
    "/api/dashboard/stats",
    "/api/system-status",
    "/api/admin-panel/stats",
    "/api/admin-panel/brands",
    "/api/admin-panel/sector-breakdown",
    "/api/sync/complete-sync",
]


def get_base_dir() -> Path:
    """Return the base directory for all Seedwave runtime files (~/.seedwave/)."""
    return Path.home() / _BASE_DIR_NAME


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class ApiConfig(BaseModel):
    """Where the portal API lives and how to talk to it."""

    base_url: str = Field(default="http://127.0.0.1:5000", description="Portal API base URL")
    api_token: SecretStr = Field(default=SecretStr(""), description="Optional bearer token")
    timeout_seconds: float = Field(default=10.0, gt=0, description="Per-request timeout")


class SyncConfig(BaseModel):
    """Settings that control the sync controller."""

    interval_ms: int = Field(default=3000, gt=0, description="Milliseconds between sync batches")
    error_capacity: int = Field(default=5, ge=1, description="Number of recent sync errors kept")
    resource_keys: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RESOURCE_KEYS),
        min_length=1,
        description="Endpoint paths kept fresh by the controller",
    )


class ServerConfig(BaseModel):
    """Settings for the local status server."""

    host: str = Field(default="127.0.0.1", description="Status server bind address")
    port: int = Field(default=9848, description="Status server port")
    log_level: str = Field(default="info", description="Logging level")


class AppConfig(BaseModel):
    """Top-level application configuration."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    # -- derived paths (not stored in TOML) --------------------------------

    @property
    def base_dir(self) -> Path:
        return get_base_dir()

    @property
    def log_dir(self) -> Path:
        return self.base_dir / _LOG_DIR

    @property
    def server_url(self) -> str:
        return f"http://{self.server.host}:{self.server.port}"


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_dirs() -> None:
    """Create the base directory and log directory if they don't already exist."""
    base = get_base_dir()
    base.mkdir(mode=0o700, parents=True, exist_ok=True)
    (base / _LOG_DIR).mkdir(mode=0o700, parents=True, exist_ok=True)


def config_exists() -> bool:
    """Return True if a config file is present on disk."""
    return (get_base_dir() / _CONFIG_FILE).is_file()


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_config() -> AppConfig:
    """Load configuration from TOML, falling back to defaults if the file is missing."""
    path = get_base_dir() / _CONFIG_FILE
    if not path.is_file():
        return AppConfig()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    return AppConfig.model_validate(raw)


def _format_toml_value(value: object) -> str:
    """Format a single Python value as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return repr(value)
    if isinstance(value, SecretStr):
        return _format_toml_value(value.get_secret_value())
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, list):
        return "[" + ", ".join(_format_toml_value(v) for v in value) + "]"
    msg = f"Unsupported TOML value type: {type(value)}"
    raise TypeError(msg)


def _dump_toml(config: AppConfig) -> str:
    """Serialize an AppConfig to a minimal TOML string.

    Only handles the flat two-level structure we actually use (tables with
    scalar or list values).
    """
    lines: list[str] = []
    sections = [
        ("api", config.api),
        ("sync", config.sync),
        ("server", config.server),
    ]
    for section_name, section_model in sections:
        lines.append(f"[{section_name}]")
        for key, value in section_model.model_dump(mode="python").items():
            lines.append(f"{key} = {_format_toml_value(value)}")
        lines.append("")
    return "\n".join(lines)


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML and restrict file permissions to owner-only."""
    ensure_dirs()
    path = get_base_dir() / _CONFIG_FILE
    path.write_text(_dump_toml(config), encoding="utf-8")
    os.chmod(path, 0o600)

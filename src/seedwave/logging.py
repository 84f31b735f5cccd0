"""Structured logging for the Seedwave sync service.

Two rotating files live under the log directory:

- ``service.log``: every event, rendered for humans.
- ``sync.log``: JSON lines from the controller and the resource cache only,
  so a batch's ``trigger`` and ``generation`` context can be grepped and
  parsed without the server noise.

``seedwave run`` adds a stderr handler so the foreground service is visible.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

SERVICE_LOG = "service.log"
SYNC_LOG = "sync.log"

_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5
_SYNC_LOGGER = "seedwave.sync"
_NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx", "httpcore")


def _drop_color_message(_logger: object, _name: str, event_dict: dict) -> dict:
    # uvicorn passes a pre-colored copy of every message via ``extra``.
    event_dict.pop("color_message", None)
    return event_dict


_pre_chain: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    _drop_color_message,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _formatter(renderer: structlog.types.Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_pre_chain)


def _rotating(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def _handlers(log_dir: Path | None, console: bool) -> list[logging.Handler]:
    human = _formatter(structlog.dev.ConsoleRenderer(colors=False))
    handlers: list[logging.Handler] = []

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(human)
        handlers.append(stream)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_rotating(log_dir / SERVICE_LOG, human))

        sync = _rotating(log_dir / SYNC_LOG, _formatter(structlog.processors.JSONRenderer()))
        sync.addFilter(logging.Filter(_SYNC_LOGGER))
        handlers.append(sync)

    return handlers


def setup_logging(log_level: str = "info", log_dir: Path | None = None, *, console: bool = False) -> None:
    """Route structlog and stdlib records into the service's log handlers.

    *log_dir* of ``None`` skips the files, which tests rely on.  Third-party
    loggers never go below WARNING, whatever *log_level* says.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[*_pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for handler in _handlers(log_dir, console):
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    sys.excepthook = _log_unhandled


def _log_unhandled(exc_type: type[BaseException], exc_value: BaseException, exc_tb: object) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logging.getLogger("seedwave").critical("unhandled_exception", exc_info=(exc_type, exc_value, exc_tb))

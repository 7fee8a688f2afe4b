"""Logging setup shared by the CLI and library callers."""

from __future__ import annotations

import logging
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

from .config import Settings, get_settings

_LOGGING_CONFIGURED = False


def configure_logging(settings: Settings | None = None) -> None:
    """Initialize structlog and stdlib logging formatting."""
    # Idempotent setup
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    resolved = settings or get_settings()
    level = getattr(logging, resolved.log_level.upper(), logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]
    if resolved.log_json_enabled:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.KeyValueRenderer(key_order=["event", "identity", "id"]))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    if resolved.log_rich_enabled and not resolved.log_json_enabled:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        logging.basicConfig(level=level, format="%(message)s", handlers=[handler])
    else:
        logging.basicConfig(level=level)

    # DATABASE_ECHO turns this back up when the engine is created.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _LOGGING_CONFIGURED = True


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)


def reset_logging_state() -> None:
    """Test helper so the next ``configure_logging`` call applies again."""
    global _LOGGING_CONFIGURED
    _LOGGING_CONFIGURED = False
    structlog.reset_defaults()


__all__ = ["configure_logging", "get_logger", "reset_logging_state"]

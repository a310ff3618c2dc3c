"""Structured logging configuration using structlog.

- Development (DEBUG=true): pretty console output with colors
- Production: JSON output for log aggregation

structlog is routed through the standard library, so uvicorn and httpx
records land on the same stream. httpx logs every NLI request at INFO;
those loggers are held at WARNING so a sweep of a few hundred pairs does
not drown the analysis events.
"""

from __future__ import annotations

import logging
import sys
from typing import cast

import structlog

from reqcheck.core.config import get_settings

QUIET_LOGGERS = ("httpx", "httpcore", "hpack")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _output_processors(debug: bool) -> list[structlog.types.Processor]:
    if debug:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    # JSONRenderer must be last
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def configure_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if settings.debug else logging.INFO,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*_shared_processors(), *_output_processors(settings.debug)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name. If None, uses the calling module's name.

    Returns:
        A structured logger instance.
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def truncate_for_log(text: str, limit: int = 50) -> str:
    """Shorten requirement text before it goes into a log event."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."

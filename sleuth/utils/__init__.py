"""Process-wide helpers: structlog setup and short identifiers."""

from __future__ import annotations

import logging
import sys
import uuid

import structlog

from sleuth.config import settings


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog for Sleuth.

    ``json`` renders one object per line for log shippers; any other format
    gets the coloured console renderer. Logs go to stderr so CLI output on
    stdout stays clean. Both arguments default to settings.
    """
    name = (level or settings.log_level).upper()
    numeric = logging.getLevelName("WARNING" if name == "WARN" else name)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    if (log_format or settings.log_format) == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def short_id() -> str:
    """12-char random identifier used for tasks, artifacts, citations and plans."""
    return uuid.uuid4().hex[:12]

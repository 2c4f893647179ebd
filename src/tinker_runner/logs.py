"""Structured logging configuration using structlog."""

from __future__ import annotations

import sys
from typing import Any

import structlog

_LEVELS = {"debug": 10, "info": 20, "warning": 30, "warn": 30, "error": 40, "critical": 50}


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    """Return a print logger bound to the current ``sys.stderr``.

    Resolved on every bind, so a replaced or closed stream is never reused.

    Example:
        ```python
        _stderr_logger().msg("hello")
        ```
    """
    return structlog.PrintLogger(file=sys.stderr)


def setup_logging(level: str = "warning", fmt: str = "console") -> None:
    """Configure structlog to write engine events to stderr.

    Uses the console renderer for interactive use, JSON for log shipping.

    Example:
        ```python
        setup_logging("debug", "json")
        ```
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if fmt == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS.get(level.lower(), 30)),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def default_logging() -> None:
    """Install warning-level stderr logging unless the application configured structlog.

    Called when ``tinker_runner`` is imported.

    Example:
        ```python
        default_logging()
        ```
    """
    if not structlog.is_configured():
        setup_logging()

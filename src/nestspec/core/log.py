from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def configure_logging(level: str = "WARNING", json_format: bool = False) -> None:
    """Configure structlog for the process.

    Logs go to stderr: stdout is reserved for the JSON envelope the CLI emits.
    """
    numeric = _LEVELS.get(level.upper())
    if numeric is None:
        raise ValueError(f"Invalid log level: {level!r} (expected one of {', '.join(_LEVELS)})")

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    # Lazy proxy: configuration is looked up when a message is logged, not at import.
    if name:
        return structlog.get_logger(name, logger_name=name)
    return structlog.get_logger()

"""Structured logging setup for kubeconfig updater.

Three output formats are supported:

- ``pipe``: ``2024-01-01T00:00:00Z | INFO | event | key="value" | count=3``
- ``json``: one JSON object per line
- ``rich``: structlog's colored development console renderer
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, TextIO

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger


LOG_FORMATS = ("pipe", "json", "rich")

# Third-party loggers that only add noise at INFO level
NOISY_LOGGERS = ("httpx", "httpcore")


class PipeRenderer:
    """Render an event dict as a pipe-delimited line.

    The timestamp, level and event come first, followed by every remaining
    key in insertion order. Strings are quoted, floats use two decimals and
    booleans render as ``true``/``false``.
    """

    def __init__(self, separator: str = " | ") -> None:
        self.separator = separator

    def __call__(
        self, logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> str:
        timestamp = event_dict.pop("timestamp", None)
        level = event_dict.pop("level", method_name)
        event = event_dict.pop("event", "")

        parts: list[str] = []
        if timestamp:
            parts.append(str(timestamp))
        parts.append(str(level).upper())
        parts.append(str(event))
        for key, value in event_dict.items():
            if value is None:
                continue
            if key == "exception":
                parts.append(f"{key}={value}")
                continue
            parts.append(f"{key}={format_value(value)}")

        return self.separator.join(parts)


def format_value(value: Any) -> str:
    """Format a single field value for the pipe renderer."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, datetime):
        return json.dumps(value.isoformat())
    return json.dumps(str(value), ensure_ascii=False)


def _build_processors(log_format: str) -> list[Processor]:
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        return [
            *shared,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    if log_format == "rich":
        return [*shared, structlog.dev.ConsoleRenderer()]
    return [*shared, structlog.processors.format_exc_info, PipeRenderer()]


def setup_logging(
    log_format: str = "pipe",
    log_level_name: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for the application.

    Args:
        log_format: One of ``pipe``, ``json`` or ``rich``
        log_level_name: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream, defaults to whatever sys.stdout is when logging

    Raises:
        ValueError: If the format or level name is unknown
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(
            f"Unknown log format '{log_format}', expected one of {', '.join(LOG_FORMATS)}"
        )

    level = logging.getLevelName(log_level_name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level '{log_level_name}'")

    structlog.configure(
        processors=_build_processors(log_format),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Bound structlog logger
    """
    return structlog.get_logger(name)

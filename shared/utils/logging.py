"""
Structured logging configuration using structlog.
"""

import logging
import sys
from typing import Any, Mapping, Optional

import structlog
from structlog.types import Processor

from shared.config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structured logging for the application."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    # Configure standard library logging (uvicorn, sqlalchemy, google clients)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Shared processors for all outputs
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.log_format == "json":
        # Production: JSON output (Cloud Logging picks it up line by line)
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # Development: Console output
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class LogContext:
    """Context manager binding key/values to every log line of a delivery."""

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self._tokens: Mapping[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.kwargs)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._tokens:
            structlog.contextvars.reset_contextvars(**self._tokens)
            self._tokens = {}

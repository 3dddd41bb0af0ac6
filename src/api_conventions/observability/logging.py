"""Structured logging configuration for the API conventions middleware.

Logs are emitted through structlog. The processor chain starts with
``merge_contextvars`` so that everything bound with
``structlog.contextvars.bind_contextvars`` (the correlation id in particular)
appears on every log line of the current request, including lines written by
application code and by dependency clients.

Examples:
    Configure logging::

        from api_conventions.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    Use the logger::

        logger = get_logger(__name__)
        logger.info("idempotency.replayed", key="7f41dba9", status=201)

    Output (JSON)::

        {
            "correlation_id": "3f0c9a4e-...",
            "key": "7f41dba9",
            "status": 201,
            "event": "idempotency.replayed",
            "level": "info",
            "timestamp": "2024-01-01T00:00:00.000000Z"
        }
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application.

    Call once at application startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, emit JSON logs; if False, use console format
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from the calling module)
    """
    return structlog.get_logger(name)

"""Observability utilities for the API conventions middleware.

- Structured logging (structlog) with the correlation id bound per request
- Prometheus metrics for idempotency outcomes, problems and cleanup
"""

from api_conventions.observability.logging import configure_logging, get_logger
from api_conventions.observability.metrics import (
    record_cleanup,
    record_execution_time,
    record_idempotency_outcome,
    record_problem,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_idempotency_outcome",
    "record_execution_time",
    "record_problem",
    "record_cleanup",
]

"""Prometheus metrics for the API conventions middleware.

Metrics:

- idempotent request outcomes (new, replay, conflict, in_progress, passthrough)
- execution time of new computations
- keys currently in flight
- rendered problems by kind and status
- cleanup runs and removed records

Examples:
    >>> record_idempotency_outcome("replay", 201)
    >>> record_problem("conflict", 409)
"""

from prometheus_client import Counter, Gauge, Histogram

# Labels: result (new, replay, conflict, in_progress, passthrough), status_code
idempotency_requests_total = Counter(
    "api_conventions_idempotency_requests_total",
    "Total number of requests processed by the idempotency store",
    ["result", "status_code"],
)

# New computations only, replays are not timed
execution_time_seconds = Histogram(
    "api_conventions_idempotency_execution_seconds",
    "Execution time of new idempotent computations in seconds",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

in_flight_keys = Gauge(
    "api_conventions_idempotency_in_flight_keys",
    "Number of idempotency keys currently holding an execution lease",
)

problems_total = Counter(
    "api_conventions_problems_total",
    "Total number of problem-details responses rendered",
    ["kind", "status_code"],
)

cleanup_operations = Counter(
    "api_conventions_cleanup_operations_total",
    "Total number of cleanup operations performed",
)

cleanup_records_removed = Counter(
    "api_conventions_cleanup_records_removed_total",
    "Total number of expired idempotency records removed by cleanup",
)


def record_idempotency_outcome(result: str, status_code: int) -> None:
    idempotency_requests_total.labels(result=result, status_code=str(status_code)).inc()


def record_execution_time(exec_time_ms: int) -> None:
    """Record the execution time of a new computation.

    Args:
        exec_time_ms: Execution time in milliseconds
    """
    execution_time_seconds.observe(exec_time_ms / 1000.0)


def increment_in_flight() -> None:
    in_flight_keys.inc()


def decrement_in_flight() -> None:
    in_flight_keys.dec()


def record_problem(kind: str, status_code: int) -> None:
    problems_total.labels(kind=kind, status_code=str(status_code)).inc()


def record_cleanup(records_removed: int) -> None:
    cleanup_operations.inc()
    cleanup_records_removed.inc(records_removed)

"""Core logic of the API conventions middleware.

- Correlation: per-request correlation ids
- Idempotency: at-most-once admission of creation requests
- Problems: problem-details rendering of the error taxonomy
- Replay: response capture and reconstruction
- ETag, health and pagination helpers
- Cleanup: background sweep of expired records

The core is framework-agnostic; adapters wrap it for ASGI frameworks.
"""

from api_conventions.core.correlation import (
    CorrelationContext,
    get_correlation_id,
    propagation_headers,
)
from api_conventions.core.idempotency import AdmitResult, IdempotencyStore
from api_conventions.core.problems import ProblemResponder
from api_conventions.core.replay import ResponseSnapshot, replay_response

__all__ = [
    "AdmitResult",
    "CorrelationContext",
    "IdempotencyStore",
    "ProblemResponder",
    "ResponseSnapshot",
    "get_correlation_id",
    "propagation_headers",
    "replay_response",
]

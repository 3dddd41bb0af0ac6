"""Tagged error taxonomy for services built on the API conventions.

Every failure that should reach a client is raised as a subclass of ApiError.
Each subclass is tagged with exactly one ErrorKind, and the ProblemResponder is
the single place that turns a kind into an HTTP status and a problem-details
body. Business logic never builds a status code itself.

Examples:
    Raising a validation error with field-level details::

        from api_conventions.exceptions import FieldError, InvalidRequestError

        raise InvalidRequestError(
            "The request body is invalid",
            errors=[FieldError(field="displayName", message="must not be empty")],
        )

    Handling an idempotency conflict::

        from api_conventions.exceptions import IdempotencyConflictError

        try:
            result = await store.admit(key, payload_hash, compute)
        except IdempotencyConflictError as e:
            logger.warning("idempotency.conflict", key=e.key)
            raise
"""

from enum import Enum

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Closed set of failure kinds understood by the ProblemResponder."""

    VALIDATION = "validation"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not-found"
    CONFLICT = "conflict"
    PRECONDITION_FAILED = "precondition-failed"
    UNSUPPORTED_MEDIA = "unsupported-media"
    RATE_LIMITED = "rate-limited"
    INTERNAL = "internal"
    UNAVAILABLE = "unavailable"


class FieldError(BaseModel):
    """A single field-level validation failure.

    Attributes:
        field: Name (or dotted path) of the offending field.
        message: Human-readable description of the failure.
    """

    field: str = Field(..., description="Name of the offending field", examples=["displayName"])
    message: str = Field(..., description="What is wrong with the field")

    model_config = {"frozen": True}


class ApiError(Exception):
    """Base exception for all errors that are rendered as problem details.

    Attributes:
        kind: The ErrorKind tag used to pick status code and type URI.
        message: Human-readable error description (the problem "detail").
        errors: Ordered field-level sub-errors (validation errors only).
        retry_after: Seconds a client should wait before retrying, if any.
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        errors: list[FieldError] | None = None,
        retry_after: int | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            errors: Field-level sub-errors, carried verbatim into the body.
            retry_after: Seconds until a retry is reasonable.
        """
        self.message = message
        self.errors = list(errors) if errors else []
        self.retry_after = retry_after
        super().__init__(message)


class InvalidRequestError(ApiError):
    """The request is malformed or fails validation (400)."""

    kind = ErrorKind.VALIDATION


class UnauthenticatedError(ApiError):
    """The request carries no valid credentials (401)."""

    kind = ErrorKind.UNAUTHENTICATED


class ForbiddenError(ApiError):
    """The caller is authenticated but not allowed to do this (403)."""

    kind = ErrorKind.FORBIDDEN


class NotFoundError(ApiError):
    """The addressed resource does not exist (404)."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(ApiError):
    """The request conflicts with the current state of the resource (409)."""

    kind = ErrorKind.CONFLICT


class IdempotencyConflictError(ConflictError):
    """Same idempotency key, different payload.

    Raised when a request presents an idempotency key that is already bound to
    a different payload hash. The stored record is left untouched and the
    computation is never run.

    Attributes:
        key: The idempotency key that conflicted.
        stored_hash: The payload hash bound to the key.
        request_hash: The payload hash of the incoming request.
    """

    def __init__(self, message: str, key: str, stored_hash: str, request_hash: str) -> None:
        super().__init__(message)
        self.key = key
        self.stored_hash = stored_hash
        self.request_hash = request_hash


class RequestInProgressError(ConflictError):
    """Another request with the same idempotency key is still executing.

    This is a retryable conflict: clients should retry after ``retry_after``
    seconds and will then receive the replayed response.

    Attributes:
        key: The idempotency key that is in flight.
    """

    def __init__(self, message: str, key: str, retry_after: int = 1) -> None:
        super().__init__(message, retry_after=retry_after)
        self.key = key


class PreconditionFailedError(ApiError):
    """A conditional request header (If-Match) did not match (412)."""

    kind = ErrorKind.PRECONDITION_FAILED


class UnsupportedMediaTypeError(ApiError):
    """The request body has a content type the endpoint does not accept (415)."""

    kind = ErrorKind.UNSUPPORTED_MEDIA


class RateLimitedError(ApiError):
    """The caller exceeded its request quota (429)."""

    kind = ErrorKind.RATE_LIMITED


class InternalError(ApiError):
    """An unexpected server-side failure (500)."""

    kind = ErrorKind.INTERNAL


class StorageError(InternalError):
    """Storage backend operation failed.

    Attributes:
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class UnavailableError(ApiError):
    """A required dependency is unavailable (503)."""

    kind = ErrorKind.UNAVAILABLE

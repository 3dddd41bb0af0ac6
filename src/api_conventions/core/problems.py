"""Problem-details rendering.

The ProblemResponder is the single place where a failure becomes a wire-visible
status code and body. Every ErrorKind maps to exactly one status and to a stable
type URI under ``problem_type_base_uri``; anything that is not a tagged ApiError
(or carries an unknown kind) is rendered as an internal error without leaking
its message.

Examples:
    >>> responder = ProblemResponder()
    >>> problem = responder.render(NotFoundError("User 42 does not exist"), "/users/42", "c1")
    >>> problem.status, problem.type
    (404, 'https://api.example.com/problems/not-found')
"""

import json
from http import HTTPStatus

from api_conventions.core.replay import ResponseSnapshot
from api_conventions.exceptions import ApiError, ErrorKind, FieldError
from api_conventions.models import ProblemDetails
from api_conventions.observability.logging import get_logger
from api_conventions.observability.metrics import record_problem
from api_conventions.utils.headers import PROBLEM_CONTENT_TYPE

logger = get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PRECONDITION_FAILED: 412,
    ErrorKind.UNSUPPORTED_MEDIA: 415,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
    ErrorKind.UNAVAILABLE: 503,
}

KIND_BY_STATUS: dict[int, ErrorKind] = {status: kind for kind, status in STATUS_BY_KIND.items()}

INTERNAL_DETAIL = "An unexpected error occurred. Quote the correlation id when reporting it."


def status_for(kind: object) -> int:
    """Return the HTTP status of ``kind``; unknown kinds map to 500.

    Examples:
        >>> status_for(ErrorKind.CONFLICT)
        409
        >>> status_for("teapot")
        500
    """
    try:
        return STATUS_BY_KIND[ErrorKind(kind)]
    except (ValueError, KeyError):
        return 500


class ProblemResponder:
    """Renders errors as RFC 7807 problem details.

    Attributes:
        type_base_uri: Prefix of the problem type URIs
    """

    def __init__(self, type_base_uri: str = "https://api.example.com/problems") -> None:
        self.type_base_uri = type_base_uri.rstrip("/")

    def type_uri(self, kind: ErrorKind) -> str:
        return f"{self.type_base_uri}/{kind.value}"

    def render(
        self,
        error: BaseException,
        instance_path: str,
        correlation_id: str,
    ) -> ProblemDetails:
        """Render ``error`` for the request at ``instance_path``.

        This never raises. Field errors of validation failures are carried
        through verbatim and in order.
        """
        kind = self._kind_of(error)
        status = STATUS_BY_KIND[kind]

        if kind is ErrorKind.INTERNAL or not isinstance(error, ApiError):
            # Internal messages stay in the logs
            detail = INTERNAL_DETAIL
        else:
            detail = error.message or HTTPStatus(status).phrase

        errors = list(error.errors) if isinstance(error, ApiError) else []

        problem = ProblemDetails(
            type=self.type_uri(kind),
            title=HTTPStatus(status).phrase,
            status=status,
            detail=detail,
            instance=instance_path,
            correlation_id=correlation_id,
            errors=errors,
        )

        record_problem(kind.value, status)
        logger.info(
            "problem.rendered",
            kind=kind.value,
            status=status,
            instance=instance_path,
            error_type=type(error).__name__,
        )
        return problem

    def render_status(
        self,
        status: int,
        detail: str | None,
        instance_path: str,
        correlation_id: str,
        errors: list[FieldError] | None = None,
    ) -> ProblemDetails:
        """Render a framework-raised HTTP status (routing, method, body parsing).

        Statuses of the taxonomy get their kind's type URI; any other status
        gets ``about:blank`` as RFC 7807 prescribes.
        """
        if not 400 <= status <= 599:
            status = 500
        kind = KIND_BY_STATUS.get(status)
        type_uri = self.type_uri(kind) if kind is not None else "about:blank"
        title = _phrase(status)
        if status >= 500:
            detail = INTERNAL_DETAIL

        record_problem(kind.value if kind is not None else "http", status)
        return ProblemDetails(
            type=type_uri,
            title=title,
            status=status,
            detail=detail or title,
            instance=instance_path,
            correlation_id=correlation_id,
            errors=errors or [],
        )

    def to_response(
        self,
        problem: ProblemDetails,
        error: BaseException | None = None,
    ) -> ResponseSnapshot:
        """Serialize ``problem`` as an ``application/problem+json`` response."""
        headers = {"content-type": PROBLEM_CONTENT_TYPE}

        retry_after = getattr(error, "retry_after", None)
        if isinstance(retry_after, int) and retry_after > 0:
            headers["retry-after"] = str(retry_after)
        if problem.status == 401:
            headers["www-authenticate"] = "Bearer"

        body = json.dumps(problem.model_dump(mode="json", by_alias=True)).encode("utf-8")
        return ResponseSnapshot(status=problem.status, headers=headers, body=body)

    def respond(
        self,
        error: BaseException,
        instance_path: str,
        correlation_id: str,
    ) -> ResponseSnapshot:
        """Render and serialize in one step."""
        return self.to_response(self.render(error, instance_path, correlation_id), error)

    def _kind_of(self, error: BaseException) -> ErrorKind:
        kind = getattr(error, "kind", None) if isinstance(error, ApiError) else None
        try:
            return ErrorKind(kind)
        except ValueError:
            return ErrorKind.INTERNAL


def _phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Client Error" if status < 500 else "Server Error"

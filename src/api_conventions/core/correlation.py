"""Per-request correlation ids.

A correlation id is an opaque token that ties together every log line and
dependency call made while serving one request. It is taken verbatim from the
incoming ``x-correlation-id`` header when the client sends one, generated
otherwise, and always echoed on the response.

While a request is being served the id lives in a ContextVar and in
structlog's context variables, so it is available to logging and to outbound
HTTP clients for the whole request without being passed around by hand.

Examples:
    Resolving and binding an id::

        context = CorrelationContext()
        correlation_id = context.resolve(request.headers)
        with context.bind(correlation_id):
            logger.info("user.created")  # carries correlation_id
            await client.get(url, headers=propagation_headers())

    Forwarding the id on every httpx request::

        client = httpx.AsyncClient(event_hooks={"request": [ainject_correlation_header]})
"""

import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar

import httpx
import structlog

from api_conventions.utils.headers import set_header

DEFAULT_CORRELATION_HEADER = "x-correlation-id"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_correlation_header: ContextVar[str] = ContextVar(
    "correlation_header", default=DEFAULT_CORRELATION_HEADER
)


def generate_correlation_id(id_format: str = "uuid4") -> str:
    """Generate a new random correlation id.

    Args:
        id_format: "uuid4" for the hyphenated form, "hex" for 32 hex characters

    Examples:
        >>> len(generate_correlation_id())
        36
        >>> len(generate_correlation_id("hex"))
        32
    """
    value = uuid.uuid4()
    return value.hex if id_format == "hex" else str(value)


class CorrelationContext:
    """Resolves, binds and writes back the correlation id of a request.

    Attributes:
        header_name: Header carrying the id (matched case-insensitively)
        id_format: Format of generated ids ("uuid4" or "hex")
    """

    def __init__(
        self,
        header_name: str = DEFAULT_CORRELATION_HEADER,
        id_format: str = "uuid4",
    ) -> None:
        self.header_name = header_name
        self.id_format = id_format

    def resolve(self, headers: Mapping[str, str]) -> str:
        """Return the incoming correlation id, or a freshly generated one.

        A non-empty header value is reused verbatim (surrounding whitespace is
        stripped). This never fails.
        """
        wanted = self.header_name.lower()
        for name, value in headers.items():
            if name.lower() == wanted and value and value.strip():
                return value.strip()
        return generate_correlation_id(self.id_format)

    @contextmanager
    def bind(self, correlation_id: str) -> Iterator[str]:
        """Make ``correlation_id`` the current id for the duration of the block."""
        id_token = _correlation_id.set(correlation_id)
        header_token = _correlation_header.set(self.header_name)
        try:
            with structlog.contextvars.bound_contextvars(correlation_id=correlation_id):
                yield correlation_id
        finally:
            _correlation_header.reset(header_token)
            _correlation_id.reset(id_token)

    def apply(self, headers: dict[str, str], correlation_id: str) -> dict[str, str]:
        """Return a copy of ``headers`` carrying ``correlation_id``."""
        return set_header(headers, self.header_name, correlation_id)


def get_correlation_id() -> str | None:
    """Return the correlation id of the request being served, if any."""
    return _correlation_id.get()


def propagation_headers() -> dict[str, str]:
    """Headers to forward the current correlation id to a dependency.

    Returns an empty dict outside of a request.
    """
    correlation_id = _correlation_id.get()
    if correlation_id is None:
        return {}
    return {_correlation_header.get(): correlation_id}


def inject_correlation_header(request: httpx.Request) -> None:
    """httpx request hook that forwards the current correlation id.

    A header already set on the outgoing request is left alone.
    """
    for name, value in propagation_headers().items():
        if name not in request.headers:
            request.headers[name] = value


async def ainject_correlation_header(request: httpx.Request) -> None:
    """Async variant of inject_correlation_header for httpx.AsyncClient."""
    inject_correlation_header(request)

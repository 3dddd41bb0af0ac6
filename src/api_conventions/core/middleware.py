"""Framework-agnostic request pipeline.

For every request the pipeline:
1. Resolves the correlation id and binds it for the request's lifetime
2. For idempotent methods, validates the idempotency key and request size,
   hashes the normalized payload and admits the request through the
   IdempotencyStore
3. Renders any failure through the ProblemResponder
4. Writes the correlation id onto the outgoing response

Framework adapters convert their request/response objects to Request and
ResponseSnapshot.

Examples:
    >>> pipeline = ConventionsMiddleware(MemoryStorageAdapter(), GatewayConfig())
    >>> response = await pipeline.process(request, handler)
"""

import uuid
from collections.abc import Awaitable, Callable

from api_conventions.config import GatewayConfig
from api_conventions.core.correlation import CorrelationContext
from api_conventions.core.idempotency import IdempotencyStore
from api_conventions.core.problems import ProblemResponder
from api_conventions.core.replay import ResponseSnapshot
from api_conventions.exceptions import ApiError, FieldError, InvalidRequestError
from api_conventions.fingerprint import compute_payload_hash
from api_conventions.observability.logging import get_logger
from api_conventions.storage.base import StorageAdapter
from api_conventions.utils.headers import add_replay_headers, get_header_value

logger = get_logger(__name__)


class Request:
    """Abstract request representation.

    Attributes:
        method: HTTP method (GET, POST, etc.)
        path: URL path
        query_string: Query string without leading '?'
        headers: Request headers as dict
        body: Request body as bytes
    """

    def __init__(
        self,
        method: str,
        path: str,
        query_string: str,
        headers: dict[str, str],
        body: bytes,
    ) -> None:
        self.method = method
        self.path = path
        self.query_string = query_string
        self.headers = headers
        self.body = body


Handler = Callable[[Request], Awaitable[ResponseSnapshot]]


class ConventionsMiddleware:
    """Correlation, idempotency and problem rendering for one request at a time.

    Attributes:
        config: Gateway configuration
        correlation: Correlation id resolver
        idempotency: Idempotency store
        problems: Problem-details renderer
    """

    def __init__(
        self,
        storage: StorageAdapter,
        config: GatewayConfig | None = None,
        responder: ProblemResponder | None = None,
    ) -> None:
        self.config = config if config is not None else GatewayConfig()
        self.correlation = CorrelationContext(
            header_name=self.config.correlation_header,
            id_format=self.config.correlation_id_format,
        )
        self.idempotency = IdempotencyStore(storage, self.config)
        if responder is None:
            responder = ProblemResponder(self.config.problem_type_base_uri)
        self.problems = responder

    async def process(
        self,
        request: Request,
        handler: Handler,
        on_correlation_id: Callable[[str], None] | None = None,
    ) -> ResponseSnapshot:
        """Run ``handler`` for ``request`` under the API conventions.

        Args:
            request: The incoming request
            handler: Produces the response when the request is not replayed
            on_correlation_id: Called with the resolved id before the handler runs

        Returns:
            The response, always carrying the correlation header
        """
        correlation_id = self.correlation.resolve(request.headers)

        with self.correlation.bind(correlation_id):
            if on_correlation_id is not None:
                on_correlation_id(correlation_id)
            try:
                response = await self._dispatch(request, handler, correlation_id)
            except ApiError as e:
                response = self.problems.respond(e, request.path, correlation_id)
            except Exception as e:
                logger.exception(
                    "request.unhandled_error",
                    method=request.method,
                    path=request.path,
                    error_type=type(e).__name__,
                )
                response = self.problems.respond(e, request.path, correlation_id)

        response.headers = self.correlation.apply(response.headers, correlation_id)
        return response

    async def _dispatch(
        self,
        request: Request,
        handler: Handler,
        correlation_id: str,
    ) -> ResponseSnapshot:
        if request.method.upper() not in self.config.idempotent_methods:
            return await handler(request)

        key = self._extract_key(request)
        if key is None:
            result = await self.idempotency.admit(None, "", lambda: handler(request))
            return result.response

        self._validate_key(key)
        self._validate_request_size(request)

        headers_list: list[str] = (
            self.config.fingerprint_headers
            if isinstance(self.config.fingerprint_headers, list)
            else [self.config.fingerprint_headers]
        )
        payload_hash = compute_payload_hash(
            method=request.method,
            path=request.path,
            query_string=request.query_string,
            headers=request.headers,
            body=request.body,
            included_headers=headers_list,
        )

        result = await self.idempotency.admit(
            key,
            payload_hash,
            lambda: handler(request),
            correlation_id=correlation_id,
        )

        response = result.response
        if not result.replayed:
            response.headers = add_replay_headers(
                response.headers,
                key,
                is_replay=False,
                key_header=self.config.idempotency_header,
            )
        return response

    def _extract_key(self, request: Request) -> str | None:
        value = get_header_value(request.headers, self.config.idempotency_header)
        if value is None:
            return None
        return value.strip()

    def _validate_key(self, key: str) -> None:
        header = self.config.idempotency_header

        if not key:
            raise InvalidRequestError(
                "Idempotency key cannot be empty",
                errors=[FieldError(field=header, message="must not be empty")],
            )

        max_length = self.config.max_key_length
        if len(key) > max_length:
            raise InvalidRequestError(
                f"Idempotency key exceeds maximum length of {max_length} characters",
                errors=[
                    FieldError(field=header, message=f"must be at most {max_length} characters")
                ],
            )

        if self.config.require_uuid_keys:
            try:
                uuid.UUID(key)
            except ValueError:
                raise InvalidRequestError(
                    "Idempotency key must be a UUID",
                    errors=[FieldError(field=header, message="must be a UUID")],
                ) from None

    def _validate_request_size(self, request: Request) -> None:
        max_size = self.config.max_body_bytes
        if max_size and len(request.body) > max_size:
            raise InvalidRequestError(
                f"Request body exceeds maximum size of {max_size} bytes",
                errors=[FieldError(field="body", message=f"must be at most {max_size} bytes")],
            )

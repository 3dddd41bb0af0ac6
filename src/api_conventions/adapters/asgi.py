"""ASGI middleware adapter for Starlette and FastAPI applications.

The middleware converts Starlette requests to the internal Request format, runs
them through ConventionsMiddleware and converts the result back.

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        from api_conventions.adapters.asgi import ASGIConventionsMiddleware
        from api_conventions.storage.memory import MemoryStorageAdapter

        app = FastAPI()
        app.add_middleware(
            ASGIConventionsMiddleware,
            storage=MemoryStorageAdapter(),
            config=GatewayConfig(),
        )

        @app.post("/users", status_code=201)
        async def create_user(user: NewUser):
            # Idempotent when the client sends an Idempotency-Key
            return {"id": "...", "displayName": user.display_name}
"""

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response

from api_conventions.config import GatewayConfig
from api_conventions.core.middleware import ConventionsMiddleware, Request
from api_conventions.core.problems import ProblemResponder
from api_conventions.core.replay import ResponseSnapshot
from api_conventions.storage.base import StorageAdapter

# Joins the values of a repeated header (Set-Cookie) inside a single dict entry.
# A newline cannot occur in a header value.
MULTI_VALUE_SEPARATOR = "\n"


def collapse_raw_headers(raw_headers: list[tuple[bytes, bytes]]) -> dict[str, str]:
    """Turn ASGI raw headers into a dict without losing repeated headers.

    Examples:
        >>> collapse_raw_headers([(b"set-cookie", b"a=1"), (b"set-cookie", b"b=2")])
        {'set-cookie': 'a=1\\nb=2'}
    """
    headers: dict[str, str] = {}
    for raw_name, raw_value in raw_headers:
        name = raw_name.decode("latin-1")
        value = raw_value.decode("latin-1")
        if name in headers:
            headers[name] = f"{headers[name]}{MULTI_VALUE_SEPARATOR}{value}"
        else:
            headers[name] = value
    return headers


class ASGIConventionsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware applying correlation, idempotency and problem rendering.

    Attributes:
        storage: Storage adapter for idempotency records
        config: Configuration object
        pipeline: Core pipeline instance
    """

    def __init__(
        self,
        app: Any,
        storage: StorageAdapter,
        config: GatewayConfig | None = None,
        responder: ProblemResponder | None = None,
    ) -> None:
        super().__init__(app)
        self.storage = storage
        self.config = config if config is not None else GatewayConfig()
        self.pipeline = ConventionsMiddleware(storage, self.config, responder)

    async def dispatch(
        self,
        request: StarletteRequest,
        call_next: Callable[[StarletteRequest], Awaitable[Response]],
    ) -> Response:
        internal_request = await self._convert_request(request)

        async def handler(_req: Request) -> ResponseSnapshot:
            response = await call_next(request)

            body = b""
            if hasattr(response, "body_iterator"):
                async for chunk in response.body_iterator:
                    if isinstance(chunk, str):
                        chunk = chunk.encode(response.charset)
                    body += bytes(chunk)
            else:
                body = bytes(getattr(response, "body", b""))

            return ResponseSnapshot(
                status=response.status_code,
                headers=collapse_raw_headers(response.raw_headers),
                body=body,
            )

        def remember(correlation_id: str) -> None:
            request.state.correlation_id = correlation_id

        result = await self.pipeline.process(
            internal_request,
            handler,
            on_correlation_id=remember,
        )

        return self._convert_response(result)

    async def _convert_request(self, request: StarletteRequest) -> Request:
        body = await request.body()

        headers: dict[str, str] = {}
        for key, value in request.headers.items():
            headers[key] = value

        return Request(
            method=request.method,
            path=request.url.path,
            query_string=request.url.query or "",
            headers=headers,
            body=body,
        )

    def _convert_response(self, response: ResponseSnapshot) -> Response:
        converted = Response(content=response.body, status_code=response.status)
        # content-length was already set by Response from the buffered body
        for name, value in response.headers.items():
            if name.lower() == "content-length":
                continue
            for part in value.split(MULTI_VALUE_SEPARATOR):
                converted.raw_headers.append(
                    (name.lower().encode("latin-1"), part.encode("latin-1"))
                )
        return converted

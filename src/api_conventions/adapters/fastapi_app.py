"""FastAPI wiring: problem exception handlers, health routes and an app factory.

FastAPI turns routing failures (404, 405) and body validation failures into
responses before our middleware ever sees an exception. The handlers installed
here route them through the same ProblemResponder so every error leaving the
service is ``application/problem+json`` and carries the correlation id.

Examples:
    >>> app = create_app(GatewayConfig(), health=registry)
    >>> @app.post("/users", status_code=201)
    ... async def create_user(user: NewUser): ...
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from api_conventions.adapters.asgi import ASGIConventionsMiddleware
from api_conventions.config import GatewayConfig
from api_conventions.core.cleanup import start_cleanup_task, stop_cleanup_task
from api_conventions.core.correlation import get_correlation_id
from api_conventions.core.health import HealthRegistry
from api_conventions.core.problems import ProblemResponder
from api_conventions.exceptions import FieldError
from api_conventions.observability.logging import configure_logging
from api_conventions.storage.base import StorageAdapter
from api_conventions.storage.memory import MemoryStorageAdapter


def _current_correlation_id(request: Request) -> str:
    return get_correlation_id() or getattr(request.state, "correlation_id", None) or ""


def _to_response(status: int, headers: dict[str, str], body: bytes) -> Response:
    return Response(content=body, status_code=status, headers=headers)


def validation_field_errors(exc: RequestValidationError) -> list[FieldError]:
    """Flatten pydantic errors into field errors, in the order reported.

    The leading location segment ("body", "query", ...) is dropped when a more
    specific one follows.
    """
    errors: list[FieldError] = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        if len(loc) > 1 and loc[0] in {"body", "query", "path", "header", "cookie"}:
            loc = loc[1:]
        errors.append(FieldError(field=".".join(loc) or "body", message=error.get("msg", "")))
    return errors


def install_problem_handlers(app: FastAPI, responder: ProblemResponder) -> None:
    """Render framework-raised errors as problem details."""

    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        problem = responder.render_status(
            exc.status_code,
            str(exc.detail) if exc.detail is not None else None,
            request.url.path,
            _current_correlation_id(request),
        )
        snapshot = responder.to_response(problem)
        headers = dict(snapshot.headers)
        if exc.headers:
            headers.update(exc.headers)
        return _to_response(snapshot.status, headers, snapshot.body)

    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> Response:
        problem = responder.render_status(
            400,
            "The request failed validation",
            request.url.path,
            _current_correlation_id(request),
            errors=validation_field_errors(exc),
        )
        snapshot = responder.to_response(problem)
        return _to_response(snapshot.status, snapshot.headers, snapshot.body)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]


def build_health_router(registry: HealthRegistry) -> APIRouter:
    """Routes for ``/health/live`` and ``/health/ready``."""
    router = APIRouter(prefix="/health", tags=["health"])

    @router.get("/live")
    async def live() -> JSONResponse:
        return JSONResponse(registry.liveness().model_dump())

    @router.get("/ready")
    async def ready() -> JSONResponse:
        report = await registry.readiness()
        return JSONResponse(report.model_dump(), status_code=200 if report.healthy else 503)

    return router


def create_app(
    config: GatewayConfig | None = None,
    storage: StorageAdapter | None = None,
    health: HealthRegistry | None = None,
    configure_logs: bool = False,
    **fastapi_kwargs: object,
) -> FastAPI:
    """Build a FastAPI app that follows the API conventions.

    The app gets the conventions middleware, problem exception handlers, the
    health routes and a lifespan running the expired-record sweep.

    Args:
        config: Gateway configuration (defaults if omitted)
        storage: Idempotency storage (in-memory if omitted)
        health: Health registry (empty if omitted)
        configure_logs: Call configure_logging() with the config's settings
        **fastapi_kwargs: Passed through to FastAPI()
    """
    if config is None:
        config = GatewayConfig()
    if storage is None:
        storage = MemoryStorageAdapter()
    if health is None:
        health = HealthRegistry()
    responder = ProblemResponder(config.problem_type_base_uri)

    if configure_logs:
        configure_logging(level=config.log_level, json_output=config.log_json)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        task = await start_cleanup_task(storage, config.cleanup_interval_seconds)
        try:
            yield
        finally:
            await stop_cleanup_task(task)

    app = FastAPI(lifespan=lifespan, **fastapi_kwargs)  # type: ignore[arg-type]
    app.state.storage = storage
    app.state.health = health
    app.state.config = config

    install_problem_handlers(app, responder)
    app.include_router(build_health_router(health))
    app.add_middleware(
        ASGIConventionsMiddleware,
        storage=storage,
        config=config,
        responder=responder,
    )
    return app

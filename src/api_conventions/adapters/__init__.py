"""Framework adapters for the API conventions middleware.

- asgi: Starlette BaseHTTPMiddleware around the core pipeline
- fastapi_app: problem exception handlers, health routes and create_app()
"""

from api_conventions.adapters.asgi import ASGIConventionsMiddleware
from api_conventions.adapters.fastapi_app import (
    build_health_router,
    create_app,
    install_problem_handlers,
)

__all__ = [
    "ASGIConventionsMiddleware",
    "build_health_router",
    "create_app",
    "install_problem_handlers",
]

"""Health check registry.

Dependency checks are owned by the application. It registers named callables
(sync or async) that return True when the dependency is healthy; raising counts
as unhealthy. Liveness never runs checks, readiness runs all of them.

Examples:
    >>> registry = HealthRegistry()
    >>> registry.register("database", lambda: True)
    >>> report = await registry.readiness()
    >>> report.status
    'pass'
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from api_conventions.models import CheckResult, HealthReport
from api_conventions.observability.logging import get_logger

logger = get_logger(__name__)

HealthCheck = Callable[[], bool | Awaitable[bool]]


class HealthRegistry:
    """Named health checks for the readiness endpoint.

    Attributes:
        timeout_seconds: Upper bound on a single async check
    """

    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._checks: dict[str, HealthCheck] = {}

    def register(self, name: str, check: HealthCheck) -> None:
        if not name:
            raise ValueError("health check name cannot be empty")
        if name in self._checks:
            raise ValueError(f"health check {name!r} is already registered")
        self._checks[name] = check

    def unregister(self, name: str) -> None:
        self._checks.pop(name, None)

    @property
    def names(self) -> list[str]:
        return list(self._checks)

    def liveness(self) -> HealthReport:
        return HealthReport(status="pass")

    async def readiness(self) -> HealthReport:
        results = await asyncio.gather(
            *(self._run(name, check) for name, check in self._checks.items())
        )
        status = "pass" if all(result.healthy for result in results) else "fail"
        return HealthReport(status=status, checks=list(results))

    async def _run(self, name: str, check: HealthCheck) -> CheckResult:
        try:
            outcome = check()
            if inspect.isawaitable(outcome):
                outcome = await asyncio.wait_for(outcome, timeout=self.timeout_seconds)
        except Exception as e:
            logger.warning(
                "health.check_failed",
                check=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CheckResult(name=name, healthy=False, error=type(e).__name__)
        return CheckResult(name=name, healthy=bool(outcome))

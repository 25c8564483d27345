"""Health check endpoint."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional
import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health check status."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""
    name: str
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None
    details: Dict = field(default_factory=dict)


@dataclass
class HealthCheckResult:
    """Overall health check result."""
    status: HealthStatus
    version: str
    environment: str
    timestamp: datetime
    components: Dict[str, ComponentHealth] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp.isoformat(),
            "components": {
                name: {
                    "status": comp.status.value,
                    "message": comp.message,
                    "latency_ms": comp.latency_ms,
                    "details": comp.details,
                }
                for name, comp in self.components.items()
            },
        }


HealthCheck = Callable[[], Awaitable[ComponentHealth]]


class HealthChecker:
    """Runs the registered component checks; any unhealthy one fails the whole."""

    def __init__(self, version: str, environment: str):
        self.version = version
        self.environment = environment
        self._checks: Dict[str, HealthCheck] = {}

    def register_check(self, name: str, check_fn: HealthCheck) -> None:
        self._checks[name] = check_fn

    async def check_health(self) -> HealthCheckResult:
        components = {}
        overall_status = HealthStatus.HEALTHY

        for name, check_fn in self._checks.items():
            component = await check_fn()
            components[name] = component
            if component.status == HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.UNHEALTHY

        return HealthCheckResult(
            status=overall_status,
            version=self.version,
            environment=self.environment,
            timestamp=datetime.now(timezone.utc),
            components=components,
        )


def database_check(session_factory: async_sessionmaker) -> HealthCheck:
    """Build a check that runs SELECT 1 and reports its latency."""

    async def check() -> ComponentHealth:
        start = time.perf_counter()
        try:
            async with session_factory() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            latency = (time.perf_counter() - start) * 1000
            logger.error(f"Database health check failed: {e}")
            return ComponentHealth(
                name="database",
                status=HealthStatus.UNHEALTHY,
                message="DB query failed.",
                latency_ms=latency,
                details={"exception": str(e), "exception_type": type(e).__name__},
            )

        return ComponentHealth(
            name="database",
            status=HealthStatus.HEALTHY,
            message="DB query OK.",
            latency_ms=(time.perf_counter() - start) * 1000,
        )

    return check


router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    """Liveness plus database check. 503 when any component is unhealthy."""
    result = await request.app.state.health_checker.check_health()
    status_code = 200 if result.status == HealthStatus.HEALTHY else 503
    return JSONResponse(status_code=status_code, content=result.to_dict())

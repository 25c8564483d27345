"""Tests for health check functionality."""

from datetime import datetime, timezone

import pytest

from product_catalog.health import (
    ComponentHealth,
    HealthCheckResult,
    HealthChecker,
    HealthStatus,
    database_check,
)


def _healthy(name):
    async def check():
        return ComponentHealth(name=name, status=HealthStatus.HEALTHY)
    return check


def _unhealthy(name):
    async def check():
        return ComponentHealth(name=name, status=HealthStatus.UNHEALTHY, message="down")
    return check


class TestHealthCheckResult:
    """Tests for HealthCheckResult."""

    def test_to_dict(self):
        result = HealthCheckResult(
            status=HealthStatus.HEALTHY,
            version="1.0.0",
            environment="test",
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            components={"database": ComponentHealth(name="database", status=HealthStatus.HEALTHY, latency_ms=1.5)},
        )

        data = result.to_dict()

        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["timestamp"] == "2024-01-01T00:00:00+00:00"
        assert data["components"]["database"]["latency_ms"] == 1.5


class TestHealthChecker:
    """Tests for HealthChecker."""

    @pytest.mark.asyncio
    async def test_no_checks_is_healthy(self):
        result = await HealthChecker("1.0.0", "test").check_health()
        assert result.status == HealthStatus.HEALTHY
        assert result.components == {}

    @pytest.mark.asyncio
    async def test_any_unhealthy_component_fails_the_whole(self):
        checker = HealthChecker("1.0.0", "test")
        checker.register_check("database", _healthy("database"))
        checker.register_check("cache", _unhealthy("cache"))

        result = await checker.check_health()

        assert result.status == HealthStatus.UNHEALTHY
        assert result.components["database"].status == HealthStatus.HEALTHY


class TestDatabaseCheck:
    """Tests for database_check."""

    @pytest.mark.asyncio
    async def test_reachable_database(self, session_factory):
        component = await database_check(session_factory)()

        assert component.status == HealthStatus.HEALTHY
        assert component.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_unreachable_database(self):
        def broken_factory():
            raise ConnectionRefusedError("connection refused")

        component = await database_check(broken_factory)()

        assert component.status == HealthStatus.UNHEALTHY
        assert component.details["exception_type"] == "ConnectionRefusedError"


class TestHealthEndpoint:
    """The /health route maps status to 200/503."""

    @pytest.mark.asyncio
    async def test_unhealthy_is_503(self, settings, engine):
        from httpx import ASGITransport, AsyncClient

        from product_catalog.main import create_app

        app = create_app(settings=settings, engine=engine, configure_logs=False)
        app.state.health_checker.register_check("cache", _unhealthy("cache"))

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
            response = await client.get("/health")
        await app.state.http_client.aclose()

        assert response.status_code == 503
        assert response.json()["components"]["cache"]["message"] == "down"

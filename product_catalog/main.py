"""
Main FastAPI application for the Product Catalog API.

Run with:
    uvicorn product_catalog.main:create_app --factory
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from product_catalog.auth.credentials import CredentialTokenVerifier
from product_catalog.auth.dependencies import session_service_scope
from product_catalog.auth.exceptions import AuthenticationRejected
from product_catalog.auth.middleware import (
    AuthenticationMiddleware,
    BearerPrincipalResolver,
    SessionPrincipalResolver,
)
from product_catalog.auth.routes import authentication_rejected_handler, router as auth_router
from product_catalog.auth.tasks import SessionSweeper
from product_catalog.core.config import Settings, settings as default_settings
from product_catalog.core.database import create_engine_for_url, create_session_factory, init_database
from product_catalog.core.logging import configure_logging
from product_catalog.health import HealthChecker, database_check, router as health_router

logger = logging.getLogger(__name__)

OUTBOUND_HTTP_TIMEOUT = 10.0


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    configure_logs: bool = True,
) -> FastAPI:
    """
    Build the application.

    Credential token settings are checked here, so a missing JWT secret,
    issuer or audience stops startup. The Google client is checked when
    the sign-in routes first need it.

    Args:
        settings: Configuration (defaults to the environment)
        engine: Database engine (defaults to one for settings.DATABASE_URL)
        http_client: Client for calls to Google (token endpoint, JWKS)
        configure_logs: Install the root log handler
    """
    settings = settings or default_settings
    if configure_logs:
        configure_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)

    owns_engine = engine is None
    if engine is None:
        engine = create_engine_for_url(settings.DATABASE_URL, pool_pre_ping=True)
    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=OUTBOUND_HTTP_TIMEOUT)

    session_factory = create_session_factory(engine)
    token_verifier = CredentialTokenVerifier(
        secret=settings.require("JWT_SECRET"),
        issuer=settings.require("JWT_ISSUER"),
        audience=settings.require("JWT_AUDIENCE"),
    )
    session_scope = session_service_scope(session_factory, settings)
    sweeper = SessionSweeper(session_scope, settings.SESSION_SWEEP_INTERVAL_MINUTES * 60)

    health_checker = HealthChecker(version=settings.APP_VERSION, environment=settings.ENVIRONMENT)
    health_checker.register_check("database", database_check(session_factory))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Product Catalog API")
        await init_database(engine)
        sweeper.start()
        try:
            yield
        finally:
            logger.info("Shutting down Product Catalog API")
            await sweeper.stop()
            if owns_http_client:
                await http_client.aclose()
            if owns_engine:
                await engine.dispose()

    app = FastAPI(
        title="Product Catalog API",
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.http_client = http_client
    app.state.token_verifier = token_verifier
    app.state.session_sweeper = sweeper
    app.state.health_checker = health_checker

    # ========================================================================
    # MIDDLEWARE (last added = first executed)
    # ========================================================================

    app.add_middleware(
        AuthenticationMiddleware,
        resolvers=[
            SessionPrincipalResolver(session_scope, settings.SESSION_COOKIE_NAME),
            BearerPrincipalResolver(token_verifier),
        ],
        session_cookie_name=settings.SESSION_COOKIE_NAME,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_BASE_URL.rstrip("/")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # ROUTERS
    # ========================================================================

    app.add_exception_handler(AuthenticationRejected, authentication_rejected_handler)
    app.include_router(health_router)
    app.include_router(auth_router)

    return app


def main() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "product_catalog.main:create_app",
        factory=True,
        host=default_settings.API_HOST,
        port=default_settings.API_PORT,
    )


if __name__ == "__main__":
    main()

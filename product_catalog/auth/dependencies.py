"""
FastAPI dependencies for the auth routes.

Everything is wired off request.app.state, which create_app() populates:
settings, session_factory and http_client. The OAuth provider is built
on first use so a missing Google client id only fails the routes that
need it.
"""
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator, AsyncIterator
import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from product_catalog.auth.credentials import CredentialService
from product_catalog.auth.models import Principal
from product_catalog.auth.providers import GoogleOAuthProvider, OAuthProvider, create_google_config
from product_catalog.auth.services import SessionService, UserService
from product_catalog.auth.sql_repositories import (
    SqlCredentialAccountRepository,
    SqlSessionRepository,
    SqlUserRepository,
)
from product_catalog.core.config import Settings

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped database session.

    Yields:
        AsyncSession: Database session
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def build_session_service(db: AsyncSession, settings: Settings) -> SessionService:
    return SessionService(
        SqlSessionRepository(db),
        session_duration=timedelta(hours=settings.SESSION_EXPIRATION_HOURS),
    )


def session_service_scope(session_factory: async_sessionmaker, settings: Settings):
    """
    Factory of SessionService scopes for code running outside a route.

    The middleware and the sweeper each open their own database session
    through this.
    """
    @asynccontextmanager
    async def scope() -> AsyncIterator[SessionService]:
        async with session_factory() as db:
            yield build_session_service(db, settings)

    return scope


def get_session_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SessionService:
    return build_session_service(db, settings)


def get_user_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UserService:
    return UserService(SqlUserRepository(db), admin_emails=settings.ADMIN_EMAILS)


def get_credential_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CredentialService:
    """
    Raises:
        ConfigurationError: If the JWT secret, issuer or audience is missing
    """
    return CredentialService(
        SqlCredentialAccountRepository(db),
        secret=settings.require("JWT_SECRET"),
        issuer=settings.require("JWT_ISSUER"),
        audience=settings.require("JWT_AUDIENCE"),
        token_lifetime=timedelta(hours=settings.JWT_EXPIRATION_HOURS),
    )


def get_oauth_provider(request: Request) -> OAuthProvider:
    """
    The Google provider, built once per app.

    Raises:
        ConfigurationError: If the Google client id or secret is missing
    """
    provider = getattr(request.app.state, "oauth_provider", None)
    if provider is None:
        settings = request.app.state.settings
        config = create_google_config(
            client_id=settings.require("GOOGLE_CLIENT_ID"),
            client_secret=settings.require("GOOGLE_CLIENT_SECRET"),
        )
        provider = GoogleOAuthProvider(config, request.app.state.http_client)
        request.app.state.oauth_provider = provider
        logger.info(f"Initialized {provider.provider_name} OAuth provider")
    return provider


def get_current_principal(request: Request) -> Principal:
    """
    Principal resolved by the authentication middleware (required).

    Raises:
        HTTPException: 401 if the request is anonymous
    """
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_admin_principal(principal: Principal = Depends(get_current_principal)) -> Principal:
    """
    Raises:
        HTTPException: 403 if the principal lacks the admin role
    """
    if not principal.is_admin:
        logger.warning(f"Admin access denied for principal {principal.user_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Permission denied: admin required",
        )
    return principal

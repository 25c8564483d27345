"""Authentication middleware for protecting routes."""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional, Protocol, Sequence
import logging

from fastapi import HTTPException, Request, status
from starlette.middleware.base import BaseHTTPMiddleware

from product_catalog.auth.credentials import CredentialTokenVerifier
from product_catalog.auth.models import ADMIN_ROLE, AuthScheme, Principal
from product_catalog.auth.services import SessionService

logger = logging.getLogger(__name__)

# Requests under these prefixes are never authenticated
PUBLIC_PATHS = (
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/api/auth/google/login",
    "/api/auth/google/callback",
    "/api/auth/login",
    "/api/products",
    "/api/categories",
)

SessionServiceFactory = Callable[[], AbstractAsyncContextManager[SessionService]]


def is_public_path(path: str, public_paths: Sequence[str] = PUBLIC_PATHS) -> bool:
    """
    Case-insensitive match against the public allow-list.

    A prefix matches itself and anything below it on a segment boundary,
    so "/api/products" covers "/api/products/42" but not "/api/productsx".
    """
    lowered = path.lower().rstrip("/") or "/"
    for prefix in public_paths:
        prefix = prefix.lower().rstrip("/")
        if lowered == prefix or lowered.startswith(prefix + "/"):
            return True
    return False


@dataclass(frozen=True)
class Resolution:
    """Outcome of one resolver."""
    principal: Optional[Principal] = None
    clear_session_cookie: bool = False


class PrincipalResolver(Protocol):
    """One way of turning a request into a principal."""

    async def resolve(self, request: Request) -> Resolution:
        ...


class SessionPrincipalResolver:
    """Resolves the session cookie through the server-side session store."""

    def __init__(self, session_service_factory: SessionServiceFactory, cookie_name: str):
        self._session_service_factory = session_service_factory
        self._cookie_name = cookie_name

    async def resolve(self, request: Request) -> Resolution:
        session_id = request.cookies.get(self._cookie_name)
        if not session_id:
            return Resolution()

        async with self._session_service_factory() as session_service:
            info = await session_service.get_session(session_id)

        if info is None:
            logger.debug("Session cookie did not resolve; clearing it")
            return Resolution(clear_session_cookie=True)

        roles = frozenset({ADMIN_ROLE}) if info.is_admin else frozenset()
        return Resolution(principal=Principal(
            user_id=str(info.user_id),
            email=info.email,
            name=info.name,
            session_id=info.session_id,
            scheme=AuthScheme.SESSION,
            roles=roles,
        ))


class BearerPrincipalResolver:
    """Resolves an Authorization: Bearer credential token without storage."""

    def __init__(self, verifier: CredentialTokenVerifier):
        self._verifier = verifier

    async def resolve(self, request: Request) -> Resolution:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.lower().startswith("bearer "):
            return Resolution()

        token = auth_header[7:].strip()
        if not token:
            return Resolution()

        claims = self._verifier.verify(token)
        if claims is None:
            return Resolution()

        role = claims.get("role")
        username = claims.get("unique_name")
        return Resolution(principal=Principal(
            user_id=str(claims["sub"]),
            name=username or str(claims["sub"]),
            username=username,
            token_id=claims.get("jti"),
            scheme=AuthScheme.BEARER,
            roles=frozenset({role}) if role else frozenset(),
        ))


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Attaches request.state.principal for every non-public request.

    Resolvers are tried in order; the first principal wins. A session
    cookie that no longer resolves is deleted on the response and the
    request continues anonymously (principal None). Routes decide whether
    anonymous access is acceptable.
    """

    def __init__(
        self,
        app,
        resolvers: Sequence[PrincipalResolver],
        session_cookie_name: str,
        public_paths: Sequence[str] = PUBLIC_PATHS,
    ):
        super().__init__(app)
        self._resolvers = list(resolvers)
        self._cookie_name = session_cookie_name
        self._public_paths = tuple(public_paths)

    async def dispatch(self, request: Request, call_next):
        request.state.principal = None

        if is_public_path(request.url.path, self._public_paths):
            return await call_next(request)

        clear_cookie = False
        for resolver in self._resolvers:
            resolution = await resolver.resolve(request)
            clear_cookie = clear_cookie or resolution.clear_session_cookie
            if resolution.principal is not None:
                request.state.principal = resolution.principal
                break

        response = await call_next(request)

        if clear_cookie:
            response.delete_cookie(self._cookie_name, path="/")

        return response


def _get_request_from_args(args, kwargs) -> Optional[Request]:
    """Extract request object from function arguments."""
    if "request" in kwargs:
        return kwargs["request"]
    if args:
        return args[0]
    return None


def _require_principal(request: Optional[Request]) -> Principal:
    if request is None:
        raise ValueError("Request object not found in arguments")

    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_auth(func: Callable) -> Callable:
    """
    Decorator to require authentication on a route.

    Usage:
        @router.get("/protected")
        @require_auth
        async def protected_route(request: Request):
            principal = request.state.principal
            ...
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        _require_principal(_get_request_from_args(args, kwargs))
        return await func(*args, **kwargs)

    return wrapper


def require_admin(func: Callable) -> Callable:
    """
    Decorator to require the admin role claim.

    Unauthenticated requests get 401, authenticated non-admins 403.
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        principal = _require_principal(_get_request_from_args(args, kwargs))
        if not principal.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permission denied: admin required",
            )
        return await func(*args, **kwargs)

    return wrapper

"""
Authentication routes.

Google sign-in (PKCE authorization-code flow ending in a session cookie),
the session endpoints, and the username/password bearer token login.
"""
from typing import Optional
from urllib.parse import urlsplit
import logging
import secrets

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from product_catalog.auth.credentials import CredentialService
from product_catalog.auth.dependencies import (
    get_credential_service,
    get_oauth_provider,
    get_session_service,
    get_settings,
    get_user_service,
    require_admin_principal,
)
from product_catalog.auth.exceptions import AuthenticationRejected, UsageError
from product_catalog.auth.models import Principal
from product_catalog.auth.pkce import generate_pkce_data
from product_catalog.auth.providers import OAuthProvider
from product_catalog.auth.repositories import CredentialAccountExistsError
from product_catalog.auth.schemas import (
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    SessionInfoResponse,
    TokenResponse,
)
from product_catalog.auth.services import SessionService, UserService
from product_catalog.core.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])

PKCE_VERIFIER_COOKIE = "pkce_verifier"
PKCE_STATE_COOKIE = "pkce_state"
RETURN_URL_COOKIE = "return_url"
PKCE_COOKIE_MINUTES = 5
CALLBACK_PATH = "/api/auth/google/callback"
DEFAULT_RETURN_PATH = "/"

MISSING_PKCE_DATA = "Missing PKCE data"
INVALID_STATE = "Invalid state parameter"
GOOGLE_AUTH_FAILED = "Failed to authenticate with Google"
NOT_AUTHENTICATED = "Not authenticated"
SESSION_EXPIRED = "Session expired or invalid"
LOGOUT_SUCCESS = "Logged out successfully"
INVALID_CREDENTIALS = "Invalid username or password"


async def authentication_rejected_handler(request: Request, exc: AuthenticationRejected) -> JSONResponse:
    """Render AuthenticationRejected as {"error": message}."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def build_callback_uri(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}{CALLBACK_PATH}"


def is_safe_return_path(path: Optional[str]) -> bool:
    """
    True for a same-site relative path ("/products?page=2").

    Absolute URLs, scheme-relative "//host" forms and backslash tricks are
    refused so the post-login redirect cannot leave the frontend.
    """
    if not path or not path.startswith("/") or path.startswith("//"):
        return False
    if "\\" in path:
        return False
    parts = urlsplit(path)
    return not parts.scheme and not parts.netloc


def _set_temporary_cookie(response, request: Request, key: str, value: str) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=PKCE_COOKIE_MINUTES * 60,
        path="/",
        secure=request.url.scheme == "https",
        httponly=True,
        samesite="lax",
    )


def _set_session_cookie(response, settings: Settings, session_id: str) -> None:
    # A localhost frontend talks to this API cross-site over plain http
    is_local = settings.frontend_is_local
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_id,
        max_age=settings.SESSION_EXPIRATION_HOURS * 3600,
        path="/",
        secure=not is_local,
        httponly=True,
        samesite="none" if is_local else "lax",
    )


def _clear_login_cookies(response) -> None:
    response.delete_cookie(PKCE_VERIFIER_COOKIE, path="/")
    response.delete_cookie(PKCE_STATE_COOKIE, path="/")
    response.delete_cookie(RETURN_URL_COOKIE, path="/")


def _validate_pkce(request: Request, state: Optional[str]) -> str:
    """
    Check the callback state against the login cookies.

    Returns:
        The stored code verifier

    Raises:
        AuthenticationRejected: 400 when cookies are missing or state differs
    """
    code_verifier = request.cookies.get(PKCE_VERIFIER_COOKIE)
    stored_state = request.cookies.get(PKCE_STATE_COOKIE)

    if not code_verifier or not stored_state:
        logger.warning("OAuth callback without PKCE cookies")
        raise AuthenticationRejected(MISSING_PKCE_DATA, status_code=status.HTTP_400_BAD_REQUEST)

    if not state or not secrets.compare_digest(state.encode("utf-8"), stored_state.encode("utf-8")):
        logger.warning("OAuth callback state mismatch")
        raise AuthenticationRejected(INVALID_STATE, status_code=status.HTTP_400_BAD_REQUEST)

    return code_verifier


# ============================================================================
# GOOGLE SIGN-IN
# ============================================================================

@router.get("/google/login")
async def google_login(
    request: Request,
    return_url: Optional[str] = Query(None, alias="returnUrl"),
    provider: OAuthProvider = Depends(get_oauth_provider),
):
    """
    Start Google sign-in.

    Generates a fresh PKCE triple, keeps the verifier and state in
    short-lived http-only cookies, and redirects to Google.

    Returns:
        302 redirect to the provider
    """
    pkce = generate_pkce_data()
    auth_url = provider.get_authorization_url(
        pkce.code_challenge, pkce.state, build_callback_uri(request)
    )

    response = RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)
    _set_temporary_cookie(response, request, PKCE_VERIFIER_COOKIE, pkce.code_verifier)
    _set_temporary_cookie(response, request, PKCE_STATE_COOKIE, pkce.state)
    if return_url:
        _set_temporary_cookie(response, request, RETURN_URL_COOKIE, return_url)

    return response


@router.get(
    "/google/callback",
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def google_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    provider: OAuthProvider = Depends(get_oauth_provider),
    user_service: UserService = Depends(get_user_service),
    session_service: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_settings),
):
    """
    OAuth callback - exchange code, resolve user, create session.

    Flow:
    1. Validate state against the PKCE cookie
    2. Exchange the code (with the verifier) and validate the ID token
    3. Find or create the local user
    4. Create a session and set the session cookie
    5. Redirect to the frontend

    The PKCE and return-url cookies are cleared on every outcome, so a
    verifier is good for one callback only.

    Returns:
        302 redirect to FRONTEND_BASE_URL plus the stored return path,
        or 400/401 {"error": ...}
    """
    try:
        response = await _complete_sign_in(request, code, state, provider, user_service, session_service, settings)
    except AuthenticationRejected as e:
        response = await authentication_rejected_handler(request, e)

    _clear_login_cookies(response)
    return response


async def _complete_sign_in(
    request: Request,
    code: Optional[str],
    state: Optional[str],
    provider: OAuthProvider,
    user_service: UserService,
    session_service: SessionService,
    settings: Settings,
) -> RedirectResponse:
    code_verifier = _validate_pkce(request, state)

    if not code:
        # Google sends ?error=access_denied instead of a code when the user declines
        logger.warning(f"OAuth callback without code (error={request.query_params.get('error')})")
        raise AuthenticationRejected(GOOGLE_AUTH_FAILED, status_code=status.HTTP_401_UNAUTHORIZED)

    assertion = await provider.exchange_code(code, code_verifier, build_callback_uri(request))
    if assertion is None:
        raise AuthenticationRejected(GOOGLE_AUTH_FAILED, status_code=status.HTTP_401_UNAUTHORIZED)

    user = await user_service.resolve(assertion)
    session = await session_service.create_session(
        user_id=user.id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    return_path = request.cookies.get(RETURN_URL_COOKIE)
    if not is_safe_return_path(return_path):
        if return_path:
            logger.warning("Ignoring non-relative return_url cookie")
        return_path = DEFAULT_RETURN_PATH

    response = RedirectResponse(
        url=f"{settings.FRONTEND_BASE_URL.rstrip('/')}{return_path}",
        status_code=status.HTTP_302_FOUND,
    )
    _set_session_cookie(response, settings, session.id)

    logger.info(f"User {user.id} logged in via {provider.provider_name}")
    return response


# ============================================================================
# SESSION ROUTES
# ============================================================================

@router.get(
    "/me",
    response_model=SessionInfoResponse,
    responses={401: {"model": ErrorResponse}},
)
async def me(
    request: Request,
    session_service: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_settings),
):
    """Current session and user. 401 (and a cleared cookie) otherwise."""
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not session_id:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": NOT_AUTHENTICATED})

    info = await session_service.get_session(session_id)
    if info is None:
        response = JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": SESSION_EXPIRED})
        response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
        return response

    return SessionInfoResponse(
        session_id=info.session_id,
        user_id=info.user_id,
        email=info.email,
        name=info.name,
        picture_url=info.picture_url,
        is_admin=info.is_admin,
        expires_at=info.expires_at,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    session_service: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_settings),
):
    """Delete the session if there is one. Always clears the cookie."""
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if session_id:
        await session_service.delete_session(session_id)

    response = JSONResponse(content={"message": LOGOUT_SUCCESS})
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return response


# ============================================================================
# CREDENTIAL LOGIN
# ============================================================================

@router.post(
    "/login",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def credential_login(
    body: LoginRequest,
    credential_service: CredentialService = Depends(get_credential_service),
):
    """
    Exchange a username and password for a bearer token.

    Unknown user, inactive account and wrong password share one response.
    """
    try:
        issued = await credential_service.login(body.username, body.password)
    except UsageError as e:
        return JSONResponse(status_code=422, content={"error": str(e)})

    if issued is None:
        raise AuthenticationRejected(INVALID_CREDENTIALS, status_code=status.HTTP_401_UNAUTHORIZED)

    return TokenResponse(token=issued.token, username=issued.username, expires_at=issued.expires_at)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def register(
    body: RegisterRequest,
    principal: Principal = Depends(require_admin_principal),
    credential_service: CredentialService = Depends(get_credential_service),
):
    """Create a credential account (admin only)."""
    try:
        account = await credential_service.register(body.username, body.password, role=body.role)
    except UsageError as e:
        return JSONResponse(status_code=422, content={"error": str(e)})
    except CredentialAccountExistsError:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"error": "Username already exists"})

    logger.info(f"Principal {principal.user_id} registered account {account.username}")
    return RegisterResponse(
        user_id=account.id,
        username=account.username,
        role=account.role,
        message="User registered successfully",
    )

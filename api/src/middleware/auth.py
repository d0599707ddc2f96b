"""
Cookie based authentication for FastAPI routes.

Provides:
- Helpers that set and clear the access/refresh token cookies
- The ``require_user`` dependency guarding protected routes

``require_user`` reads the access token from its cookie (falling back to an
``Authorization: Bearer`` header). When the token is missing, expired or
about to expire, the session is renewed silently with the refresh cookie
and the rotated tokens are written back as cookies. When that fails too,
the request is rejected and the exception handler clears both cookies.
"""

from typing import Optional, Tuple
from uuid import UUID

import structlog
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES
from api.src.dependencies import (
    get_client_context,
    get_client_ip,
    get_device_id,
    get_jwt_service,
    get_refresh_token_service,
    get_settings_dependency,
)
from api.src.errors import UnauthorizedError
from api.src.models.auth import ClientContext
from api.src.services.jwt_service import JwtService, is_token_expiring_soon
from api.src.services.refresh_token_service import RefreshTokenService
from shared.logging import bind_context

logger = structlog.get_logger(__name__)

# HTTP Bearer token scheme for dependency injection
security = HTTPBearer(auto_error=False)

CLEAR_COOKIES_FLAG = "clear_auth_cookies"
REFRESHED_TOKENS = "refreshed_tokens"


# ============================================================================
# Cookie helpers
# ============================================================================


def set_auth_cookies(
    response: Response,
    settings: Settings,
    access_token: str,
    refresh_token: Optional[str] = None
) -> None:
    """
    Write the token cookies.

    Args:
        response: Outgoing response
        settings: Application settings (cookie names, lifetimes)
        access_token: New access token
        refresh_token: New refresh token (left untouched when None)
    """
    response.set_cookie(
        settings.access_token_cookie_name,
        access_token,
        max_age=int(settings.access_token_lifetime.total_seconds()),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    if refresh_token is not None:
        response.set_cookie(
            settings.refresh_token_cookie_name,
            refresh_token,
            max_age=int(settings.refresh_token_lifetime.total_seconds()),
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
        )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    """Expire both token cookies."""
    for name in (settings.access_token_cookie_name, settings.refresh_token_cookie_name):
        response.delete_cookie(
            name,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
        )


def mark_clear_auth_cookies(request: Request) -> None:
    """Ask the exception handler to clear the token cookies on error responses."""
    setattr(request.state, CLEAR_COOKIES_FLAG, True)


def should_clear_auth_cookies(request: Request) -> bool:
    return bool(getattr(request.state, CLEAR_COOKIES_FLAG, False))


def refreshed_tokens(request: Request) -> Optional[Tuple[str, str]]:
    """Access and refresh token issued by a silent refresh during this request."""
    return getattr(request.state, REFRESHED_TOKENS, None)


# ============================================================================
# Guard
# ============================================================================


def _read_access_token(
    request: Request,
    settings: Settings,
    credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    token = request.cookies.get(settings.access_token_cookie_name)
    if token:
        return token
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return None


async def require_user(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings_dependency),
    jwt_service: JwtService = Depends(get_jwt_service),
    refresh_token_service: RefreshTokenService = Depends(get_refresh_token_service),
    device_id: str = Depends(get_device_id),
    ip_address: str = Depends(get_client_ip),
    client_context: ClientContext = Depends(get_client_context),
) -> UUID:
    """
    Resolve the authenticated user's id.

    Returns:
        User id of the access token (or of the renewed session)

    Raises:
        UnauthorizedError: No usable access token and no valid refresh token

    Example:
        @router.get("/me")
        async def me(user_id: UUID = Depends(require_user)):
            ...
    """
    access_token = _read_access_token(request, settings, credentials)

    if access_token:
        try:
            payload = jwt_service.verify_access_token(access_token)
            if not is_token_expiring_soon(payload, settings.token_refresh_threshold_seconds):
                request.state.user_id = payload.sub
                bind_context(user_id=payload.sub)
                return UUID(payload.sub)
            logger.debug("access_token_expiring_soon", user_id=payload.sub)
        except UnauthorizedError as e:
            logger.debug("access_token_rejected", reason=e.message)

    refresh_token = request.cookies.get(settings.refresh_token_cookie_name)
    if not refresh_token:
        logger.info("auth_missing_credentials", path=request.url.path)
        mark_clear_auth_cookies(request)
        raise UnauthorizedError(ERROR_MESSAGES.UNAUTHORIZED)

    try:
        new_access, new_refresh = await refresh_token_service.refresh_token(
            refresh_token, device_id, ip_address, client_context
        )
    except UnauthorizedError:
        logger.info("silent_refresh_failed", path=request.url.path)
        mark_clear_auth_cookies(request)
        raise

    payload = jwt_service.verify_access_token(new_access)
    set_auth_cookies(response, settings, new_access, new_refresh)
    # error responses are built from scratch and need the rotated pair too
    setattr(request.state, REFRESHED_TOKENS, (new_access, new_refresh))
    request.state.user_id = payload.sub
    bind_context(user_id=payload.sub)
    logger.info("session_refreshed", user_id=payload.sub)

    return UUID(payload.sub)

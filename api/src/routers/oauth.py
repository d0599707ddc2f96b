"""
Google sign-in router.

Flow:
1. ``GET /auth/google`` stores a random state in a short-lived cookie and
   redirects to Google's consent screen.
2. ``GET /auth/google/callback`` checks the state, signs the user in, sets
   the refresh cookie and redirects to the web client with a one-time code.
3. ``POST /auth/oauth/exchange`` trades the code for the access token.
"""

from typing import Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES
from api.src.dependencies import (
    get_client_context,
    get_client_ip,
    get_device_id,
    get_jwt_service,
    get_oauth_service,
    get_settings_dependency,
)
from api.src.errors import BadRequestError, BaseError
from api.src.middleware.auth import set_auth_cookies
from api.src.models.auth import AccessTokenResponse, ClientContext, OAuthExchangeRequest
from api.src.models.common import ErrorResponse, SuccessResponse, format_success
from api.src.routers.auth import build_redirect
from api.src.services import JwtService, OAuthService
from shared.security.crypto import generate_secure_token, timing_safe_equal

logger = structlog.get_logger(__name__)

OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE = 10 * 60

router = APIRouter(
    prefix="/auth",
    tags=["OAuth"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
    }
)


def _failure_redirect(settings: Settings, reason: str, response: Response):
    query = urlencode({"error": reason})
    redirect = build_redirect(f"{settings.client_url}/login?{query}", response)
    redirect.delete_cookie(OAUTH_STATE_COOKIE)
    return redirect


@router.get("/google", summary="Sign in with Google")
async def google_login(
    response: Response,
    settings: Settings = Depends(get_settings_dependency),
    oauth_service: OAuthService = Depends(get_oauth_service),
):
    """Redirect to Google's consent screen."""
    if not settings.google_oauth_configured:
        logger.warning("google_oauth_not_configured")
        raise BadRequestError(ERROR_MESSAGES.BAD_REQUEST)

    state = generate_secure_token(16)
    redirect = build_redirect(oauth_service.authorization_url(state), response)
    redirect.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return redirect


@router.get("/google/callback", summary="Google redirect target")
async def google_callback(
    request: Request,
    response: Response,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings_dependency),
    oauth_service: OAuthService = Depends(get_oauth_service),
    device_id: str = Depends(get_device_id),
    client_ip: str = Depends(get_client_ip),
    client_context: ClientContext = Depends(get_client_context),
):
    """
    Finish Google sign-in.

    Failures (denied consent, state mismatch, provider errors) redirect to
    the client's login page with an ``error`` query parameter.
    """
    if error or not code:
        logger.info("google_oauth_denied", error=error)
        return _failure_redirect(settings, error or "missing_code", response)

    expected_state = request.cookies.get(OAUTH_STATE_COOKIE)
    if not state or not expected_state or not timing_safe_equal(state, expected_state):
        logger.warning("google_oauth_state_mismatch", ip_address=client_ip)
        return _failure_redirect(settings, "invalid_state", response)

    try:
        profile = await oauth_service.fetch_google_profile(code)
        one_time_code, refresh_token = await oauth_service.handle_oauth_login(
            profile, device_id, client_ip, client_context
        )
    except BaseError as e:
        logger.warning("google_oauth_failed", reason=e.name)
        return _failure_redirect(settings, "oauth_failed", response)

    query = urlencode({"code": one_time_code})
    redirect = build_redirect(f"{settings.client_url}/auth/callback?{query}", response)
    redirect.delete_cookie(OAUTH_STATE_COOKIE)
    redirect.set_cookie(
        settings.refresh_token_cookie_name,
        refresh_token,
        max_age=int(settings.refresh_token_lifetime.total_seconds()),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return redirect


@router.post(
    "/oauth/exchange",
    response_model=SuccessResponse[AccessTokenResponse],
    summary="Exchange the one-time OAuth code"
)
async def exchange_code(
    body: OAuthExchangeRequest,
    response: Response,
    settings: Settings = Depends(get_settings_dependency),
    jwt_service: JwtService = Depends(get_jwt_service),
    oauth_service: OAuthService = Depends(get_oauth_service),
):
    """Redeem the code from the callback redirect. A code works once."""
    data = await oauth_service.exchange_code(body.code)

    set_auth_cookies(response, settings, data["access_token"])
    return format_success(
        data=AccessTokenResponse(
            access_token=data["access_token"],
            expires_in=jwt_service.access_token_expires_in
        )
    )

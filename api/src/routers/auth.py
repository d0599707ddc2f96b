"""
Authentication router.

Provides REST API endpoints for:
- Registration, login, logout and session refresh
- Email verification (link target and resend)
- Password reset (request, link check, new password)
- CSRF token retrieval

Tokens travel in HttpOnly cookies; the access token is also returned in the
body for clients that send it as a bearer header.
"""

from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from api.src.config import Settings
from api.src.constants import AUTH_RATE_LIMIT_CONFIG, ERROR_MESSAGES
from api.src.dependencies import (
    get_auth_service,
    get_client_context,
    get_client_ip,
    get_csrf_service,
    get_device_id,
    get_jwt_service,
    get_rate_limit_service,
    get_refresh_token_service,
    get_reset_password_service,
    get_settings_dependency,
    get_verify_email_service,
)
from api.src.errors import BaseError, UnauthorizedError
from api.src.middleware.auth import (
    clear_auth_cookies,
    mark_clear_auth_cookies,
    set_auth_cookies,
)
from api.src.middleware.rate_limit import RateLimitGuard, enforce_rate_limit, rate_limit
from api.src.models.auth import (
    AccessTokenResponse,
    ClientContext,
    CsrfTokenResponse,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    ResetPasswordRequest,
)
from api.src.models.common import ErrorResponse, SuccessResponse, format_success
from api.src.models.user import UserResponse
from api.src.services import (
    AuthService,
    CsrfService,
    JwtService,
    RateLimitService,
    RefreshTokenService,
    ResetPasswordService,
    VerifyEmailService,
)

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        429: {"model": ErrorResponse, "description": "Too Many Requests"},
    }
)


def build_redirect(url: str, response: Response) -> RedirectResponse:
    """
    Redirect while keeping cookies already set on the injected response.

    Returning a Response from a route bypasses the injected one, so its
    Set-Cookie headers (e.g. a freshly issued device id) are copied over.
    """
    redirect = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    for value in response.headers.getlist("set-cookie"):
        redirect.headers.append("set-cookie", value)
    return redirect


# ============================================================================
# REGISTRATION AND LOGIN
# ============================================================================


@router.post(
    "/register",
    response_model=SuccessResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    responses={409: {"model": ErrorResponse, "description": "Email already in use"}}
)
async def register(
    body: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
    guard: RateLimitGuard = Depends(
        rate_limit(
            "registration",
            AUTH_RATE_LIMIT_CONFIG["registration"],
            lambda request: f"registration:ip:{get_client_ip(request)}"
        )
    ),
):
    """
    Create an account and send the verification email.

    Failed attempts count towards the per-IP registration limit; a
    successful registration resets it.
    """
    try:
        user = await auth_service.register(body.username, body.email, body.password)
    except BaseError:
        await guard.failure()
        raise

    await guard.success()
    return format_success(
        data=UserResponse.from_db(user),
        message="Registration successful. Please check your email to verify your account.",
        status=status.HTTP_201_CREATED
    )


@router.post(
    "/login",
    response_model=SuccessResponse[LoginResponse],
    summary="Login",
    responses={
        403: {"model": ErrorResponse, "description": "Invalid credentials"},
        404: {"model": ErrorResponse, "description": "Unknown email"},
    }
)
async def login(
    body: LoginRequest,
    response: Response,
    settings: Settings = Depends(get_settings_dependency),
    auth_service: AuthService = Depends(get_auth_service),
    jwt_service: JwtService = Depends(get_jwt_service),
    rate_limit_service: RateLimitService = Depends(get_rate_limit_service),
    device_id: str = Depends(get_device_id),
    client_ip: str = Depends(get_client_ip),
    client_context: ClientContext = Depends(get_client_context),
):
    """
    Authenticate with email and password.

    **Success Response (200):** access token, expiry and the user; the
    access and refresh tokens are also set as cookies.

    **Error Responses:**
    - 401: Email not verified
    - 403: Invalid credentials
    - 404: Unknown email
    - 429: Too many failed attempts for this email and address
    """
    guard = await enforce_rate_limit(
        rate_limit_service,
        response,
        f"login:{body.email.lower()}:{client_ip}",
        AUTH_RATE_LIMIT_CONFIG["login"],
        "login"
    )

    logger.info("login_attempt", ip_address=client_ip)

    try:
        user, tokens = await auth_service.login(
            body.email, body.password, device_id, client_ip, client_context
        )
    except BaseError:
        await guard.failure()
        raise

    await guard.success()
    set_auth_cookies(response, settings, tokens.access_token, tokens.refresh_token)

    return format_success(
        data=LoginResponse(
            access_token=tokens.access_token,
            expires_in=jwt_service.access_token_expires_in,
            user=UserResponse.from_db(user)
        ),
        message="Login successful"
    )


@router.post(
    "/logout",
    response_model=SuccessResponse,
    summary="Logout"
)
async def logout(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings_dependency),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Revoke the refresh token. The token cookies are cleared in every case."""
    mark_clear_auth_cookies(request)

    refresh_token = request.cookies.get(settings.refresh_token_cookie_name)
    if not refresh_token:
        raise UnauthorizedError(ERROR_MESSAGES.UNAUTHORIZED)

    await auth_service.logout(refresh_token)

    clear_auth_cookies(response, settings)
    return format_success(message="Logout successful")


@router.post(
    "/refresh-token",
    response_model=SuccessResponse[AccessTokenResponse],
    summary="Refresh session"
)
async def refresh_session(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings_dependency),
    jwt_service: JwtService = Depends(get_jwt_service),
    refresh_token_service: RefreshTokenService = Depends(get_refresh_token_service),
    device_id: str = Depends(get_device_id),
    client_ip: str = Depends(get_client_ip),
    client_context: ClientContext = Depends(get_client_context),
):
    """Rotate the refresh token cookie and issue a new access token."""
    token = request.cookies.get(settings.refresh_token_cookie_name)
    if not token:
        mark_clear_auth_cookies(request)
        raise UnauthorizedError(ERROR_MESSAGES.UNAUTHORIZED)

    try:
        access_token, new_refresh_token = await refresh_token_service.refresh_token(
            token, device_id, client_ip, client_context
        )
    except UnauthorizedError:
        mark_clear_auth_cookies(request)
        raise

    set_auth_cookies(response, settings, access_token, new_refresh_token)
    return format_success(
        data=AccessTokenResponse(
            access_token=access_token,
            expires_in=jwt_service.access_token_expires_in
        )
    )


# ============================================================================
# EMAIL VERIFICATION
# ============================================================================


@router.get(
    "/verify-email/{token}",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND,
    summary="Verify email"
)
async def verify_email(
    token: str,
    response: Response,
    settings: Settings = Depends(get_settings_dependency),
    verify_email_service: VerifyEmailService = Depends(get_verify_email_service),
):
    """Target of the verification link. Redirects to the web client."""
    try:
        await verify_email_service.verify_user_email(token)
    except BaseError as e:
        logger.info("verify_email_redirect_error", reason=e.name)
        query = urlencode({"reason": e.message})
        return build_redirect(f"{settings.client_url}/verify-email/error?{query}", response)

    return build_redirect(f"{settings.client_url}/verify-email/success", response)


@router.post(
    "/verify-email/resend",
    response_model=SuccessResponse,
    summary="Resend verification email"
)
async def resend_verification_email(
    body: EmailRequest,
    verify_email_service: VerifyEmailService = Depends(get_verify_email_service),
    guard: RateLimitGuard = Depends(
        rate_limit(
            "resend_verification",
            AUTH_RATE_LIMIT_CONFIG["resend_verification"],
            lambda request: f"resend-verification:ip:{get_client_ip(request)}"
        )
    ),
):
    await guard.hit()
    await verify_email_service.resend_verification_email(body.email)
    return format_success(message="Verification email sent")


# ============================================================================
# PASSWORD RESET
# ============================================================================


@router.post(
    "/forgot-password",
    response_model=SuccessResponse,
    summary="Request a password reset link"
)
async def forgot_password(
    body: EmailRequest,
    reset_password_service: ResetPasswordService = Depends(get_reset_password_service),
    guard: RateLimitGuard = Depends(
        rate_limit(
            "forgot_password",
            AUTH_RATE_LIMIT_CONFIG["forgot_password"],
            lambda request: f"forgot-password:ip:{get_client_ip(request)}"
        )
    ),
):
    """Every request counts towards the per-IP limit."""
    await guard.hit()
    await reset_password_service.send_reset_email(body.email)
    return format_success(message="Password reset link sent to your email")


@router.get(
    "/reset-password/{token}/verify",
    response_model=SuccessResponse,
    summary="Check a password reset link"
)
async def verify_reset_token(
    token: str,
    reset_password_service: ResetPasswordService = Depends(get_reset_password_service),
):
    await reset_password_service.verify_reset_token(token)
    return format_success(message="Token is valid")


@router.post(
    "/reset-password/{token}",
    response_model=SuccessResponse,
    summary="Set a new password"
)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    reset_password_service: ResetPasswordService = Depends(get_reset_password_service),
    guard: RateLimitGuard = Depends(
        rate_limit(
            "reset_password",
            AUTH_RATE_LIMIT_CONFIG["reset_password"],
            lambda request: f"reset-password:token:{request.path_params.get('token')}"
        )
    ),
):
    """Set the new password and sign out every session of the user."""
    await guard.hit()
    await reset_password_service.reset_password(token, body.password)
    return format_success(message="Password reset successful")


# ============================================================================
# CSRF
# ============================================================================


@router.get(
    "/csrf-token",
    response_model=SuccessResponse[CsrfTokenResponse],
    summary="Get a CSRF token"
)
async def csrf_token(
    request: Request,
    settings: Settings = Depends(get_settings_dependency),
    csrf_service: CsrfService = Depends(get_csrf_service),
):
    """
    Return the CSRF token issued with this response.

    The middleware sets the same token as a cookie; it is returned here for
    clients that cannot read cookies.
    """
    token = getattr(request.state, "csrf_token", None)
    if token is None:
        session_id = (
            getattr(request.state, "session_id", None)
            or request.cookies.get(settings.session_cookie_name)
            or "anonymous"
        )
        token = csrf_service.generate_token(session_id)
    return format_success(data=CsrfTokenResponse(csrf_token=token))

"""
FastAPI dependency injection for shared resources and services.

Provides injectable dependencies for:
- Settings and the asyncpg pool
- Service instances built once during application startup
- Client details (IP address, device id, user agent, correlation id)

Services live on a process-wide AppState filled by the lifespan in main.py.
Routes only reach them through the getters below, so tests can swap any of
them with ``app.dependency_overrides``.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import asyncpg
import httpx
import structlog
from fastapi import Depends, Request, Response
from limits.storage import storage_from_string

from api.src.config import get_settings, Settings
from api.src.models.auth import ClientContext
from api.src.repositories.note_repo import NoteRepository
from api.src.repositories.refresh_token_repo import RefreshTokenRepository
from api.src.repositories.user_repo import UserRepository
from api.src.repositories.verification_token_repo import VerificationTokenRepository
from api.src.repositories.video_repo import VideoRepository
from api.src.services import (
    AuthService,
    CacheService,
    CsrfService,
    JwtService,
    MailService,
    NoteService,
    OAuthService,
    PasswordHasher,
    RateLimitService,
    RefreshTokenService,
    ResetPasswordService,
    UserService,
    VerifyEmailService,
    VideoService,
    YouTubeClient,
)
from api.src.utils.user_agent import parse_client_context

logger = structlog.get_logger(__name__)

DEVICE_ID_HEADER = "X-Device-Id"
DEVICE_ID_MAX_AGE = 365 * 24 * 60 * 60


# ============================================================================
# APPLICATION STATE
# ============================================================================


@dataclass
class AppState:
    """Shared resources created at startup."""

    db_pool: Optional[asyncpg.Pool] = None
    http_client: Optional[httpx.AsyncClient] = None
    cache: Optional[CacheService] = None
    jwt_service: Optional[JwtService] = None
    csrf_service: Optional[CsrfService] = None
    rate_limit_service: Optional[RateLimitService] = None
    refresh_token_service: Optional[RefreshTokenService] = None
    verify_email_service: Optional[VerifyEmailService] = None
    reset_password_service: Optional[ResetPasswordService] = None
    auth_service: Optional[AuthService] = None
    user_service: Optional[UserService] = None
    video_service: Optional[VideoService] = None
    note_service: Optional[NoteService] = None
    oauth_service: Optional[OAuthService] = None


app_state = AppState()


def build_services(
    pool: asyncpg.Pool,
    settings: Settings,
    http_client: httpx.AsyncClient,
    state: Optional[AppState] = None
) -> AppState:
    """
    Wire repositories and services together.

    Args:
        pool: asyncpg connection pool
        settings: Application settings
        http_client: Shared client for YouTube and Google calls
        state: State to fill (defaults to the process-wide one)

    Returns:
        The filled AppState
    """
    state = state if state is not None else app_state

    user_repo = UserRepository(pool)
    refresh_token_repo = RefreshTokenRepository(pool)
    verification_token_repo = VerificationTokenRepository(pool)
    video_repo = VideoRepository(pool)
    note_repo = NoteRepository(pool)

    cache = CacheService(settings.cache_default_ttl_seconds)
    jwt_service = JwtService(settings)
    password_hasher = PasswordHasher(settings.password_bcrypt_rounds)
    mail_service = MailService(settings)

    refresh_token_service = RefreshTokenService(refresh_token_repo, jwt_service, settings)
    verify_email_service = VerifyEmailService(
        verification_token_repo, user_repo, jwt_service, mail_service, settings
    )
    video_service = VideoService(video_repo, YouTubeClient(http_client, settings))

    state.db_pool = pool
    state.http_client = http_client
    state.cache = cache
    state.jwt_service = jwt_service
    state.csrf_service = CsrfService(settings.session_secret, settings.csrf_token_ttl_seconds)
    state.rate_limit_service = RateLimitService(
        storage_from_string(settings.rate_limit_storage_uri)
    )
    state.refresh_token_service = refresh_token_service
    state.verify_email_service = verify_email_service
    state.reset_password_service = ResetPasswordService(
        user_repo, cache, password_hasher, refresh_token_service, mail_service, settings
    )
    state.auth_service = AuthService(
        user_repo, password_hasher, jwt_service, refresh_token_service, verify_email_service
    )
    state.user_service = UserService(user_repo, password_hasher, refresh_token_service)
    state.video_service = video_service
    state.note_service = NoteService(note_repo, video_service)
    state.oauth_service = OAuthService(
        user_repo, refresh_token_service, jwt_service, cache, http_client, settings
    )

    logger.info("services_initialized")
    return state


def _require(value, name: str):
    if value is None:
        logger.error("service_not_initialized", service=name)
        raise RuntimeError(
            f"{name} not initialized. The application lifespan must run first."
        )
    return value


# ============================================================================
# RESOURCE AND SERVICE DEPENDENCIES
# ============================================================================


def get_settings_dependency() -> Settings:
    """Get application settings."""
    return get_settings()


def get_jwt_service() -> JwtService:
    return _require(app_state.jwt_service, "jwt_service")


def get_csrf_service() -> CsrfService:
    return _require(app_state.csrf_service, "csrf_service")


def get_rate_limit_service() -> RateLimitService:
    return _require(app_state.rate_limit_service, "rate_limit_service")


def get_refresh_token_service() -> RefreshTokenService:
    return _require(app_state.refresh_token_service, "refresh_token_service")


def get_verify_email_service() -> VerifyEmailService:
    return _require(app_state.verify_email_service, "verify_email_service")


def get_reset_password_service() -> ResetPasswordService:
    return _require(app_state.reset_password_service, "reset_password_service")


def get_auth_service() -> AuthService:
    return _require(app_state.auth_service, "auth_service")


def get_user_service() -> UserService:
    return _require(app_state.user_service, "user_service")


def get_video_service() -> VideoService:
    return _require(app_state.video_service, "video_service")


def get_note_service() -> NoteService:
    return _require(app_state.note_service, "note_service")


def get_oauth_service() -> OAuthService:
    return _require(app_state.oauth_service, "oauth_service")


# ============================================================================
# CLIENT DEPENDENCIES
# ============================================================================


def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.

    Checks X-Forwarded-For first (first entry), then X-Real-IP, then falls
    back to the socket peer.

    Args:
        request: HTTP request

    Returns:
        Client IP address
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_device_id(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings_dependency)
) -> str:
    """
    Get the stable device identifier.

    Reads the device cookie, then the X-Device-Id header. When neither is
    present a new id is generated and issued as a long-lived cookie.

    Args:
        request: HTTP request
        response: Response the cookie is set on

    Returns:
        Device id
    """
    device_id = (
        request.cookies.get(settings.device_id_cookie_name)
        or request.headers.get(DEVICE_ID_HEADER)
    )
    if device_id:
        return device_id

    device_id = str(uuid.uuid4())
    response.set_cookie(
        settings.device_id_cookie_name,
        device_id,
        max_age=DEVICE_ID_MAX_AGE,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    logger.debug("device_id_issued")
    return device_id


def get_user_agent(request: Request) -> Optional[str]:
    """Get user agent from request."""
    return request.headers.get("User-Agent")


def get_client_context(user_agent: Optional[str] = Depends(get_user_agent)) -> ClientContext:
    """Client details recorded with refresh tokens."""
    return parse_client_context(user_agent)


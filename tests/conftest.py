"""
Shared pytest fixtures.

The application is built with ``create_app(settings)`` and exercised through
Starlette's TestClient without running the lifespan: no database pool is
opened. Routes reach services only through the getters in
``api.src.dependencies``, so each test swaps them for AsyncMocks while the
token, CSRF and rate limit services stay real.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from api.src.config import Settings
from api.src.dependencies import (
    get_auth_service,
    get_csrf_service,
    get_jwt_service,
    get_note_service,
    get_oauth_service,
    get_rate_limit_service,
    get_refresh_token_service,
    get_reset_password_service,
    get_settings_dependency,
    get_user_service,
    get_verify_email_service,
    get_video_service,
)
from api.src.main import create_app
from api.src.models.note import NoteDB
from api.src.models.user import UserDB
from api.src.models.video import VideoDB
from api.src.services import (
    AuthService,
    CacheService,
    CsrfService,
    JwtService,
    NoteService,
    OAuthService,
    RateLimitService,
    RefreshTokenService,
    ResetPasswordService,
    UserService,
    VerifyEmailService,
    VideoService,
)


# ============================================================================
# SETTINGS
# ============================================================================


def build_settings(**overrides: Any) -> Settings:
    """Settings for tests; never read from the environment or a .env file."""
    values: Dict[str, Any] = {
        "environment": "test",
        "log_level": "WARNING",
        "log_format": "console",
        "csrf_enabled": False,
        "cors_enabled": False,
        "tracing_enabled": False,
        "password_bcrypt_rounds": 4,
        "token_cleanup_interval_seconds": 0,
        "client_url": "http://client.test",
        "server_url": "http://api.test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    """Test settings with CSRF disabled."""
    return build_settings()


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Build settings with overrides."""
    return build_settings


# ============================================================================
# ROW FACTORIES
# ============================================================================


def _now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def user_factory() -> Callable[..., UserDB]:
    """Build UserDB rows."""

    def factory(**overrides: Any) -> UserDB:
        values: Dict[str, Any] = {
            "id": uuid4(),
            "username": "jane_doe",
            "email": "jane@example.com",
            "password": None,
            "profile_picture": None,
            "is_email_verified": True,
            "created_at": _now(),
            "updated_at": _now(),
        }
        values.update(overrides)
        return UserDB(**values)

    return factory


@pytest.fixture
def video_factory() -> Callable[..., VideoDB]:
    """Build VideoDB rows."""

    def factory(**overrides: Any) -> VideoDB:
        values: Dict[str, Any] = {
            "id": uuid4(),
            "youtube_id": "dQw4w9WgXcQ",
            "snippet": {
                "title": "Never Gonna Give You Up",
                "thumbnails": {
                    "default": {"url": "https://i.ytimg.com/vi/dQw4w9WgXcQ/default.jpg"},
                    "high": {"url": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"},
                },
            },
            "statistics": {"viewCount": "1500000000"},
            "player": {"embedHtml": "<iframe></iframe>"},
            "created_at": _now(),
            "updated_at": _now(),
        }
        values.update(overrides)
        return VideoDB(**values)

    return factory


@pytest.fixture
def note_factory() -> Callable[..., NoteDB]:
    """Build NoteDB rows."""

    def factory(**overrides: Any) -> NoteDB:
        values: Dict[str, Any] = {
            "id": uuid4(),
            "user_id": uuid4(),
            "video_id": uuid4(),
            "youtube_id": "dQw4w9WgXcQ",
            "title": "Chorus",
            "content": "The chorus starts here and repeats twice.",
            "video_title": "Never Gonna Give You Up",
            "thumbnail": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg",
            "timestamp": 43.5,
            "created_at": _now(),
            "updated_at": _now(),
        }
        values.update(overrides)
        return NoteDB(**values)

    return factory


# ============================================================================
# REPOSITORY HELPERS
# ============================================================================


@pytest.fixture
def attach_transaction() -> Callable[..., MagicMock]:
    """
    Give a mocked repository a working ``transaction()`` context manager.

    Returns the connection object the transaction yields.
    """

    def attach(repo: Any) -> MagicMock:
        conn = MagicMock(name="conn")

        @asynccontextmanager
        async def transaction():
            yield conn

        repo.transaction = transaction
        return conn

    return attach


# ============================================================================
# APPLICATION
# ============================================================================


@pytest.fixture
def jwt_service(settings: Settings) -> JwtService:
    return JwtService(settings)


@pytest.fixture
def cache() -> CacheService:
    return CacheService()


@pytest.fixture
def rate_limit_service() -> RateLimitService:
    return RateLimitService()


@pytest.fixture
def csrf_service(settings: Settings) -> CsrfService:
    return CsrfService(settings.session_secret, settings.csrf_token_ttl_seconds)


@pytest.fixture
def services() -> SimpleNamespace:
    """AsyncMock doubles of every business service."""
    return SimpleNamespace(
        auth=AsyncMock(spec=AuthService),
        refresh_token=AsyncMock(spec=RefreshTokenService),
        verify_email=AsyncMock(spec=VerifyEmailService),
        reset_password=AsyncMock(spec=ResetPasswordService),
        user=AsyncMock(spec=UserService),
        video=AsyncMock(spec=VideoService),
        note=AsyncMock(spec=NoteService),
        oauth=AsyncMock(spec=OAuthService),
    )


def _override(app, settings, jwt_service, rate_limit_service, csrf_service, services) -> None:
    app.dependency_overrides.update({
        get_settings_dependency: lambda: settings,
        get_jwt_service: lambda: jwt_service,
        get_rate_limit_service: lambda: rate_limit_service,
        get_csrf_service: lambda: csrf_service,
        get_auth_service: lambda: services.auth,
        get_refresh_token_service: lambda: services.refresh_token,
        get_verify_email_service: lambda: services.verify_email,
        get_reset_password_service: lambda: services.reset_password,
        get_user_service: lambda: services.user,
        get_video_service: lambda: services.video,
        get_note_service: lambda: services.note,
        get_oauth_service: lambda: services.oauth,
    })


@pytest.fixture
def app(settings, jwt_service, rate_limit_service, csrf_service, services):
    """Application with service doubles."""
    application = create_app(settings)
    _override(application, settings, jwt_service, rate_limit_service, csrf_service, services)
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """HTTP client (lifespan not started)."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def app_factory(jwt_service, rate_limit_service, csrf_service, services):
    """Build an application with custom settings and the shared service doubles."""

    def factory(custom_settings: Settings):
        application = create_app(custom_settings)
        _override(
            application, custom_settings, jwt_service, rate_limit_service, csrf_service, services
        )
        return application

    return factory


# ============================================================================
# AUTHENTICATION
# ============================================================================


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def auth_headers(jwt_service: JwtService, user_id: UUID) -> Dict[str, str]:
    """Bearer header of a valid access token for ``user_id``."""
    return {"Authorization": f"Bearer {jwt_service.generate_access_token(user_id)}"}

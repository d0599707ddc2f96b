"""
FastAPI application entry point for the TubeNote API.

This module provides the main FastAPI application with:
- Health, readiness and Prometheus metrics endpoints
- Routers for authentication, users, videos and notes
- Request logging with correlation ids and HTTP metrics
- CORS, gzip, security headers and CSRF protection
- OpenTelemetry distributed tracing
- Database pool and HTTP client lifecycle, plus periodic cleanup of
  expired refresh tokens
- JSON error bodies for every failure
"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import asyncpg
import httpx
import structlog
import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from api.src.config import get_settings, Settings
from api.src.constants import ERROR_MESSAGES
from api.src.dependencies import app_state, build_services
from api.src.errors import BadRequestError, BaseError, InternalServerError, NotFoundError
from api.src.middleware.auth import (
    clear_auth_cookies,
    refreshed_tokens,
    set_auth_cookies,
    should_clear_auth_cookies,
)
from api.src.middleware.csrf import CSRFMiddleware
from api.src.models.db import create_schema
from api.src.repositories.base import init_connection
from api.src.routers import auth, notes, oauth, users, videos
from shared.logging import bind_context, clear_context, configure_logging
from shared.metrics import get_app_metrics, get_http_metrics, render_latest
from shared.models.common import HealthStatus, ReadinessInfo, ServiceInfo
from shared.tracing import configure_tracing, shutdown_tracing

# Initialize logger
logger = structlog.get_logger(__name__)

STARTED_AT = time.monotonic()


def _update_pool_metrics() -> None:
    if app_state.db_pool is not None:
        metrics = get_app_metrics()
        metrics.db_pool_size.set(app_state.db_pool.get_size())
        metrics.db_pool_idle.set(app_state.db_pool.get_idle_size())


# ============================================================================
# Background Tasks
# ============================================================================


async def cleanup_expired_tokens(interval_seconds: int) -> None:
    """
    Periodically delete expired refresh tokens and purge expired cache keys.

    Args:
        interval_seconds: Pause between runs
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await app_state.refresh_token_service.delete_expired_tokens()
            purged = await app_state.cache.purge_expired()
            logger.debug("cache_purged", count=purged)
        except Exception as e:
            logger.error("token_cleanup_failed", error=str(e), exc_info=True)


# ============================================================================
# Lifespan Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - OpenTelemetry tracing setup
    - Database connection pool and HTTP client
    - Service wiring
    - Expired token cleanup task
    - Graceful shutdown and resource cleanup
    """
    settings: Settings = app.state.settings
    cleanup_task: Optional[asyncio.Task] = None

    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment
    )

    # ========================================================================
    # Startup: Initialize Resources
    # ========================================================================

    try:
        if settings.tracing_enabled:
            logger.info("initializing_tracing", otlp_endpoint=settings.tracing_otlp_endpoint)
            configure_tracing(
                service_name=settings.app_name,
                service_version=settings.app_version,
                otlp_endpoint=settings.tracing_otlp_endpoint,
                sampling_rate=settings.tracing_sample_rate,
                environment=settings.environment,
            )

        logger.info(
            "initializing_database_pool",
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size
        )

        if settings.database_create_schema:
            logger.info("creating_database_schema")
            await create_schema(settings.database_url)

        pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            command_timeout=settings.database_command_timeout,
            init=init_connection
        )

        # Test database connection
        async with pool.acquire() as conn:
            version = await conn.fetchval("SELECT version()")
            logger.info("database_connected", postgres_version=version)

        http_client = httpx.AsyncClient(timeout=settings.youtube_timeout_seconds)

        build_services(pool, settings, http_client)

        if settings.token_cleanup_interval_seconds > 0:
            cleanup_task = asyncio.create_task(
                cleanup_expired_tokens(settings.token_cleanup_interval_seconds)
            )

        _update_pool_metrics()

        logger.info(
            "application_started",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment
        )

        yield

    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        raise

    # ========================================================================
    # Shutdown: Cleanup Resources
    # ========================================================================

    finally:
        logger.info("application_shutting_down")

        if cleanup_task is not None:
            cleanup_task.cancel()
            try:
                await cleanup_task
            except asyncio.CancelledError:
                pass

        try:
            if app_state.http_client is not None:
                await app_state.http_client.aclose()
                app_state.http_client = None

            if app_state.db_pool is not None:
                logger.info("closing_database_pool")
                await app_state.db_pool.close()
                app_state.db_pool = None
                logger.info("database_pool_closed")

            if settings.tracing_enabled:
                logger.info("shutting_down_tracing")
                shutdown_tracing()

            logger.info("application_shutdown_complete")

        except Exception as e:
            logger.error("application_shutdown_failed", error=str(e), exc_info=True)


# ============================================================================
# Middleware
# ============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging, correlation ids and HTTP metrics."""

    async def dispatch(self, request: Request, call_next):
        """Process request and log details."""
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        clear_context()
        bind_context(correlation_id=correlation_id)

        method = request.method
        path = request.url.path
        http_metrics = get_http_metrics()

        http_metrics.requests_in_progress.labels(method=method).inc()
        start_time = time.perf_counter()

        logger.info(
            "request_started",
            method=method,
            path=path,
            client_ip=request.client.host if request.client else "unknown"
        )

        try:
            response = await call_next(request)

            duration = time.perf_counter() - start_time
            endpoint = self._endpoint_label(request)

            http_metrics.requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=response.status_code
            ).inc()
            http_metrics.request_duration.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration=f"{duration:.3f}s"
            )

            response.headers["X-Correlation-ID"] = correlation_id
            return response

        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
                exc_info=True
            )
            raise

        finally:
            http_metrics.requests_in_progress.labels(method=method).dec()

    @staticmethod
    def _endpoint_label(request: Request) -> str:
        """Route template (e.g. /api/v1/notes/{note_id}) to bound label cardinality."""
        route = request.scope.get("route")
        return getattr(route, "path", None) or "unmatched"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to responses."""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if self.settings.security_headers_enabled:
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["X-XSS-Protection"] = "1; mode=block"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

            if self.settings.is_production:
                response.headers["Strict-Transport-Security"] = (
                    f"max-age={self.settings.security_hsts_max_age}; includeSubDomains"
                )

        return response


# ============================================================================
# Exception Handlers
# ============================================================================


def _error_response(request: Request, error: BaseError) -> JSONResponse:
    response = JSONResponse(
        status_code=error.http_code,
        content=error.to_dict(),
        headers=error.headers or None
    )
    settings = request.app.state.settings
    tokens = refreshed_tokens(request)
    if should_clear_auth_cookies(request):
        clear_auth_cookies(response, settings)
    elif tokens is not None:
        set_auth_cookies(response, settings, *tokens)
    return response


async def app_error_handler(request: Request, exc: BaseError) -> JSONResponse:
    """Render application errors; mask non-operational ones as 500."""
    if not exc.is_operational:
        logger.error(
            "unexpected_error",
            path=request.url.path,
            error_name=exc.name,
            error=exc.message,
            exc_info=exc
        )
        return _error_response(request, InternalServerError())

    logger.warning(
        "request_error",
        path=request.url.path,
        status_code=exc.http_code,
        error_name=exc.name,
        error=exc.message
    )
    return _error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation errors as 400 with field details."""
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    logger.warning("validation_error", path=request.url.path, errors=details)
    return _error_response(request, BadRequestError(ERROR_MESSAGES.BAD_REQUEST, details=details))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (unknown route, wrong method) as JSON."""
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail
    )
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return _error_response(request, NotFoundError(ERROR_MESSAGES.RESOURCE_NOT_FOUND))
    error = BaseError(str(exc.detail), http_code=exc.status_code)
    error.name = "HttpError"
    return _error_response(request, error)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        error=str(exc),
        exc_info=exc
    )
    return _error_response(request, InternalServerError())


# ============================================================================
# Health, Readiness and Metrics Endpoints
# ============================================================================


async def health_check(request: Request) -> ServiceInfo:
    """
    Health check endpoint.

    Returns basic health status without checking dependencies.
    Use for container health checks.
    """
    settings: Settings = request.app.state.settings
    return ServiceInfo(
        service_name=settings.app_name,
        version=settings.app_version,
        status=HealthStatus.HEALTHY,
        uptime_seconds=round(time.monotonic() - STARTED_AT, 3),
    )


async def readiness_check() -> JSONResponse:
    """
    Readiness check endpoint.

    Pings the database; responds 503 while it is unreachable.
    """
    database = HealthStatus.UNHEALTHY
    if app_state.db_pool is not None:
        try:
            async with app_state.db_pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            database = HealthStatus.HEALTHY
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            logger.error("database_health_check_failed", error=str(e))

    _update_pool_metrics()

    ready = database == HealthStatus.HEALTHY
    info = ReadinessInfo(
        status=HealthStatus.HEALTHY if ready else HealthStatus.UNHEALTHY,
        dependencies={"database": database},
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=info.model_dump(mode="json"),
    )


async def metrics() -> Response:
    """
    Prometheus metrics endpoint.

    Exposes application metrics in Prometheus format for scraping.
    """
    _update_pool_metrics()
    return Response(content=render_latest(), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# FastAPI Application
# ============================================================================


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (defaults to the cached environment settings)

    Returns:
        Configured application
    """
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        service_name=settings.app_name,
        environment=settings.environment,
    )

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "TubeNote API. Save YouTube videos and write timestamped notes on them."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )
    application.state.settings = settings

    # Innermost first: CSRF runs after logging so rejected requests are logged
    application.add_middleware(
        CSRFMiddleware,
        settings=settings,
        exempt_paths=[
            "/health",
            "/ready",
            "/metrics",
            "/docs",
            "/redoc",
            "/openapi.json",
            f"{settings.api_prefix}/auth/google/callback",
        ]
    )
    application.add_middleware(GZipMiddleware, minimum_size=1000)
    application.add_middleware(RequestLoggingMiddleware)
    application.add_middleware(SecurityHeadersMiddleware, settings=settings)

    if settings.cors_enabled:
        logger.info("configuring_cors", origins=settings.cors_origins)
        application.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    application.add_exception_handler(BaseError, app_error_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(StarletteHTTPException, http_exception_handler)
    application.add_exception_handler(Exception, general_exception_handler)

    application.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    application.add_api_route("/ready", readiness_check, methods=["GET"], tags=["Health"])
    if settings.metrics_enabled:
        application.add_api_route(
            "/metrics", metrics, methods=["GET"], tags=["Monitoring"], include_in_schema=False
        )

    for router in (auth.router, oauth.router, users.router, videos.router, notes.router):
        application.include_router(router, prefix=settings.api_prefix)

    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(application)

    return application


app = create_app()


# ============================================================================
# Application Entry Point
# ============================================================================

if __name__ == "__main__":
    settings = get_settings()

    logger.info(
        "starting_uvicorn_server",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )

    uvicorn.run(
        "api.src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )

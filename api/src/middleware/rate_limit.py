"""
Per-route rate limiting dependencies.

``rate_limit(scope, config, key_fn)`` builds a dependency that checks the
key before the route runs, exposes the ``X-RateLimit-*`` headers and rejects
blocked clients with 429. It hands the route a RateLimitGuard so the route
decides what counts as an attempt: credential routes count failures and
reset on success, the others count every request.
"""

import inspect
import math
from typing import Awaitable, Callable, Union

import structlog
from fastapi import Depends, Request, Response

from api.src.constants import ERROR_MESSAGES, RateLimitConfig
from api.src.dependencies import get_rate_limit_service
from api.src.errors import TooManyRequestsError
from api.src.services.rate_limit_service import RateLimitService, RateLimitStatus
from shared.metrics import get_app_metrics

logger = structlog.get_logger(__name__)

KeyFunction = Callable[[Request], Union[str, Awaitable[str]]]


def rate_limit_headers(config: RateLimitConfig, status: RateLimitStatus) -> dict:
    """Headers describing the state of a key."""
    headers = {
        "X-RateLimit-Limit": str(config.max_attempts),
        "X-RateLimit-Remaining": str(status.remaining),
    }
    if status.reset_at is not None:
        headers["X-RateLimit-Reset"] = str(math.ceil(status.reset_at / 1000))
    return headers


class RateLimitGuard:
    """Rate limit state of one key for the current request."""

    def __init__(self, service: RateLimitService, key: str, config: RateLimitConfig, scope: str):
        self.service = service
        self.key = key
        self.config = config
        self.scope = scope

    async def enforce(self, response: Response) -> RateLimitStatus:
        """
        Reject the request when the key is blocked.

        Args:
            response: Response the rate limit headers are set on

        Returns:
            Current state of the key

        Raises:
            TooManyRequestsError: The key is blocked
        """
        status = await self.service.check(self.key, self.config)
        headers = rate_limit_headers(self.config, status)
        response.headers.update(headers)

        if status.blocked:
            retry_after = status.retry_after_seconds(self.config)
            get_app_metrics().rate_limit_blocks.labels(scope=self.scope).inc()
            logger.warning(
                "rate_limit_blocked",
                scope=self.scope,
                key=self.key,
                retry_after=retry_after
            )
            raise TooManyRequestsError(
                ERROR_MESSAGES.TOO_MANY_ATTEMPTS,
                retry_after=retry_after,
                headers=headers
            )
        return status

    async def hit(self) -> RateLimitStatus:
        """Count one attempt."""
        return await self.service.increment(self.key, self.config)

    async def failure(self) -> RateLimitStatus:
        """Count a failed attempt."""
        return await self.hit()

    async def success(self) -> None:
        """Forget previous attempts after a successful one."""
        await self.service.reset(self.key, self.config)


async def enforce_rate_limit(
    service: RateLimitService,
    response: Response,
    key: str,
    config: RateLimitConfig,
    scope: str
) -> RateLimitGuard:
    """Check a key from inside a route (e.g. when the key needs the body)."""
    guard = RateLimitGuard(service, key, config, scope)
    await guard.enforce(response)
    return guard


def rate_limit(scope: str, config: RateLimitConfig, key_fn: KeyFunction):
    """
    Build a rate limit dependency.

    Args:
        scope: Metric label and log scope (e.g. "registration")
        config: Attempts, window and lockout
        key_fn: Builds the key from the request; may be a coroutine

    Returns:
        Dependency callable returning a RateLimitGuard

    Example:
        @router.post("/forgot-password")
        async def forgot_password(
            guard: RateLimitGuard = Depends(
                rate_limit("forgot_password", config, lambda r: f"forgot-password:ip:{...}")
            )
        ):
            await guard.hit()
    """

    async def dependency(
        request: Request,
        response: Response,
        service: RateLimitService = Depends(get_rate_limit_service),
    ) -> RateLimitGuard:
        key = key_fn(request)
        if inspect.isawaitable(key):
            key = await key
        return await enforce_rate_limit(service, response, key, config, scope)

    return dependency

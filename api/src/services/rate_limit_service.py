"""
Fixed-window rate limiting with lockout.

Attempts are counted by a ``limits`` fixed-window limiter: ``max_attempts``
per window, starting at the first attempt. Going over the limit with a block
duration configured stores a separate lockout key that expires after that
duration; the key is blocked only while the lockout exists.

Storage failures never block a request: they are logged and the request is
let through.
"""

import math
import time
from dataclasses import dataclass
from typing import Optional

import structlog
from limits import RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, Storage
from limits.aio.strategies import FixedWindowRateLimiter

from api.src.constants import RateLimitConfig

logger = structlog.get_logger(__name__)

_NAMESPACE = "rate-limit"
_BLOCK_NAMESPACE = "rate-limit-block"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _seconds(ms: int) -> int:
    return max(1, math.ceil(ms / 1000))


@dataclass
class RateLimitStatus:
    """Result of a rate limit check.

    Attributes:
        remaining: Attempts left in the current window
        blocked: True while a lockout is active
        reset_at: Epoch milliseconds when the window or lockout ends
            (None when no window is open)
    """
    remaining: int
    blocked: bool
    reset_at: Optional[int] = None

    def retry_after_seconds(self, config: RateLimitConfig) -> int:
        """Seconds until the client may retry."""
        if self.reset_at is not None:
            return max(1, math.ceil((self.reset_at - _now_ms()) / 1000))
        return math.ceil((config.block_duration_ms or config.window_ms) / 1000)


class RateLimitService:
    """Counts attempts per key with a ``limits`` fixed-window limiter."""

    def __init__(self, storage: Optional[Storage] = None):
        """
        Initialize rate limiter.

        Args:
            storage: ``limits`` async storage (in-memory when omitted)
        """
        self.storage = storage if storage is not None else MemoryStorage()
        self.limiter = FixedWindowRateLimiter(self.storage)

    @staticmethod
    def _item(config: RateLimitConfig) -> RateLimitItemPerSecond:
        return RateLimitItemPerSecond(
            config.max_attempts, _seconds(config.window_ms), namespace=_NAMESPACE
        )

    @staticmethod
    def _block_key(key: str) -> str:
        return f"{_BLOCK_NAMESPACE}/{key}"

    async def _lockout(self, key: str) -> Optional[RateLimitStatus]:
        block_key = self._block_key(key)
        if await self.storage.get(block_key) > 0:
            blocked_until = int(await self.storage.get_expiry(block_key) * 1000)
            return RateLimitStatus(remaining=0, blocked=True, reset_at=blocked_until)
        return None

    async def _window(self, key: str, config: RateLimitConfig) -> RateLimitStatus:
        item = self._item(config)
        stats = await self.limiter.get_window_stats(item, key)
        if stats.remaining >= config.max_attempts:
            return RateLimitStatus(remaining=config.max_attempts, blocked=False)
        return RateLimitStatus(
            remaining=stats.remaining,
            blocked=False,
            reset_at=int(stats.reset_time * 1000)
        )

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitStatus:
        """
        Report the state of a key without counting an attempt.

        Args:
            key: Rate limit key (e.g. ``login:{email}:{ip}``)
            config: Limits for the route

        Returns:
            RateLimitStatus
        """
        try:
            return await self._lockout(key) or await self._window(key, config)
        except Exception as e:
            logger.error("rate_limit_check_failed", key=key, error=str(e))
            return RateLimitStatus(remaining=config.max_attempts, blocked=False)

    async def increment(self, key: str, config: RateLimitConfig) -> RateLimitStatus:
        """
        Count one attempt.

        Exceeding the limit with a block duration configured locks the key
        out for that duration and starts a fresh window after it.

        Args:
            key: Rate limit key
            config: Limits for the route

        Returns:
            RateLimitStatus after counting the attempt
        """
        try:
            locked = await self._lockout(key)
            if locked:
                return locked

            item = self._item(config)
            within_limit = await self.limiter.hit(item, key)

            if not within_limit and config.block_duration_ms:
                logger.warning(
                    "rate_limit_exceeded",
                    key=key,
                    max_attempts=config.max_attempts,
                    block_duration_ms=config.block_duration_ms
                )
                await self.storage.incr(
                    self._block_key(key), _seconds(config.block_duration_ms), amount=1
                )
                await self.limiter.clear(item, key)
                return await self._lockout(key)

            return await self._window(key, config)

        except Exception as e:
            logger.error("rate_limit_increment_failed", key=key, error=str(e))
            return RateLimitStatus(remaining=config.max_attempts, blocked=False)

    async def reset(self, key: str, config: RateLimitConfig) -> None:
        """
        Forget all attempts of a key.

        Args:
            key: Rate limit key
            config: Limits for the route
        """
        try:
            await self.limiter.clear(self._item(config), key)
            await self.storage.clear(self._block_key(key))
            logger.debug("rate_limit_reset", key=key)
        except Exception as e:
            logger.error("rate_limit_reset_failed", key=key, error=str(e))

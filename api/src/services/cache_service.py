"""
In-process TTL cache.

Holds short-lived values that do not need to survive a restart:
password reset tokens and OAuth exchange codes.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class CacheStats:
    """Cache counters."""
    hits: int = 0
    misses: int = 0
    keys: int = 0


class CacheService:
    """Async key/value store with per-key expiry."""

    def __init__(self, default_ttl_seconds: float = 500):
        """
        Initialize cache.

        Args:
            default_ttl_seconds: TTL used when ``set`` gets none (0 = never expire)
        """
        self.default_ttl_seconds = default_ttl_seconds
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    def _expired(self, expires_at: Optional[float], now: float) -> bool:
        return expires_at is not None and expires_at <= now

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> bool:
        """
        Store a value.

        Args:
            key: Cache key
            value: Value to store
            ttl_seconds: Lifetime in seconds; None uses the default, 0 never expires

        Returns:
            True once stored
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = time.monotonic() + ttl if ttl and ttl > 0 else None

        async with self._lock:
            self._store[key] = (value, expires_at)

        logger.debug("cache_set", key=key, ttl_seconds=ttl)
        return True

    async def get(self, key: str) -> Optional[Any]:
        """
        Read a value. Expired keys are evicted on read.

        Args:
            key: Cache key

        Returns:
            Stored value or None
        """
        now = time.monotonic()
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None

            value, expires_at = entry
            if self._expired(expires_at, now):
                del self._store[key]
                self._misses += 1
                return None

            self._hits += 1
            return value

    async def delete(self, key: str) -> int:
        """
        Remove a key.

        Args:
            key: Cache key

        Returns:
            Number of removed keys (0 or 1)
        """
        async with self._lock:
            removed = self._store.pop(key, None)
        return 1 if removed is not None else 0

    async def take(self, key: str) -> Optional[Any]:
        """Read and remove a value in one step (one-time codes)."""
        now = time.monotonic()
        async with self._lock:
            entry = self._store.pop(key, None)
            if entry is None or self._expired(entry[1], now):
                self._misses += 1
                return None
            self._hits += 1
            return entry[0]

    async def flush(self) -> None:
        """Remove every key and reset the counters."""
        async with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
        logger.info("cache_flushed")

    async def purge_expired(self) -> int:
        """
        Drop expired entries.

        Returns:
            Number of removed keys
        """
        now = time.monotonic()
        async with self._lock:
            expired = [k for k, (_, exp) in self._store.items() if self._expired(exp, now)]
            for key in expired:
                del self._store[key]
        return len(expired)

    async def stats(self) -> CacheStats:
        """Current hit/miss counters and key count."""
        async with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, keys=len(self._store))

"""
Shared repository plumbing.

Repositories receive the asyncpg pool. Every query method also accepts an
optional connection so that a service can run calls to several
repositories inside one transaction.
"""

import json

import asyncpg
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional


async def init_connection(conn: asyncpg.Connection) -> None:
    """
    Per-connection setup used as the pool's ``init`` hook.

    Registers JSON codecs so jsonb columns round-trip as Python objects.

    Args:
        conn: Newly opened connection
    """
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog"
        )


class BaseRepository:
    """Base class providing connection and transaction helpers."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Context manager for database transactions.

        Yields:
            asyncpg.Connection: Database connection inside a transaction
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    @asynccontextmanager
    async def connection(
        self, conn: Optional[asyncpg.Connection] = None
    ) -> AsyncIterator[asyncpg.Connection]:
        """
        Use the caller's connection or acquire one from the pool.

        Args:
            conn: Connection of an enclosing transaction (optional)

        Yields:
            asyncpg.Connection: Database connection
        """
        if conn is not None:
            yield conn
            return

        async with self.pool.acquire() as acquired:
            yield acquired


def rows_affected(status: str) -> int:
    """
    Parse the row count from an asyncpg command status.

    Args:
        status: Command status such as "DELETE 3" or "UPDATE 1"

    Returns:
        Number of affected rows
    """
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0

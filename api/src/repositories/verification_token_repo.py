"""
Email verification token repository.
"""

import asyncpg
import structlog
from datetime import datetime
from typing import Optional
from uuid import UUID

from api.src.errors import DatabaseError
from api.src.models.auth import EmailVerificationTokenDB
from api.src.repositories.base import BaseRepository, rows_affected

logger = structlog.get_logger(__name__)


class VerificationTokenRepository(BaseRepository):
    """Repository for email verification tokens."""

    async def create_token(
        self,
        user_id: UUID,
        token: str,
        expires_at: datetime,
        conn: Optional[asyncpg.Connection] = None
    ) -> EmailVerificationTokenDB:
        """
        Persist a verification token.

        Args:
            user_id: Owner of the token
            token: Signed token
            expires_at: Expiry time
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Stored token row
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    """
                    INSERT INTO email_verification_tokens (user_id, token, expires_at, created_at)
                    VALUES ($1, $2, $3, NOW())
                    RETURNING id, user_id, token, expires_at, created_at
                    """,
                    user_id,
                    token,
                    expires_at
                )

                return EmailVerificationTokenDB(**dict(row))

        except asyncpg.PostgresError as e:
            logger.error("verification_token_create_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to store verification token") from e

    async def get_active_by_user(
        self,
        user_id: UUID,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[EmailVerificationTokenDB]:
        """
        Latest unexpired token of a user.

        Args:
            user_id: User ID
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Token row or None
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    """
                    SELECT id, user_id, token, expires_at, created_at
                    FROM email_verification_tokens
                    WHERE user_id = $1 AND expires_at > NOW()
                    ORDER BY created_at DESC
                    LIMIT 1
                    """,
                    user_id
                )

                return EmailVerificationTokenDB(**dict(row)) if row else None

        except asyncpg.PostgresError as e:
            logger.error("verification_token_get_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to fetch verification token") from e

    async def get_active_by_token(
        self,
        user_id: UUID,
        token: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[EmailVerificationTokenDB]:
        """
        Unexpired token matching both the user and the token value.

        Args:
            user_id: User ID
            token: Signed token
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Token row or None
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    """
                    SELECT id, user_id, token, expires_at, created_at
                    FROM email_verification_tokens
                    WHERE user_id = $1 AND token = $2 AND expires_at > NOW()
                    """,
                    user_id,
                    token
                )

                return EmailVerificationTokenDB(**dict(row)) if row else None

        except asyncpg.PostgresError as e:
            logger.error("verification_token_get_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to fetch verification token") from e

    async def delete_all_for_user(
        self,
        user_id: UUID,
        conn: Optional[asyncpg.Connection] = None
    ) -> int:
        """
        Delete every verification token of a user.

        Args:
            user_id: User ID
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Number of deleted rows
        """
        try:
            async with self.connection(conn) as db:
                result = await db.execute(
                    "DELETE FROM email_verification_tokens WHERE user_id = $1",
                    user_id
                )

                return rows_affected(result)

        except asyncpg.PostgresError as e:
            logger.error("verification_token_delete_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to delete verification tokens") from e

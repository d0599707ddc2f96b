"""
Refresh token repository.

Stores refresh tokens by SHA-256 digest together with the hashed device id
and IP address they were issued to.
"""

import asyncpg
import structlog
from datetime import datetime
from typing import Optional
from uuid import UUID

from api.src.errors import DatabaseError
from api.src.models.auth import ClientContext, RefreshTokenDB
from api.src.repositories.base import BaseRepository, rows_affected

logger = structlog.get_logger(__name__)

_TOKEN_COLUMNS = (
    "id, user_id, token, device_id, ip_address, user_agent, browser, os, "
    "device_type, revoked, revoked_at, revocation_reason, expires_at, created_at"
)


class RefreshTokenRepository(BaseRepository):
    """Repository for refresh token records."""

    async def create_token(
        self,
        user_id: UUID,
        token_hash: str,
        device_id_hash: str,
        ip_address_hash: str,
        expires_at: datetime,
        client_context: Optional[ClientContext] = None,
        conn: Optional[asyncpg.Connection] = None
    ) -> RefreshTokenDB:
        """
        Persist a refresh token.

        Args:
            user_id: Owner of the token
            token_hash: SHA-256 of the token
            device_id_hash: SHA-256 of the device id
            ip_address_hash: SHA-256 of the client IP
            expires_at: Expiry time
            client_context: User agent details
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Stored token row
        """
        context = client_context or ClientContext()
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    INSERT INTO refresh_tokens (
                        user_id, token, device_id, ip_address, user_agent,
                        browser, os, device_type, expires_at, created_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, NOW())
                    RETURNING {_TOKEN_COLUMNS}
                    """,
                    user_id,
                    token_hash,
                    device_id_hash,
                    ip_address_hash,
                    context.user_agent,
                    context.browser,
                    context.os,
                    context.device_type,
                    expires_at
                )

                logger.debug("refresh_token_stored", user_id=str(user_id))
                return RefreshTokenDB(**dict(row))

        except asyncpg.PostgresError as e:
            logger.error("refresh_token_create_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to store refresh token") from e

    async def get_by_token_hash(
        self,
        token_hash: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[RefreshTokenDB]:
        """
        Look up a token by its digest.

        Args:
            token_hash: SHA-256 of the token
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Token row or None
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    SELECT {_TOKEN_COLUMNS}
                    FROM refresh_tokens
                    WHERE token = $1
                    """,
                    token_hash
                )

                return RefreshTokenDB(**dict(row)) if row else None

        except asyncpg.PostgresError as e:
            logger.error("refresh_token_get_failed", error=str(e))
            raise DatabaseError("Failed to fetch refresh token") from e

    async def revoke_token(
        self,
        token_id: UUID,
        reason: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> bool:
        """
        Revoke one token.

        Args:
            token_id: Token row id
            reason: Revocation reason
            conn: Connection of an enclosing transaction (optional)

        Returns:
            True if a non-revoked token was revoked
        """
        try:
            async with self.connection(conn) as db:
                result = await db.execute(
                    """
                    UPDATE refresh_tokens
                    SET revoked = TRUE, revoked_at = NOW(), revocation_reason = $2
                    WHERE id = $1 AND revoked = FALSE
                    """,
                    token_id,
                    reason
                )

                return rows_affected(result) == 1

        except asyncpg.PostgresError as e:
            logger.error("refresh_token_revoke_failed", error=str(e), token_id=str(token_id))
            raise DatabaseError("Failed to revoke refresh token") from e

    async def revoke_all_for_user(
        self,
        user_id: UUID,
        reason: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> int:
        """
        Revoke every active token of a user.

        Args:
            user_id: User ID
            reason: Revocation reason
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Number of tokens revoked
        """
        try:
            async with self.connection(conn) as db:
                result = await db.execute(
                    """
                    UPDATE refresh_tokens
                    SET revoked = TRUE, revoked_at = NOW(), revocation_reason = $2
                    WHERE user_id = $1 AND revoked = FALSE
                    """,
                    user_id,
                    reason
                )

                revoked = rows_affected(result)
                logger.info(
                    "refresh_tokens_revoked",
                    user_id=str(user_id),
                    reason=reason,
                    count=revoked
                )
                return revoked

        except asyncpg.PostgresError as e:
            logger.error("refresh_token_revoke_all_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to revoke refresh tokens") from e

    async def delete_expired(self) -> int:
        """
        Delete tokens past their expiry.

        Returns:
            Number of deleted rows
        """
        try:
            async with self.connection() as db:
                result = await db.execute(
                    "DELETE FROM refresh_tokens WHERE expires_at < NOW()"
                )

                return rows_affected(result)

        except asyncpg.PostgresError as e:
            logger.error("refresh_token_cleanup_failed", error=str(e))
            raise DatabaseError("Failed to delete expired refresh tokens") from e

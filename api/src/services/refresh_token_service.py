"""
Refresh token lifecycle.

Refresh tokens are JWTs handed to the client once and stored only as a
SHA-256 digest, bound to the (hashed) device id and IP address they were
issued to. Every refresh rotates the token; a token presented from another
device or address revokes every token of its user.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID

import asyncpg
import structlog

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES, RevocationReason
from api.src.errors import UnauthorizedError
from api.src.models.auth import ClientContext
from api.src.repositories.refresh_token_repo import RefreshTokenRepository
from api.src.services.jwt_service import JwtService
from shared.metrics import get_app_metrics
from shared.security.crypto import hash_data

logger = structlog.get_logger(__name__)


class RefreshTokenService:
    """Creates, rotates and revokes refresh tokens."""

    def __init__(
        self,
        refresh_token_repo: RefreshTokenRepository,
        jwt_service: JwtService,
        settings: Settings
    ):
        """
        Initialize refresh token service.

        Args:
            refresh_token_repo: Refresh token repository
            jwt_service: JWT signer
            settings: Application settings
        """
        self.refresh_token_repo = refresh_token_repo
        self.jwt_service = jwt_service
        self.settings = settings

    async def create_token(
        self,
        user_id: UUID,
        device_id: str,
        ip_address: str,
        client_context: Optional[ClientContext] = None,
        conn: Optional[asyncpg.Connection] = None
    ) -> str:
        """
        Issue and persist a refresh token.

        Args:
            user_id: Owner of the token
            device_id: Client device id
            ip_address: Client IP address
            client_context: User agent details
            conn: Connection of an enclosing transaction (optional)

        Returns:
            The raw refresh token (only its digest is stored)
        """
        token = self.jwt_service.generate_refresh_token(user_id)
        expires_at = datetime.now(timezone.utc) + self.settings.refresh_token_lifetime

        await self.refresh_token_repo.create_token(
            user_id=user_id,
            token_hash=hash_data(token),
            device_id_hash=hash_data(device_id),
            ip_address_hash=hash_data(ip_address),
            expires_at=expires_at,
            client_context=client_context,
            conn=conn
        )

        logger.info("refresh_token_created", user_id=str(user_id))
        return token

    async def refresh_token(
        self,
        token: str,
        device_id: str,
        ip_address: str,
        client_context: Optional[ClientContext] = None
    ) -> Tuple[str, str]:
        """
        Rotate a refresh token.

        Args:
            token: Refresh token presented by the client
            device_id: Client device id
            ip_address: Client IP address
            client_context: User agent details

        Returns:
            (access_token, refresh_token)

        Raises:
            UnauthorizedError: If the token is unknown, revoked, expired or
                presented from another device or address
        """
        metrics = get_app_metrics()
        record = await self.refresh_token_repo.get_by_token_hash(hash_data(token))

        if not record or record.revoked or record.expires_at <= datetime.now(timezone.utc):
            logger.warning(
                "refresh_token_rejected",
                found=record is not None,
                revoked=bool(record and record.revoked)
            )
            metrics.auth_events.labels(event="refresh", outcome="invalid").inc()
            raise UnauthorizedError(ERROR_MESSAGES.INVALID_TOKEN)

        if (
            record.device_id != hash_data(device_id)
            or record.ip_address != hash_data(ip_address)
        ):
            logger.warning("refresh_token_context_mismatch", user_id=str(record.user_id))
            await self.revoke_all_user_tokens(record.user_id, RevocationReason.SUSPICIOUS_ACTIVITY)
            metrics.auth_events.labels(event="refresh", outcome="suspicious").inc()
            raise UnauthorizedError(ERROR_MESSAGES.UNAUTHORIZED)

        async with self.refresh_token_repo.transaction() as conn:
            revoked = await self.refresh_token_repo.revoke_token(
                record.id, RevocationReason.TOKEN_REFRESHING, conn=conn
            )
            if not revoked:
                # Lost a race with a concurrent refresh of the same token
                raise UnauthorizedError(ERROR_MESSAGES.INVALID_TOKEN)

            new_refresh_token = await self.create_token(
                record.user_id, device_id, ip_address, client_context, conn=conn
            )

        access_token = self.jwt_service.generate_access_token(record.user_id)
        metrics.auth_events.labels(event="refresh", outcome="success").inc()
        logger.info("refresh_token_rotated", user_id=str(record.user_id))

        return access_token, new_refresh_token

    async def revoke_token(
        self,
        token: str,
        reason: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> UUID:
        """
        Revoke a single token.

        Args:
            token: Raw refresh token
            reason: Revocation reason
            conn: Connection of an enclosing transaction (optional)

        Returns:
            ID of the token's user

        Raises:
            UnauthorizedError: If the token is unknown
        """
        record = await self.refresh_token_repo.get_by_token_hash(hash_data(token), conn=conn)
        if not record:
            logger.warning("refresh_token_revoke_unknown")
            raise UnauthorizedError(ERROR_MESSAGES.UNAUTHORIZED)

        await self.refresh_token_repo.revoke_token(record.id, reason, conn=conn)
        logger.info("refresh_token_revoked", user_id=str(record.user_id), reason=reason)
        return record.user_id

    async def revoke_all_user_tokens(
        self,
        user_id: UUID,
        reason: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> int:
        """Revoke every active token of a user."""
        return await self.refresh_token_repo.revoke_all_for_user(user_id, reason, conn=conn)

    async def delete_expired_tokens(self) -> int:
        """Remove expired tokens. Run periodically."""
        deleted = await self.refresh_token_repo.delete_expired()
        if deleted:
            logger.info("expired_refresh_tokens_deleted", count=deleted)
        return deleted

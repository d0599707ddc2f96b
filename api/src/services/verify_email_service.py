"""
Email verification.

A verification token is a signed JWT that is also persisted, so a link can
be used only once: verifying deletes every stored token of the user, and a
signed token with no stored counterpart is treated as a replay.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES
from api.src.errors import BadRequestError, NotFoundError, UnauthorizedError
from api.src.models.user import UserDB
from api.src.repositories.user_repo import UserRepository
from api.src.repositories.verification_token_repo import VerificationTokenRepository
from api.src.services.jwt_service import JwtService
from api.src.services.mail_service import MailService
from shared.metrics import get_app_metrics

logger = structlog.get_logger(__name__)


class VerifyEmailService:
    """Issues and redeems email verification tokens."""

    def __init__(
        self,
        token_repo: VerificationTokenRepository,
        user_repo: UserRepository,
        jwt_service: JwtService,
        mail_service: MailService,
        settings: Settings
    ):
        self.token_repo = token_repo
        self.user_repo = user_repo
        self.jwt_service = jwt_service
        self.mail_service = mail_service
        self.settings = settings

    def verification_link(self, token: str) -> str:
        """Public URL of the verification endpoint for a token."""
        return f"{self.settings.server_url}{self.settings.api_prefix}/auth/verify-email/{token}"

    async def create_token(
        self,
        user: UserDB,
        conn: Optional[asyncpg.Connection] = None
    ) -> str:
        """
        Issue a verification token for a user.

        Args:
            user: User to verify
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Signed token

        Raises:
            BadRequestError: EMAIL_ALREADY_VERIFIED, or VERIFICATION_LINK_SENT
                while an unexpired token exists
        """
        if user.is_email_verified:
            raise BadRequestError(ERROR_MESSAGES.EMAIL_ALREADY_VERIFIED)

        existing = await self.token_repo.get_active_by_user(user.id, conn=conn)
        if existing:
            raise BadRequestError(ERROR_MESSAGES.VERIFICATION_LINK_SENT)

        token = self.jwt_service.generate_verify_email_token(user.id)
        expires_at = datetime.now(timezone.utc) + self.settings.verify_email_token_lifetime
        await self.token_repo.create_token(user.id, token, expires_at, conn=conn)

        logger.info("verification_token_created", user_id=str(user.id))
        return token

    async def send_verification_email(self, user: UserDB, token: str) -> None:
        """Mail the verification link."""
        await self.mail_service.send_verification_email(
            user.email, user.username, self.verification_link(token)
        )

    async def verify_user_email(self, token: str) -> UserDB:
        """
        Redeem a verification token.

        Args:
            token: Token from the verification link

        Returns:
            The verified user

        Raises:
            UnauthorizedError: INVALID_TOKEN for bad, expired or reused tokens
            BadRequestError: EMAIL_ALREADY_VERIFIED
        """
        metrics = get_app_metrics()
        try:
            payload = self.jwt_service.verify_verify_email_token(token)
            user_id = UUID(payload.sub)
        except (UnauthorizedError, ValueError):
            metrics.auth_events.labels(event="verify_email", outcome="invalid").inc()
            raise UnauthorizedError(ERROR_MESSAGES.INVALID_TOKEN)

        stored = await self.token_repo.get_active_by_token(user_id, token)
        if not stored:
            logger.warning("verification_token_reuse", user_id=str(user_id))
            await self.token_repo.delete_all_for_user(user_id)
            metrics.auth_events.labels(event="verify_email", outcome="reused").inc()
            raise UnauthorizedError(ERROR_MESSAGES.INVALID_TOKEN)

        async with self.user_repo.transaction() as conn:
            user = await self.user_repo.get_user_by_id(user_id, conn=conn)
            if not user:
                raise NotFoundError(ERROR_MESSAGES.USER_NOT_FOUND)
            if user.is_email_verified:
                raise BadRequestError(ERROR_MESSAGES.EMAIL_ALREADY_VERIFIED)

            await self.token_repo.delete_all_for_user(user_id, conn=conn)
            verified = await self.user_repo.mark_email_verified(user_id, conn=conn)

        metrics.auth_events.labels(event="verify_email", outcome="success").inc()
        logger.info("email_verified", user_id=str(user_id))
        return verified

    async def resend_verification_email(self, email: str) -> None:
        """
        Issue a new verification link.

        Raises:
            NotFoundError: Unknown email
            BadRequestError: Already verified or a link is still active
        """
        user = await self.user_repo.get_user_by_email(email)
        if not user:
            raise NotFoundError(ERROR_MESSAGES.USER_NOT_FOUND)

        token = await self.create_token(user)
        await self.send_verification_email(user, token)

"""
Password reset.

Reset tokens are random strings kept only in the cache:
``reset-password:{token}`` maps to the user and
``reset-password:user:{user_id}`` remembers the active token so a user has
at most one outstanding link.
"""

from uuid import UUID

import structlog

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES, RevocationReason
from api.src.errors import BadRequestError, BaseError, NotFoundError, UnauthorizedError
from api.src.repositories.user_repo import UserRepository
from api.src.services.cache_service import CacheService
from api.src.services.mail_service import MailService
from api.src.services.password_hasher import PasswordHasher
from api.src.services.refresh_token_service import RefreshTokenService
from shared.metrics import get_app_metrics
from shared.security.crypto import generate_secure_token

logger = structlog.get_logger(__name__)

TOKEN_KEY = "reset-password:{token}"
USER_KEY = "reset-password:user:{user_id}"


class ResetPasswordService:
    """Sends reset links and applies new passwords."""

    def __init__(
        self,
        user_repo: UserRepository,
        cache: CacheService,
        password_hasher: PasswordHasher,
        refresh_token_service: RefreshTokenService,
        mail_service: MailService,
        settings: Settings
    ):
        self.user_repo = user_repo
        self.cache = cache
        self.password_hasher = password_hasher
        self.refresh_token_service = refresh_token_service
        self.mail_service = mail_service
        self.settings = settings

    def reset_link(self, token: str) -> str:
        """Client page where the new password is entered."""
        return f"{self.settings.client_url}/password-reset/{token}"

    async def send_reset_email(self, email: str) -> None:
        """
        Start a password reset.

        Args:
            email: Account email

        Raises:
            NotFoundError: Unknown email
            UnauthorizedError: EMAIL_NOT_VERIFIED
            BadRequestError: RESET_LINK_SENT while a link is still active
        """
        user = await self.user_repo.get_user_by_email(email)
        if not user:
            raise NotFoundError(ERROR_MESSAGES.USER_NOT_FOUND)

        if not user.is_email_verified:
            raise UnauthorizedError(ERROR_MESSAGES.EMAIL_NOT_VERIFIED)

        user_key = USER_KEY.format(user_id=user.id)
        if await self.cache.get(user_key):
            raise BadRequestError(ERROR_MESSAGES.RESET_LINK_SENT)

        token = generate_secure_token()
        ttl = self.settings.reset_password_token_lifetime.total_seconds()
        await self.cache.set(TOKEN_KEY.format(token=token), {"user_id": str(user.id)}, ttl)
        await self.cache.set(user_key, token, ttl)

        logger.info("reset_token_created", user_id=str(user.id))
        try:
            await self.mail_service.send_reset_password_email(
                user.email, user.username, self.reset_link(token)
            )
        except BaseError:
            # an undelivered link must not block the next attempt
            await self.cache.delete(TOKEN_KEY.format(token=token))
            await self.cache.delete(user_key)
            raise

    async def verify_reset_token(self, token: str) -> UUID:
        """
        Resolve a reset token.

        Returns:
            ID of the user the token was issued to

        Raises:
            BadRequestError: INVALID_TOKEN for unknown or expired tokens
        """
        data = await self.cache.get(TOKEN_KEY.format(token=token))
        if not data or not data.get("user_id"):
            logger.warning("reset_token_invalid")
            raise BadRequestError(ERROR_MESSAGES.INVALID_TOKEN)

        return UUID(data["user_id"])

    async def reset_password(self, token: str, password: str) -> None:
        """
        Set a new password and sign the user out everywhere.

        Args:
            token: Reset token
            password: New password (already validated)
        """
        user_id = await self.verify_reset_token(token)
        password_hash = self.password_hasher.hash_password(password)

        async with self.user_repo.transaction() as conn:
            updated = await self.user_repo.update_password(user_id, password_hash, conn=conn)
            if not updated:
                raise NotFoundError(ERROR_MESSAGES.USER_NOT_FOUND)
            await self.refresh_token_service.revoke_all_user_tokens(
                user_id, RevocationReason.PASSWORD_RESET, conn=conn
            )

        await self.cache.delete(TOKEN_KEY.format(token=token))
        await self.cache.delete(USER_KEY.format(user_id=user_id))

        get_app_metrics().auth_events.labels(event="password_reset", outcome="success").inc()
        logger.info("password_reset", user_id=str(user_id))

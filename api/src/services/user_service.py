"""
User profile and password management.
"""

from typing import Optional
from uuid import UUID

import structlog

from api.src.constants import ERROR_MESSAGES, RevocationReason
from api.src.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from api.src.models.user import UserDB
from api.src.repositories.user_repo import UserRepository
from api.src.services.password_hasher import PasswordHasher
from api.src.services.refresh_token_service import RefreshTokenService

logger = structlog.get_logger(__name__)


class UserService:
    """Reads and updates user accounts."""

    def __init__(
        self,
        user_repo: UserRepository,
        password_hasher: PasswordHasher,
        refresh_token_service: RefreshTokenService
    ):
        self.user_repo = user_repo
        self.password_hasher = password_hasher
        self.refresh_token_service = refresh_token_service

    async def get_user_by_id(self, user_id: UUID) -> UserDB:
        """
        Get a user.

        Raises:
            NotFoundError: USER_NOT_FOUND
        """
        user = await self.user_repo.get_user_by_id(user_id)
        if not user:
            raise NotFoundError(ERROR_MESSAGES.USER_NOT_FOUND)
        return user

    async def get_user_by_email(self, email: str) -> Optional[UserDB]:
        """Get a user by email, or None."""
        return await self.user_repo.get_user_by_email(email)

    async def update_user(
        self,
        user_id: UUID,
        username: Optional[str] = None,
        email: Optional[str] = None,
        profile_picture: Optional[str] = None
    ) -> UserDB:
        """
        Update profile fields. Only supplied fields change.

        Args:
            user_id: User ID
            username: New display name (optional)
            email: New email (optional)
            profile_picture: New picture URL (optional)

        Returns:
            Updated user

        Raises:
            ConflictError: Email belongs to another user
            NotFoundError: Unknown user
        """
        if username is None and email is None and profile_picture is None:
            return await self.get_user_by_id(user_id)

        if email is not None:
            owner = await self.user_repo.get_user_by_email(email)
            if owner and owner.id != user_id:
                logger.warning("email_taken", user_id=str(user_id))
                raise ConflictError(ERROR_MESSAGES.EMAIL_ALREADY_EXISTS)

        user = await self.user_repo.update_user(
            user_id,
            username=username,
            email=email,
            profile_picture=profile_picture
        )
        if not user:
            raise NotFoundError(ERROR_MESSAGES.USER_NOT_FOUND)

        logger.info("user_updated", user_id=str(user_id))
        return user

    async def update_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str
    ) -> None:
        """
        Change a password and sign the user out of every session.

        Raises:
            NotFoundError: Unknown user
            ForbiddenError: INVALID_CREDENTIALS when the current password is wrong
            BadRequestError: PASSWORD_SAME_AS_CURRENT
        """
        user = await self.get_user_by_id(user_id)

        if not self.password_hasher.verify_password(current_password, user.password):
            logger.warning("password_change_invalid_current", user_id=str(user_id))
            raise ForbiddenError(ERROR_MESSAGES.INVALID_CREDENTIALS)

        if self.password_hasher.verify_password(new_password, user.password):
            raise BadRequestError(ERROR_MESSAGES.PASSWORD_SAME_AS_CURRENT)

        password_hash = self.password_hasher.hash_password(new_password)

        async with self.user_repo.transaction() as conn:
            await self.user_repo.update_password(user_id, password_hash, conn=conn)
            await self.refresh_token_service.revoke_all_user_tokens(
                user_id, RevocationReason.PASSWORD_CHANGED, conn=conn
            )

        logger.info("password_changed", user_id=str(user_id))

"""
Authentication service for local (email + password) accounts.

Provides:
- Registration with email verification
- Login issuing an access token and a refresh token
- Logout revoking the refresh token
"""

from typing import Optional, Tuple

import structlog

from api.src.constants import ERROR_MESSAGES, RevocationReason
from api.src.errors import ForbiddenError, NotFoundError, UnauthorizedError
from api.src.models.auth import ClientContext, TokenPair
from api.src.models.user import UserDB
from api.src.repositories.user_repo import UserRepository
from api.src.services.jwt_service import JwtService
from api.src.services.password_hasher import PasswordHasher
from api.src.services.refresh_token_service import RefreshTokenService
from api.src.services.verify_email_service import VerifyEmailService
from shared.metrics import get_app_metrics

logger = structlog.get_logger(__name__)

CREDENTIALS_PROVIDER = "credentials"


class AuthService:
    """Service for local authentication operations."""

    def __init__(
        self,
        user_repo: UserRepository,
        password_hasher: PasswordHasher,
        jwt_service: JwtService,
        refresh_token_service: RefreshTokenService,
        verify_email_service: VerifyEmailService
    ):
        """
        Initialize auth service.

        Args:
            user_repo: User repository
            password_hasher: bcrypt hasher
            jwt_service: JWT signer
            refresh_token_service: Refresh token lifecycle
            verify_email_service: Email verification
        """
        self.user_repo = user_repo
        self.password_hasher = password_hasher
        self.jwt_service = jwt_service
        self.refresh_token_service = refresh_token_service
        self.verify_email_service = verify_email_service

    async def register(self, username: str, email: str, password: str) -> UserDB:
        """
        Create an account and mail its verification link.

        The user, its credentials account and the verification token are
        written in one transaction; the mail goes out only after commit.

        Args:
            username: Display name
            email: Email address
            password: Plain text password (already validated)

        Returns:
            The new, unverified user

        Raises:
            ConflictError: EMAIL_ALREADY_EXISTS
        """
        metrics = get_app_metrics()
        password_hash = self.password_hasher.hash_password(password)

        try:
            async with self.user_repo.transaction() as conn:
                user = await self.user_repo.create_user(
                    username=username,
                    email=email,
                    password_hash=password_hash,
                    conn=conn
                )
                await self.user_repo.create_account(
                    user.id,
                    CREDENTIALS_PROVIDER,
                    user.email,
                    account_type="email",
                    conn=conn
                )
                token = await self.verify_email_service.create_token(user, conn=conn)
        except Exception:
            metrics.auth_events.labels(event="register", outcome="failure").inc()
            raise

        await self.verify_email_service.send_verification_email(user, token)

        metrics.auth_events.labels(event="register", outcome="success").inc()
        logger.info("user_registered", user_id=str(user.id))
        return user

    async def authenticate_user(self, email: str, password: str) -> UserDB:
        """
        Check credentials.

        Raises:
            NotFoundError: Unknown email
            UnauthorizedError: EMAIL_NOT_VERIFIED
            ForbiddenError: INVALID_CREDENTIALS (wrong password, or an
                OAuth-only account without one)
        """
        user = await self.user_repo.get_user_by_email(email)

        if not user:
            logger.warning("authentication_failed_user_not_found")
            raise NotFoundError(ERROR_MESSAGES.RESOURCE_NOT_FOUND)

        if not user.is_email_verified:
            logger.warning("authentication_failed_email_not_verified", user_id=str(user.id))
            raise UnauthorizedError(ERROR_MESSAGES.EMAIL_NOT_VERIFIED)

        if not self.password_hasher.verify_password(password, user.password):
            logger.warning("authentication_failed_invalid_password", user_id=str(user.id))
            raise ForbiddenError(ERROR_MESSAGES.INVALID_CREDENTIALS)

        return user

    async def login(
        self,
        email: str,
        password: str,
        device_id: str,
        ip_address: str,
        client_context: Optional[ClientContext] = None
    ) -> Tuple[UserDB, TokenPair]:
        """
        Login user and issue tokens.

        Args:
            email: Email address
            password: Plain text password
            device_id: Client device id
            ip_address: Client IP address
            client_context: User agent details

        Returns:
            (user, token pair)
        """
        metrics = get_app_metrics()
        try:
            user = await self.authenticate_user(email, password)
        except Exception:
            metrics.auth_events.labels(event="login", outcome="failure").inc()
            raise

        access_token = self.jwt_service.generate_access_token(user.id)
        refresh_token = await self.refresh_token_service.create_token(
            user.id, device_id, ip_address, client_context
        )

        metrics.auth_events.labels(event="login", outcome="success").inc()
        logger.info("login_success", user_id=str(user.id))

        return user, TokenPair(access_token=access_token, refresh_token=refresh_token)

    async def logout(self, refresh_token: str) -> None:
        """
        Revoke the session's refresh token.

        Raises:
            UnauthorizedError: If the token is unknown
        """
        user_id = await self.refresh_token_service.revoke_token(
            refresh_token, RevocationReason.USER_LOGOUT
        )
        get_app_metrics().auth_events.labels(event="logout", outcome="success").inc()
        logger.info("logout_success", user_id=str(user_id))

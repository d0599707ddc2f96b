"""
JWT signing and verification (python-jose).

Three token kinds are issued, each with its own secret and lifetime:
access tokens, refresh tokens and email verification tokens. The ``type``
claim is checked on verification so one kind is never accepted as another.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from jose import ExpiredSignatureError, JWTError, jwt

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES
from api.src.errors import UnauthorizedError
from api.src.models.auth import TokenPayload

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
VERIFY_EMAIL_TOKEN_TYPE = "verify_email"


class JwtService:
    """Signs and verifies the service's JWTs."""

    def __init__(self, settings: Settings):
        """
        Initialize JWT service.

        Args:
            settings: Application settings (secrets, lifetimes, algorithm)
        """
        self.settings = settings
        self.algorithm = settings.jwt_algorithm

    def _sign(
        self,
        user_id: str,
        token_type: str,
        secret: str,
        lifetime: timedelta,
        with_jti: bool = False
    ) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
        }
        if with_jti:
            payload["jti"] = uuid.uuid4().hex

        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def _verify(self, token: str, token_type: str, secret: str) -> TokenPayload:
        try:
            claims = jwt.decode(token, secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.debug("token_expired", token_type=token_type)
            raise UnauthorizedError(ERROR_MESSAGES.EXPIRED_TOKEN)
        except JWTError as e:
            logger.warning("token_decode_failed", token_type=token_type, error=str(e))
            raise UnauthorizedError(ERROR_MESSAGES.INVALID_TOKEN)

        if claims.get("type") != token_type or not claims.get("sub"):
            logger.warning("token_type_mismatch", expected=token_type, actual=claims.get("type"))
            raise UnauthorizedError(ERROR_MESSAGES.INVALID_TOKEN)

        return TokenPayload(**claims)

    # ========================================================================
    # Access tokens
    # ========================================================================

    def generate_access_token(self, user_id) -> str:
        """
        Create an access token.

        Args:
            user_id: User ID

        Returns:
            Signed JWT
        """
        return self._sign(
            user_id,
            ACCESS_TOKEN_TYPE,
            self.settings.access_token_secret,
            self.settings.access_token_lifetime
        )

    def verify_access_token(self, token: str) -> TokenPayload:
        """
        Verify an access token.

        Args:
            token: Signed JWT

        Returns:
            Token claims

        Raises:
            UnauthorizedError: EXPIRED_TOKEN or INVALID_TOKEN
        """
        return self._verify(token, ACCESS_TOKEN_TYPE, self.settings.access_token_secret)

    @property
    def access_token_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self.settings.access_token_lifetime.total_seconds())

    # ========================================================================
    # Refresh tokens
    # ========================================================================

    def generate_refresh_token(self, user_id) -> str:
        """
        Create a refresh token. Each carries a unique ``jti`` so two tokens
        issued in the same second never collide.
        """
        return self._sign(
            user_id,
            REFRESH_TOKEN_TYPE,
            self.settings.refresh_token_secret,
            self.settings.refresh_token_lifetime,
            with_jti=True
        )

    def verify_refresh_token(self, token: str) -> TokenPayload:
        """Verify a refresh token's signature, expiry and type."""
        return self._verify(token, REFRESH_TOKEN_TYPE, self.settings.refresh_token_secret)

    # ========================================================================
    # Email verification tokens
    # ========================================================================

    def generate_verify_email_token(self, user_id) -> str:
        """Create an email verification token."""
        return self._sign(
            user_id,
            VERIFY_EMAIL_TOKEN_TYPE,
            self.settings.verify_email_token_secret,
            self.settings.verify_email_token_lifetime,
            with_jti=True
        )

    def verify_verify_email_token(self, token: str) -> TokenPayload:
        """Verify an email verification token."""
        return self._verify(token, VERIFY_EMAIL_TOKEN_TYPE, self.settings.verify_email_token_secret)


def is_token_expiring_soon(
    payload: TokenPayload,
    threshold_seconds: int,
    now: Optional[datetime] = None
) -> bool:
    """
    Whether a token expires within ``threshold_seconds``.

    Args:
        payload: Token claims
        threshold_seconds: Refresh window in seconds
        now: Reference time (defaults to now, UTC)

    Returns:
        True if the token expires inside the window (or already expired)
    """
    now = now or datetime.now(timezone.utc)
    return payload.exp - int(now.timestamp()) <= threshold_seconds

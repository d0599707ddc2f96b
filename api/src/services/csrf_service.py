"""
CSRF token generation and validation.

Tokens are self-validating double-submit tokens bound to the client's
session id:

    {base36(expiry_ms)}.{base64url(hmac_sha256(secret, "{session_id}|{expiry_ms}"))}

No server-side storage is needed; the same token is sent both as the
``csrf_token`` cookie and in the ``X-CSRF-Token`` header.
"""

import string
import time
from typing import Optional

import structlog

from shared.security.crypto import generate_hmac_base64url, timing_safe_equal

logger = structlog.get_logger(__name__)

_BASE36_DIGITS = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    """Encode a non-negative integer in base 36 (lowercase)."""
    if value < 0:
        raise ValueError("Value must be non-negative")
    if value == 0:
        return "0"

    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


class CsrfService:
    """Issues and checks CSRF tokens."""

    def __init__(self, secret: str, ttl_seconds: int = 24 * 60 * 60):
        """
        Initialize CSRF service.

        Args:
            secret: HMAC key
            ttl_seconds: Token lifetime
        """
        self.secret = secret
        self.ttl_ms = ttl_seconds * 1000

    def _sign(self, session_id: str, expires_at_ms: int) -> str:
        return generate_hmac_base64url(f"{session_id}|{expires_at_ms}", self.secret)

    def generate_token(self, session_id: str, now_ms: Optional[int] = None) -> str:
        """
        Create a token bound to a session.

        Args:
            session_id: Client session identifier
            now_ms: Current time in epoch milliseconds (defaults to now)

        Returns:
            CSRF token
        """
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        expires_at_ms = now_ms + self.ttl_ms
        return f"{to_base36(expires_at_ms)}.{self._sign(session_id, expires_at_ms)}"

    def validate_token(
        self,
        token: Optional[str],
        session_id: Optional[str],
        now_ms: Optional[int] = None
    ) -> bool:
        """
        Check a token against a session.

        Args:
            token: Token sent by the client
            session_id: Client session identifier
            now_ms: Current time in epoch milliseconds (defaults to now)

        Returns:
            True if the token is well formed, unexpired and correctly signed
        """
        if not token or not session_id:
            return False

        expiry_part, _, signature = token.partition(".")
        if not expiry_part or not signature:
            return False

        try:
            expires_at_ms = int(expiry_part, 36)
        except ValueError:
            return False

        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        if now_ms > expires_at_ms:
            logger.debug("csrf_token_expired")
            return False

        return timing_safe_equal(signature, self._sign(session_id, expires_at_ms))

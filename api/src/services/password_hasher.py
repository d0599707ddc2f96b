"""
Password hashing (passlib + bcrypt).
"""

from typing import Optional

import structlog
from passlib.context import CryptContext

logger = structlog.get_logger(__name__)


class PasswordHasher:
    """bcrypt hashing shared by registration, login and password changes."""

    def __init__(self, rounds: int = 12):
        """
        Initialize hasher.

        Args:
            rounds: bcrypt cost factor
        """
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds
        )

    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password
        """
        hashed = self.pwd_context.hash(password)
        logger.debug("password_hashed")
        return hashed

    def verify_password(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        """
        Verify a password against its hash.

        Args:
            plain_password: Plain text password
            hashed_password: Stored hash (None for OAuth-only users)

        Returns:
            True if password matches, False otherwise
        """
        if not hashed_password:
            return False

        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except ValueError as e:
            logger.error("password_verify_failed", error=str(e))
            return False

"""
User repository for database operations.

Provides async CRUD operations for users and their linked OAuth accounts
using asyncpg with PostgreSQL.
"""

import asyncpg
import structlog
from typing import Optional
from uuid import UUID

from api.src.constants import ERROR_MESSAGES
from api.src.errors import ConflictError, DatabaseError
from api.src.models.user import AccountDB, UserDB, normalize_email
from api.src.repositories.base import BaseRepository, rows_affected

logger = structlog.get_logger(__name__)

_USER_COLUMNS = (
    "id, username, email, password, profile_picture, is_email_verified, "
    "created_at, updated_at"
)


def _to_user(row: asyncpg.Record) -> UserDB:
    return UserDB(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        password=row["password"],
        profile_picture=row["profile_picture"],
        is_email_verified=row["is_email_verified"],
        created_at=row["created_at"],
        updated_at=row["updated_at"]
    )


class UserRepository(BaseRepository):
    """Repository for user database operations."""

    async def create_user(
        self,
        username: str,
        email: str,
        password_hash: Optional[str],
        is_email_verified: bool = False,
        profile_picture: Optional[str] = None,
        conn: Optional[asyncpg.Connection] = None
    ) -> UserDB:
        """
        Create a new user.

        Args:
            username: Display name
            email: Email address (stored lowercased)
            password_hash: Hashed password (None for OAuth-only users)
            is_email_verified: Verification status
            profile_picture: Profile picture URL
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Created user

        Raises:
            ConflictError: If the email already exists in any letter case
            DatabaseError: On database error
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    INSERT INTO users (username, email, password, profile_picture,
                                       is_email_verified, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, NOW(), NOW())
                    RETURNING {_USER_COLUMNS}
                    """,
                    username,
                    normalize_email(email),
                    password_hash,
                    profile_picture,
                    is_email_verified
                )

                logger.info("user_created", user_id=str(row["id"]))
                return _to_user(row)

        except asyncpg.UniqueViolationError:
            logger.warning("email_already_exists", email=email)
            raise ConflictError(ERROR_MESSAGES.EMAIL_ALREADY_EXISTS)
        except asyncpg.PostgresError as e:
            logger.error("user_create_failed", error=str(e))
            raise DatabaseError("Failed to create user") from e

    async def get_user_by_id(
        self,
        user_id: UUID,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[UserDB]:
        """
        Get user by ID.

        Args:
            user_id: User ID
            conn: Connection of an enclosing transaction (optional)

        Returns:
            User or None if not found
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    SELECT {_USER_COLUMNS}
                    FROM users
                    WHERE id = $1
                    """,
                    user_id
                )

                if not row:
                    logger.debug("user_not_found", user_id=str(user_id))
                    return None

                return _to_user(row)

        except asyncpg.PostgresError as e:
            logger.error("user_get_by_id_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to fetch user") from e

    async def get_user_by_email(
        self,
        email: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[UserDB]:
        """
        Get user by email (case-insensitive).

        Args:
            email: Email address
            conn: Connection of an enclosing transaction (optional)

        Returns:
            User or None if not found
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    SELECT {_USER_COLUMNS}
                    FROM users
                    WHERE lower(email) = lower($1)
                    """,
                    email
                )

                if not row:
                    logger.debug("user_not_found_by_email")
                    return None

                return _to_user(row)

        except asyncpg.PostgresError as e:
            logger.error("user_get_by_email_failed", error=str(e))
            raise DatabaseError("Failed to fetch user") from e

    async def update_user(
        self,
        user_id: UUID,
        username: Optional[str] = None,
        email: Optional[str] = None,
        profile_picture: Optional[str] = None,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[UserDB]:
        """
        Update profile fields. Only non-None arguments are written.

        Args:
            user_id: User ID
            username: New display name (optional)
            email: New email (optional)
            profile_picture: New profile picture URL (optional)
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Updated user or None if not found

        Raises:
            ConflictError: If the email already exists
        """
        updates = []
        params = []
        param_count = 1

        if username is not None:
            updates.append(f"username = ${param_count}")
            params.append(username)
            param_count += 1

        if email is not None:
            updates.append(f"email = ${param_count}")
            params.append(normalize_email(email))
            param_count += 1

        if profile_picture is not None:
            updates.append(f"profile_picture = ${param_count}")
            params.append(profile_picture)
            param_count += 1

        if not updates:
            return await self.get_user_by_id(user_id, conn=conn)

        updates.append("updated_at = NOW()")
        params.append(user_id)

        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    UPDATE users
                    SET {', '.join(updates)}
                    WHERE id = ${param_count}
                    RETURNING {_USER_COLUMNS}
                    """,
                    *params
                )

                if not row:
                    logger.debug("user_not_found", user_id=str(user_id))
                    return None

                logger.info("user_updated", user_id=str(user_id))
                return _to_user(row)

        except asyncpg.UniqueViolationError:
            logger.warning("email_already_exists", user_id=str(user_id))
            raise ConflictError(ERROR_MESSAGES.EMAIL_ALREADY_EXISTS)
        except asyncpg.PostgresError as e:
            logger.error("user_update_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to update user") from e

    async def update_password(
        self,
        user_id: UUID,
        password_hash: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> bool:
        """
        Replace the password hash.

        Args:
            user_id: User ID
            password_hash: New bcrypt hash
            conn: Connection of an enclosing transaction (optional)

        Returns:
            True if the user exists and was updated
        """
        try:
            async with self.connection(conn) as db:
                result = await db.execute(
                    """
                    UPDATE users
                    SET password = $1, updated_at = NOW()
                    WHERE id = $2
                    """,
                    password_hash,
                    user_id
                )

                updated = rows_affected(result) == 1
                if updated:
                    logger.info("user_password_updated", user_id=str(user_id))
                return updated

        except asyncpg.PostgresError as e:
            logger.error("user_password_update_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to update password") from e

    async def mark_email_verified(
        self,
        user_id: UUID,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[UserDB]:
        """
        Set is_email_verified for a user.

        Args:
            user_id: User ID
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Updated user or None if not found
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    UPDATE users
                    SET is_email_verified = TRUE, updated_at = NOW()
                    WHERE id = $1
                    RETURNING {_USER_COLUMNS}
                    """,
                    user_id
                )

                if not row:
                    return None

                logger.info("user_email_verified", user_id=str(user_id))
                return _to_user(row)

        except asyncpg.PostgresError as e:
            logger.error("user_verify_email_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to verify email") from e

    # ========================================================================
    # OAuth accounts
    # ========================================================================

    async def get_account_by_provider(
        self,
        provider: str,
        provider_account_id: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[AccountDB]:
        """
        Find the account linked to an identity provider user.

        Args:
            provider: Provider name (e.g. "google")
            provider_account_id: Provider's user id
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Account or None if not linked
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    """
                    SELECT id, user_id, provider, provider_account_id, type, created_at
                    FROM accounts
                    WHERE provider = $1 AND provider_account_id = $2
                    """,
                    provider,
                    provider_account_id
                )

                return AccountDB(**dict(row)) if row else None

        except asyncpg.PostgresError as e:
            logger.error("account_get_failed", error=str(e), provider=provider)
            raise DatabaseError("Failed to fetch account") from e

    async def create_account(
        self,
        user_id: UUID,
        provider: str,
        provider_account_id: str,
        account_type: str = "oauth",
        conn: Optional[asyncpg.Connection] = None
    ) -> AccountDB:
        """
        Link an identity provider account to a user.

        Args:
            user_id: User ID
            provider: Provider name
            provider_account_id: Provider's user id
            account_type: Account type
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Created account

        Raises:
            ConflictError: If the provider account is already linked
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    """
                    INSERT INTO accounts (user_id, provider, provider_account_id, type, created_at)
                    VALUES ($1, $2, $3, $4, NOW())
                    RETURNING id, user_id, provider, provider_account_id, type, created_at
                    """,
                    user_id,
                    provider,
                    provider_account_id,
                    account_type
                )

                logger.info("account_linked", user_id=str(user_id), provider=provider)
                return AccountDB(**dict(row))

        except asyncpg.UniqueViolationError:
            logger.warning("account_already_linked", provider=provider)
            raise ConflictError("This account is already linked to another user.")
        except asyncpg.PostgresError as e:
            logger.error("account_create_failed", error=str(e), provider=provider)
            raise DatabaseError("Failed to link account") from e

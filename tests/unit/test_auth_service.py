"""
Unit tests for local authentication and the refresh token lifecycle.

Tests cover:
- Password hashing
- Registration, login and logout
- Refresh token rotation, reuse and context mismatch
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from api.src.constants import ERROR_MESSAGES, RevocationReason
from api.src.errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from api.src.models.auth import ClientContext, RefreshTokenDB
from api.src.repositories.refresh_token_repo import RefreshTokenRepository
from api.src.repositories.user_repo import UserRepository
from api.src.services import (
    AuthService,
    PasswordHasher,
    RefreshTokenService,
    VerifyEmailService,
)
from shared.security.crypto import hash_data

PASSWORD = "SecurePassword123!"


# ============================================================================
# PYTEST FIXTURES
# ============================================================================


@pytest.fixture(scope="module")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture(scope="module")
def password_hash(hasher: PasswordHasher) -> str:
    return hasher.hash_password(PASSWORD)


@pytest.fixture
def user_repo(attach_transaction):
    repo = AsyncMock(spec=UserRepository)
    attach_transaction(repo)
    return repo


@pytest.fixture
def token_repo(attach_transaction):
    repo = AsyncMock(spec=RefreshTokenRepository)
    attach_transaction(repo)
    return repo


@pytest.fixture
def refresh_service(token_repo, jwt_service, settings) -> RefreshTokenService:
    return RefreshTokenService(token_repo, jwt_service, settings)


@pytest.fixture
def auth_service(user_repo, hasher, jwt_service) -> AuthService:
    return AuthService(
        user_repo,
        hasher,
        jwt_service,
        AsyncMock(spec=RefreshTokenService),
        AsyncMock(spec=VerifyEmailService),
    )


def _token_record(user_id, token, device_id="device-1", ip="10.0.0.1", **overrides):
    values = {
        "id": uuid4(),
        "user_id": user_id,
        "token": hash_data(token),
        "device_id": hash_data(device_id),
        "ip_address": hash_data(ip),
        "revoked": False,
        "expires_at": datetime.now(timezone.utc) + timedelta(days=1),
        "created_at": datetime.now(timezone.utc),
    }
    values.update(overrides)
    return RefreshTokenDB(**values)


# ============================================================================
# PASSWORD HASHING
# ============================================================================


class TestPasswordHashing:
    """Tests for bcrypt hashing."""

    def test_hash_is_not_plain_text(self, password_hash: str):
        """Test the stored hash never equals the password."""
        assert password_hash != PASSWORD
        assert password_hash.startswith("$2b$")

    def test_verify(self, hasher: PasswordHasher, password_hash: str):
        """Test the right password verifies and a wrong one does not."""
        assert hasher.verify_password(PASSWORD, password_hash)
        assert not hasher.verify_password("WrongPassword123!", password_hash)

    def test_missing_hash(self, hasher: PasswordHasher):
        """Test OAuth-only users (no hash) never verify."""
        assert not hasher.verify_password(PASSWORD, None)

    def test_malformed_hash(self, hasher: PasswordHasher):
        """Test a corrupt hash fails verification instead of raising."""
        assert not hasher.verify_password(PASSWORD, "not-a-bcrypt-hash")


# ============================================================================
# AUTH SERVICE
# ============================================================================


class TestRegister:
    """Tests for AuthService.register."""

    @pytest.mark.asyncio
    async def test_creates_user_account_and_token(self, auth_service, user_repo, user_factory):
        """Test user, credentials account and token are written, then mail is sent."""
        user = user_factory(is_email_verified=False)
        user_repo.create_user.return_value = user
        auth_service.verify_email_service.create_token.return_value = "verify-token"

        result = await auth_service.register("jane_doe", "jane@example.com", PASSWORD)

        assert result == user
        kwargs = user_repo.create_user.await_args.kwargs
        assert kwargs["email"] == "jane@example.com"
        assert kwargs["password_hash"] != PASSWORD
        user_repo.create_account.assert_awaited_once()
        assert user_repo.create_account.await_args.args[1] == "credentials"
        auth_service.verify_email_service.send_verification_email.assert_awaited_once_with(
            user, "verify-token"
        )

    @pytest.mark.asyncio
    async def test_duplicate_email(self, auth_service, user_repo):
        """Test a conflict aborts before any mail is sent."""
        user_repo.create_user.side_effect = ConflictError(ERROR_MESSAGES.EMAIL_ALREADY_EXISTS)

        with pytest.raises(ConflictError):
            await auth_service.register("jane_doe", "jane@example.com", PASSWORD)

        auth_service.verify_email_service.send_verification_email.assert_not_awaited()


class TestLogin:
    """Tests for AuthService.login."""

    @pytest.mark.asyncio
    async def test_success(self, auth_service, user_repo, user_factory, password_hash, jwt_service):
        """Test valid credentials issue an access and a refresh token."""
        user = user_factory(password=password_hash)
        user_repo.get_user_by_email.return_value = user
        auth_service.refresh_token_service.create_token.return_value = "refresh-token"

        result, tokens = await auth_service.login(
            "jane@example.com", PASSWORD, "device-1", "10.0.0.1", ClientContext()
        )

        assert result == user
        assert tokens.refresh_token == "refresh-token"
        assert jwt_service.verify_access_token(tokens.access_token).sub == str(user.id)
        auth_service.refresh_token_service.create_token.assert_awaited_once_with(
            user.id, "device-1", "10.0.0.1", ClientContext()
        )

    @pytest.mark.asyncio
    async def test_unknown_email(self, auth_service, user_repo):
        """Test an unknown email raises NotFoundError."""
        user_repo.get_user_by_email.return_value = None

        with pytest.raises(NotFoundError):
            await auth_service.login("nobody@example.com", PASSWORD, "d", "ip")

    @pytest.mark.asyncio
    async def test_unverified_email(self, auth_service, user_repo, user_factory, password_hash):
        """Test unverified users cannot log in."""
        user_repo.get_user_by_email.return_value = user_factory(
            password=password_hash, is_email_verified=False
        )

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.login("jane@example.com", PASSWORD, "d", "ip")

        assert exc_info.value.message == ERROR_MESSAGES.EMAIL_NOT_VERIFIED

    @pytest.mark.asyncio
    async def test_wrong_password(self, auth_service, user_repo, user_factory, password_hash):
        """Test a wrong password raises ForbiddenError."""
        user_repo.get_user_by_email.return_value = user_factory(password=password_hash)

        with pytest.raises(ForbiddenError) as exc_info:
            await auth_service.login("jane@example.com", "WrongPassword1!", "d", "ip")

        assert exc_info.value.message == ERROR_MESSAGES.INVALID_CREDENTIALS
        auth_service.refresh_token_service.create_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oauth_only_account(self, auth_service, user_repo, user_factory):
        """Test a user without a password cannot use credentials login."""
        user_repo.get_user_by_email.return_value = user_factory(password=None)

        with pytest.raises(ForbiddenError):
            await auth_service.login("jane@example.com", PASSWORD, "d", "ip")

    @pytest.mark.asyncio
    async def test_logout_revokes(self, auth_service):
        """Test logout revokes the presented refresh token."""
        auth_service.refresh_token_service.revoke_token.return_value = uuid4()

        await auth_service.logout("refresh-token")

        auth_service.refresh_token_service.revoke_token.assert_awaited_once_with(
            "refresh-token", RevocationReason.USER_LOGOUT
        )


# ============================================================================
# REFRESH TOKEN SERVICE
# ============================================================================


class TestRefreshTokenService:
    """Tests for refresh token creation, rotation and revocation."""

    @pytest.mark.asyncio
    async def test_create_stores_digests_only(self, refresh_service, token_repo, jwt_service):
        """Test the raw token, device id and IP are never stored."""
        user_id = uuid4()

        token = await refresh_service.create_token(user_id, "device-1", "10.0.0.1")

        kwargs = token_repo.create_token.await_args.kwargs
        assert kwargs["token_hash"] == hash_data(token)
        assert kwargs["device_id_hash"] == hash_data("device-1")
        assert kwargs["ip_address_hash"] == hash_data("10.0.0.1")
        assert kwargs["expires_at"] > datetime.now(timezone.utc)
        assert jwt_service.verify_refresh_token(token).sub == str(user_id)

    @pytest.mark.asyncio
    async def test_rotation(self, refresh_service, token_repo, jwt_service):
        """Test a valid token is revoked and replaced."""
        user_id = uuid4()
        record = _token_record(user_id, "old-token")
        token_repo.get_by_token_hash.return_value = record
        token_repo.revoke_token.return_value = True

        access, refresh = await refresh_service.refresh_token("old-token", "device-1", "10.0.0.1")

        assert refresh != "old-token"
        assert jwt_service.verify_access_token(access).sub == str(user_id)
        assert token_repo.revoke_token.await_args.args[:2] == (
            record.id, RevocationReason.TOKEN_REFRESHING
        )
        token_repo.create_token.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_token(self, refresh_service, token_repo):
        """Test an unknown token is rejected."""
        token_repo.get_by_token_hash.return_value = None

        with pytest.raises(UnauthorizedError):
            await refresh_service.refresh_token("nope", "device-1", "10.0.0.1")

    @pytest.mark.asyncio
    async def test_revoked_token(self, refresh_service, token_repo):
        """Test a revoked token is rejected without rotation."""
        token_repo.get_by_token_hash.return_value = _token_record(uuid4(), "t", revoked=True)

        with pytest.raises(UnauthorizedError):
            await refresh_service.refresh_token("t", "device-1", "10.0.0.1")

        token_repo.create_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_token(self, refresh_service, token_repo):
        """Test an expired token is rejected."""
        token_repo.get_by_token_hash.return_value = _token_record(
            uuid4(), "t", expires_at=datetime.now(timezone.utc) - timedelta(seconds=1)
        )

        with pytest.raises(UnauthorizedError):
            await refresh_service.refresh_token("t", "device-1", "10.0.0.1")

    @pytest.mark.asyncio
    async def test_device_mismatch_revokes_everything(self, refresh_service, token_repo):
        """Test a token used from another device revokes all of the user's tokens."""
        user_id = uuid4()
        token_repo.get_by_token_hash.return_value = _token_record(user_id, "t")

        with pytest.raises(UnauthorizedError):
            await refresh_service.refresh_token("t", "other-device", "10.0.0.1")

        token_repo.revoke_all_for_user.assert_awaited_once()
        assert token_repo.revoke_all_for_user.await_args.args[:2] == (
            user_id, RevocationReason.SUSPICIOUS_ACTIVITY
        )
        token_repo.create_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ip_mismatch_revokes_everything(self, refresh_service, token_repo):
        """Test a token used from another address is treated as stolen."""
        token_repo.get_by_token_hash.return_value = _token_record(uuid4(), "t")

        with pytest.raises(UnauthorizedError):
            await refresh_service.refresh_token("t", "device-1", "192.168.1.1")

        token_repo.revoke_all_for_user.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_rotation_loses(self, refresh_service, token_repo):
        """Test a token already revoked by a concurrent refresh is rejected."""
        token_repo.get_by_token_hash.return_value = _token_record(uuid4(), "t")
        token_repo.revoke_token.return_value = False

        with pytest.raises(UnauthorizedError):
            await refresh_service.refresh_token("t", "device-1", "10.0.0.1")

        token_repo.create_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_revoke_unknown_token(self, refresh_service, token_repo):
        """Test revoking an unknown token raises UnauthorizedError."""
        token_repo.get_by_token_hash.return_value = None

        with pytest.raises(UnauthorizedError):
            await refresh_service.revoke_token("t", RevocationReason.USER_LOGOUT)

    @pytest.mark.asyncio
    async def test_delete_expired(self, refresh_service, token_repo):
        """Test cleanup delegates to the repository."""
        token_repo.delete_expired.return_value = 3

        assert await refresh_service.delete_expired_tokens() == 3

"""
Integration tests for the profile routes and the ``require_user`` guard.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from api.src.constants import ERROR_MESSAGES
from api.src.errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError

API = "/api/v1"

PASSWORD_CHANGE = {"currentPassword": "SecurePassword123!", "newPassword": "NewPassword456!"}


def _set_cookies(response) -> str:
    return "\n".join(response.headers.get_list("set-cookie"))


def _access_token(settings, user_id, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": str(user_id),
            "type": "access",
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
        },
        settings.access_token_secret,
        algorithm=settings.jwt_algorithm,
    )


# ============================================================================
# AUTHENTICATION GUARD
# ============================================================================


class TestRequireUser:
    """Tests for access token handling on protected routes."""

    def test_no_credentials(self, client, services):
        """Test requests without tokens are 401 and clear the cookies."""
        response = client.get(f"{API}/users/me")

        assert response.status_code == 401
        assert response.json()["name"] == "UnauthorizedError"
        assert "Max-Age=0" in _set_cookies(response)
        services.user.get_user_by_id.assert_not_awaited()

    def test_bearer_header(self, client, services, auth_headers, user_id, user_factory):
        """Test a bearer access token identifies the user."""
        services.user.get_user_by_id.return_value = user_factory(id=user_id)

        response = client.get(f"{API}/users/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["id"] == str(user_id)
        services.user.get_user_by_id.assert_awaited_once_with(user_id)

    def test_access_cookie(self, client, services, jwt_service, user_id, user_factory):
        """Test the access token cookie is accepted."""
        services.user.get_user_by_id.return_value = user_factory(id=user_id)
        client.cookies.set("access_token", jwt_service.generate_access_token(user_id))

        response = client.get(f"{API}/users/me")

        assert response.status_code == 200
        services.refresh_token.refresh_token.assert_not_awaited()

    def test_refresh_token_not_accepted_as_access(self, client, jwt_service, user_id):
        """Test a refresh token cannot be used as a bearer token."""
        refresh_token = jwt_service.generate_refresh_token(user_id)

        response = client.get(
            f"{API}/users/me", headers={"Authorization": f"Bearer {refresh_token}"}
        )

        assert response.status_code == 401

    def test_silent_refresh(self, client, services, jwt_service, settings, user_id, user_factory):
        """Test an expired access token is renewed with the refresh cookie."""
        expired = _access_token(settings, user_id, timedelta(seconds=-5))
        fresh = jwt_service.generate_access_token(user_id)
        services.refresh_token.refresh_token.return_value = (fresh, "refresh-2")
        services.user.get_user_by_id.return_value = user_factory(id=user_id)
        client.cookies.set("access_token", expired)
        client.cookies.set("refresh_token", "refresh-1")

        response = client.get(f"{API}/users/me")

        assert response.status_code == 200
        cookies = _set_cookies(response)
        assert f"access_token={fresh}" in cookies
        assert "refresh_token=refresh-2" in cookies
        assert services.refresh_token.refresh_token.await_args.args[0] == "refresh-1"

    def test_refresh_when_expiring_soon(
        self, client, services, jwt_service, settings, user_id, user_factory
    ):
        """Test a token about to expire is renewed ahead of time."""
        expiring = _access_token(settings, user_id, timedelta(seconds=30))
        services.refresh_token.refresh_token.return_value = (
            jwt_service.generate_access_token(user_id), "refresh-2"
        )
        services.user.get_user_by_id.return_value = user_factory(id=user_id)
        client.cookies.set("access_token", expiring)
        client.cookies.set("refresh_token", "refresh-1")

        response = client.get(f"{API}/users/me")

        assert response.status_code == 200
        services.refresh_token.refresh_token.assert_awaited_once()

    def test_refreshed_cookies_kept_on_error(
        self, client, services, jwt_service, settings, user_id
    ):
        """Test a route error after a silent refresh still sends the new cookies."""
        expired = _access_token(settings, user_id, timedelta(seconds=-5))
        fresh = jwt_service.generate_access_token(user_id)
        services.refresh_token.refresh_token.return_value = (fresh, "refresh-2")
        services.note.get_note_by_id.side_effect = NotFoundError(ERROR_MESSAGES.NOTE_NOT_FOUND)
        client.cookies.set("access_token", expired)
        client.cookies.set("refresh_token", "refresh-1")

        response = client.get(f"{API}/notes/9f1c6a0e-8a57-4c57-9a52-5f8e4f0e2b11")

        assert response.status_code == 404
        cookies = _set_cookies(response)
        assert f"access_token={fresh}" in cookies
        assert "refresh_token=refresh-2" in cookies
        assert "Max-Age=0" not in cookies
        services.refresh_token.refresh_token.assert_awaited_once()

    def test_failed_refresh(self, client, services):
        """Test a rejected refresh token ends the session."""
        services.refresh_token.refresh_token.side_effect = UnauthorizedError(
            ERROR_MESSAGES.INVALID_TOKEN
        )
        client.cookies.set("refresh_token", "revoked")

        response = client.get(f"{API}/users/me")

        assert response.status_code == 401
        assert "Max-Age=0" in _set_cookies(response)


# ============================================================================
# PROFILE
# ============================================================================


class TestProfile:
    """Tests for /users/me."""

    def test_update_profile(self, client, services, auth_headers, user_id, user_factory):
        """Test only supplied fields are passed on."""
        services.user.update_user.return_value = user_factory(id=user_id, username="New Name")

        response = client.patch(
            f"{API}/users/me", json={"username": "New Name"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Profile updated"
        assert response.json()["data"]["username"] == "New Name"
        services.user.update_user.assert_awaited_once_with(
            user_id, username="New Name", email=None, profile_picture=None
        )

    def test_update_email_taken(self, client, services, auth_headers):
        """Test an email used by someone else is 409."""
        services.user.update_user.side_effect = ConflictError(ERROR_MESSAGES.EMAIL_ALREADY_EXISTS)

        response = client.patch(
            f"{API}/users/me", json={"email": "john@example.com"}, headers=auth_headers
        )

        assert response.status_code == 409

    def test_update_invalid_username(self, client, services, auth_headers):
        """Test usernames with forbidden characters are rejected."""
        response = client.patch(
            f"{API}/users/me", json={"username": "<script>"}, headers=auth_headers
        )

        assert response.status_code == 400
        services.user.update_user.assert_not_awaited()


class TestChangePassword:
    """Tests for PATCH /users/me/password."""

    def test_change_password(self, client, services, auth_headers, user_id):
        """Test the password is changed and the session cookies cleared."""
        response = client.patch(
            f"{API}/users/me/password", json=PASSWORD_CHANGE, headers=auth_headers
        )

        assert response.status_code == 200
        services.user.update_password.assert_awaited_once_with(
            user_id, "SecurePassword123!", "NewPassword456!"
        )
        cookies = _set_cookies(response)
        assert 'access_token=""' in cookies
        assert 'refresh_token=""' in cookies

    def test_weak_new_password(self, client, services, auth_headers):
        """Test the new password must be strong."""
        response = client.patch(
            f"{API}/users/me/password",
            json={**PASSWORD_CHANGE, "newPassword": "weakpass"},
            headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "newPassword"

    def test_lockout(self, client, services, auth_headers):
        """Test repeated wrong current passwords lock the endpoint."""
        services.user.update_password.side_effect = ForbiddenError(
            ERROR_MESSAGES.INVALID_CREDENTIALS
        )

        for _ in range(6):
            response = client.patch(
                f"{API}/users/me/password", json=PASSWORD_CHANGE, headers=auth_headers
            )
            assert response.status_code == 403

        response = client.patch(
            f"{API}/users/me/password", json=PASSWORD_CHANGE, headers=auth_headers
        )

        assert response.status_code == 429
        assert "Retry-After" in response.headers

    def test_success_resets_failures(self, client, services, auth_headers):
        """Test a successful change forgets earlier wrong passwords."""
        wrong = ForbiddenError(ERROR_MESSAGES.INVALID_CREDENTIALS)
        services.user.update_password.side_effect = [wrong] * 4 + [None] + [wrong] * 5

        statuses = [
            client.patch(
                f"{API}/users/me/password", json=PASSWORD_CHANGE, headers=auth_headers
            ).status_code
            for _ in range(10)
        ]

        assert statuses == [403] * 4 + [200] + [403] * 5

"""
Integration tests for application wide behavior: health endpoints, error
bodies, response headers and CSRF protection.
"""

import time

import pytest
from fastapi.testclient import TestClient

from api.src.constants import ERROR_MESSAGES
from api.src.errors import DatabaseError

API = "/api/v1"


# ============================================================================
# HEALTH AND METRICS
# ============================================================================


class TestHealth:
    """Tests for /health, /ready and /metrics."""

    def test_health(self, client, settings):
        """Test the liveness check."""
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service_name"] == settings.app_name

    def test_ready_without_database(self, client):
        """Test the readiness check fails while no pool exists."""
        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["dependencies"]["database"] == "unhealthy"

    def test_metrics(self, client):
        """Test Prometheus metrics are exposed in text format."""
        client.get("/health")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "http_requests_total" in response.text


# ============================================================================
# ERROR BODIES
# ============================================================================


class TestErrorBodies:
    """Tests for the JSON error format."""

    def test_unknown_route(self, client):
        """Test unknown routes answer a NotFoundError body."""
        response = client.get(f"{API}/nothing-here")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "message": ERROR_MESSAGES.RESOURCE_NOT_FOUND,
            "statusCode": 404,
            "name": "NotFoundError",
        }

    def test_wrong_method(self, client):
        """Test other framework errors are named HttpError."""
        response = client.delete("/health")

        assert response.status_code == 405
        assert response.json()["name"] == "HttpError"

    def test_unexpected_exception(self, client, services, auth_headers):
        """Test unexpected exceptions are masked as 500."""
        services.user.get_user_by_id.side_effect = RuntimeError("boom")

        response = client.get(f"{API}/users/me", headers=auth_headers)

        assert response.status_code == 500
        body = response.json()
        assert body["name"] == "InternalServerError"
        assert "boom" not in body["message"]

    def test_infrastructure_error_masked(self, client, services, auth_headers):
        """Test non-operational errors do not leak their message."""
        services.user.get_user_by_id.side_effect = DatabaseError("connection reset by peer")

        response = client.get(f"{API}/users/me", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["message"] == ERROR_MESSAGES.INTERNAL_SERVER_ERROR


# ============================================================================
# RESPONSE HEADERS
# ============================================================================


class TestResponseHeaders:
    """Tests for headers added by middleware."""

    def test_security_headers(self, client):
        """Test security headers are set."""
        response = client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" not in response.headers

    def test_correlation_id_echoed(self, client):
        """Test a supplied correlation id is returned."""
        response = client.get("/health", headers={"X-Correlation-ID": "req-123"})

        assert response.headers["X-Correlation-ID"] == "req-123"

    def test_correlation_id_generated(self, client):
        """Test a correlation id is generated when missing."""
        response = client.get("/health")

        assert len(response.headers["X-Correlation-ID"]) == 36


# ============================================================================
# CSRF
# ============================================================================


@pytest.fixture
def csrf_client(app_factory, settings_factory) -> TestClient:
    """Client of an application with CSRF protection enabled."""
    return TestClient(
        app_factory(settings_factory(csrf_enabled=True)), raise_server_exceptions=False
    )


class TestCsrfProtection:
    """Tests for the CSRF middleware."""

    def test_get_issues_token_and_session(self, csrf_client):
        """Test safe requests receive a token cookie and a session cookie."""
        response = csrf_client.get("/health")

        cookies = response.headers.get_list("set-cookie")
        token_cookie = next(value for value in cookies if value.startswith("csrf_token="))
        assert "HttpOnly" not in token_cookie
        assert any(value.startswith("sid=") for value in cookies)

    def test_post_without_token(self, csrf_client, services):
        """Test unsafe requests without a token are refused."""
        csrf_client.get("/health")

        response = csrf_client.post(f"{API}/auth/logout")

        assert response.status_code == 403
        assert response.json()["message"] == ERROR_MESSAGES.INVALID_CSRF_TOKEN
        services.auth.logout.assert_not_awaited()

    def test_post_with_header(self, csrf_client, services):
        """Test the token from the cookie is accepted in the header."""
        csrf_client.get("/health")
        token = csrf_client.cookies.get("csrf_token")
        csrf_client.cookies.set("refresh_token", "refresh-1")

        response = csrf_client.post(f"{API}/auth/logout", headers={"X-CSRF-Token": token})

        assert response.status_code == 200
        services.auth.logout.assert_awaited_once_with("refresh-1")

    def test_post_with_form_field(self, csrf_client):
        """Test the token is read from the form field."""
        csrf_client.get("/health")
        token = csrf_client.cookies.get("csrf_token")

        response = csrf_client.post(
            f"{API}/auth/logout",
            content=f"_csrf={token}",
            headers={"Content-Type": "application/x-www-form-urlencoded"}
        )

        # No refresh cookie, but the request got past CSRF validation
        assert response.status_code == 401

    def test_header_must_match_cookie(self, csrf_client, csrf_service):
        """Test a valid token that differs from the cookie is refused."""
        csrf_client.get("/health")
        session_id = csrf_client.cookies.get("sid")
        other = csrf_service.generate_token(session_id, now_ms=int(time.time() * 1000) + 5000)
        assert other != csrf_client.cookies.get("csrf_token")

        response = csrf_client.post(f"{API}/auth/logout", headers={"X-CSRF-Token": other})

        assert response.status_code == 403

    def test_token_of_another_session(self, csrf_client, csrf_service):
        """Test a token signed for another session is refused."""
        foreign = csrf_service.generate_token("another-session")
        csrf_client.cookies.set("sid", "my-session")
        csrf_client.cookies.set("csrf_token", foreign)

        response = csrf_client.post(f"{API}/auth/logout", headers={"X-CSRF-Token": foreign})

        assert response.status_code == 403

    def test_csrf_token_route_matches_cookie(self, csrf_client):
        """Test the token route returns the token set as cookie."""
        response = csrf_client.get(f"{API}/auth/csrf-token")

        assert response.json()["data"]["csrfToken"] == csrf_client.cookies.get("csrf_token")

    def test_exempt_path(self, csrf_client):
        """Test exempt paths skip validation."""
        response = csrf_client.post("/health")

        assert response.status_code == 405

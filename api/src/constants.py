"""
Application-wide constants.

Error messages returned to clients, refresh token revocation reasons,
and per-route rate limit configurations.
"""

from dataclasses import dataclass
from typing import Optional


class ERROR_MESSAGES:
    """User-facing error messages."""

    RESOURCE_NOT_FOUND = "The requested resource could not be found."
    EMAIL_ALREADY_EXISTS = (
        "The email address provided is already associated with another account."
    )
    EMAIL_NOT_VERIFIED = "Email not verified. Please verify your email address."
    EMAIL_ALREADY_VERIFIED = "Email already verified."
    INVALID_CREDENTIALS = (
        "The email or password you entered is incorrect. Please try again."
    )
    UNAUTHORIZED = (
        "You are not authorized to access this resource. Please log in and try again."
    )
    FORBIDDEN = "You do not have permission to perform this action."
    BAD_REQUEST = (
        "The request could not be understood or was missing required parameters."
    )
    INTERNAL_SERVER_ERROR = "An unexpected error occurred on the server."
    PASSWORD_SAME_AS_CURRENT = (
        "The new password must be different from the current password."
    )
    RESET_LINK_SENT = "A password reset link has already been sent to your email."
    VERIFICATION_LINK_SENT = "A verification link has already been sent to your email."
    INVALID_TOKEN = "The provided token is invalid."
    EXPIRED_TOKEN = "The provided token has expired."
    TOO_MANY_ATTEMPTS = "Too many attempts. Please try again later."
    INVALID_CSRF_TOKEN = "Invalid or missing CSRF token."
    NOTE_NOT_FOUND = "Note not found."
    VIDEO_NOT_FOUND = "Video not found."
    USER_NOT_FOUND = "User not found."
    INVALID_OAUTH_CODE = "Invalid or expired code."
    INVALID_OAUTH_STATE = "Invalid OAuth state."
    NOTHING_TO_UPDATE = "At least one field must be provided."
    YOUTUBE_REQUEST_FAILED = "Failed to fetch video data from YouTube."


class RevocationReason:
    """Reasons recorded when a refresh token is revoked."""

    TOKEN_REFRESHING = "token_refreshing"
    SUSPICIOUS_ACTIVITY = "suspicious_activity_detected"
    USER_LOGOUT = "user_logout"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limit settings for one route.

    Attributes:
        max_attempts: Attempts allowed inside one window
        window_ms: Window length in milliseconds
        block_duration_ms: Lockout after the limit is exceeded (None = no lockout)
    """

    max_attempts: int
    window_ms: int
    block_duration_ms: Optional[int] = None


_MINUTE_MS = 60 * 1000

AUTH_RATE_LIMIT_CONFIG = {
    "login": RateLimitConfig(5, 15 * _MINUTE_MS, 15 * _MINUTE_MS),
    "registration": RateLimitConfig(5, 60 * _MINUTE_MS, 60 * _MINUTE_MS),
    "forgot_password": RateLimitConfig(3, 60 * _MINUTE_MS, 60 * _MINUTE_MS),
    "reset_password": RateLimitConfig(5, 15 * _MINUTE_MS, 15 * _MINUTE_MS),
    "resend_verification": RateLimitConfig(3, 60 * _MINUTE_MS, 60 * _MINUTE_MS),
}

USER_RATE_LIMIT_CONFIG = {
    "update_password": RateLimitConfig(5, 60 * _MINUTE_MS, 60 * _MINUTE_MS),
}

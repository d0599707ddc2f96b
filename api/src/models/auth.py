"""
Authentication models.

Pydantic schemas for:
- Registration, login and password reset requests
- Access token responses and token claims
- Refresh token and email verification token rows
- Client context recorded with refresh tokens
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from api.src.models.common import CamelModel
from api.src.models.user import (
    UserResponse,
    normalize_email,
    validate_password_strength,
    validate_username_format,
)


# ============================================================================
# Pydantic Request Models
# ============================================================================


class RegisterRequest(CamelModel):
    """Registration request schema with password validation."""
    username: str = Field(
        ...,
        min_length=3,
        max_length=50,
        description="Display name (3-50 characters)"
    )
    email: EmailStr = Field(
        ...,
        description="Email address"
    )
    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="Password (minimum 8 characters)"
    )

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Validate username format."""
        return validate_username_format(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Store addresses lowercased."""
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password complexity."""
        return validate_password_strength(v)

    model_config = {
        "json_schema_extra": {
            "example": {
                "username": "jane_doe",
                "email": "jane@example.com",
                "password": "SecurePassword123!"
            }
        }
    }


class LoginRequest(CamelModel):
    """Login request schema."""
    email: EmailStr = Field(
        ...,
        description="Email address"
    )
    password: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Password"
    )

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    model_config = {
        "json_schema_extra": {
            "example": {
                "email": "jane@example.com",
                "password": "SecurePassword123!"
            }
        }
    }


class EmailRequest(CamelModel):
    """Request carrying only an email (forgot password, resend verification)."""
    email: EmailStr = Field(
        ...,
        description="Email address"
    )

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class ResetPasswordRequest(CamelModel):
    """New password submitted with a reset token."""
    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="New password"
    )

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password complexity."""
        return validate_password_strength(v)


class OAuthExchangeRequest(CamelModel):
    """One-time code issued after OAuth sign-in."""
    code: str = Field(
        ...,
        min_length=1,
        max_length=256,
        description="Temporary OAuth code"
    )


# ============================================================================
# Pydantic Response Models
# ============================================================================


class AccessTokenResponse(CamelModel):
    """Access token returned after login, refresh or OAuth exchange."""
    access_token: str = Field(
        ...,
        min_length=10,
        description="JWT access token"
    )
    token_type: str = Field(
        default="bearer",
        description="Token type"
    )
    expires_in: int = Field(
        ...,
        gt=0,
        description="Token expiration time in seconds"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "accessToken": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "tokenType": "bearer",
                "expiresIn": 1200
            }
        }
    }


class LoginResponse(AccessTokenResponse):
    """Login result: the access token and the signed-in user."""
    user: UserResponse


class CsrfTokenResponse(CamelModel):
    """CSRF token for clients that cannot read the cookie."""
    csrf_token: str


# ============================================================================
# Token Models
# ============================================================================


class TokenPayload(BaseModel):
    """
    JWT claims.

    ``type`` distinguishes access, refresh and email verification tokens so
    a token of one kind is never accepted as another.
    """
    sub: str = Field(
        ...,
        description="Subject (user ID)"
    )
    type: str = Field(
        ...,
        description="Token type: access|refresh|verify_email"
    )
    exp: int = Field(
        ...,
        description="Expiration timestamp (Unix epoch)"
    )
    iat: int = Field(
        ...,
        description="Issued at timestamp (Unix epoch)"
    )
    jti: Optional[str] = Field(
        None,
        description="Unique token id"
    )


class TokenPair(BaseModel):
    """Access and refresh token issued together."""
    access_token: str
    refresh_token: str


class ClientContext(BaseModel):
    """Client details stored with a refresh token."""
    user_agent: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    device_type: Optional[str] = None


class RefreshTokenDB(BaseModel):
    """Refresh token row."""
    id: UUID
    user_id: UUID
    token: str
    device_id: str
    ip_address: str
    user_agent: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    device_type: Optional[str] = None
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    expires_at: datetime
    created_at: datetime


class EmailVerificationTokenDB(BaseModel):
    """Email verification token row."""
    id: UUID
    user_id: UUID
    token: str
    expires_at: datetime
    created_at: datetime

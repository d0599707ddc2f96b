"""
User models.

Row models returned by repositories and the public schemas exposed by the
API. The password hash never leaves the service layer: routes respond with
UserResponse, which has no password field.
"""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from api.src.models.common import CamelModel


_PASSWORD_SPECIAL = r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>\/?]"
_USERNAME_PATTERN = r"^[a-zA-Z0-9_ .-]+$"


def validate_password_strength(v: str) -> str:
    """
    Validate password complexity.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters long")

    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")

    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")

    if not re.search(r"\d", v):
        raise ValueError("Password must contain at least one digit")

    if not re.search(_PASSWORD_SPECIAL, v):
        raise ValueError("Password must contain at least one special character")

    return v


def validate_username_format(v: str) -> str:
    """Validate username characters."""
    if not re.match(_USERNAME_PATTERN, v):
        raise ValueError(
            "Username must contain only letters, numbers, spaces, dots, hyphens, and underscores"
        )
    return v


def normalize_email(v: Optional[str]) -> Optional[str]:
    """Lowercase an email so one address maps to one account."""
    if v is None:
        return v
    return v.strip().lower()


# ============================================================================
# Database Row Models
# ============================================================================


class UserDB(BaseModel):
    """User row as stored in the database."""
    id: UUID
    username: str
    email: str
    password: Optional[str] = None
    profile_picture: Optional[str] = None
    is_email_verified: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True
    }


class AccountDB(BaseModel):
    """OAuth account row."""
    id: UUID
    user_id: UUID
    provider: str
    provider_account_id: str
    type: str = "oauth"
    created_at: datetime


# ============================================================================
# Pydantic Request Models
# ============================================================================


class UpdateUserRequest(CamelModel):
    """Update profile request. Only supplied fields change."""
    username: Optional[str] = Field(
        None,
        min_length=3,
        max_length=50,
        description="Display name"
    )
    email: Optional[EmailStr] = Field(
        None,
        description="Email address"
    )
    profile_picture: Optional[str] = Field(
        None,
        max_length=2048,
        description="Profile picture URL"
    )

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: Optional[str]) -> Optional[str]:
        """Validate username format if provided."""
        if v is None:
            return v
        return validate_username_format(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v)

    model_config = {
        "json_schema_extra": {
            "example": {
                "username": "Jane Doe",
                "email": "jane@example.com",
                "profilePicture": "https://example.com/jane.png"
            }
        }
    }


class UpdatePasswordRequest(CamelModel):
    """Change password request."""
    current_password: str = Field(
        ...,
        min_length=1,
        description="Current password"
    )
    new_password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="New password"
    )

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        """Validate password complexity."""
        return validate_password_strength(v)

    model_config = {
        "json_schema_extra": {
            "example": {
                "currentPassword": "OldPassword123!",
                "newPassword": "NewPassword456!"
            }
        }
    }


# ============================================================================
# Pydantic Response Models
# ============================================================================


class UserResponse(CamelModel):
    """Public user information."""
    id: UUID = Field(
        ...,
        description="User ID (UUID)"
    )
    username: str = Field(
        ...,
        description="Display name"
    )
    email: str = Field(
        ...,
        description="Email address"
    )
    profile_picture: Optional[str] = Field(
        None,
        description="Profile picture URL"
    )
    is_email_verified: bool = Field(
        ...,
        description="Whether the email address is verified"
    )
    created_at: datetime = Field(
        ...,
        description="Creation timestamp"
    )
    updated_at: datetime = Field(
        ...,
        description="Last update timestamp"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "username": "Jane Doe",
                "email": "jane@example.com",
                "profilePicture": None,
                "isEmailVerified": True,
                "createdAt": "2025-01-15T10:30:00Z",
                "updatedAt": "2025-01-15T10:30:00Z"
            }
        }
    }

    @classmethod
    def from_db(cls, user: UserDB) -> "UserResponse":
        """Build the public view of a user row."""
        return cls.model_validate(user.model_dump(exclude={"password"}))

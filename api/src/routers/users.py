"""
User profile router.

All endpoints act on the signed-in user (``/users/me``).
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Response

from api.src.config import Settings
from api.src.constants import USER_RATE_LIMIT_CONFIG
from api.src.dependencies import (
    get_rate_limit_service,
    get_settings_dependency,
    get_user_service,
)
from api.src.errors import BaseError
from api.src.middleware.auth import clear_auth_cookies, require_user
from api.src.middleware.rate_limit import enforce_rate_limit
from api.src.models.common import ErrorResponse, SuccessResponse, format_success
from api.src.models.user import UpdatePasswordRequest, UpdateUserRequest, UserResponse
from api.src.services import RateLimitService, UserService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not Found"},
    }
)


@router.get(
    "/me",
    response_model=SuccessResponse[UserResponse],
    summary="Current user"
)
async def get_me(
    user_id: UUID = Depends(require_user),
    user_service: UserService = Depends(get_user_service),
):
    user = await user_service.get_user_by_id(user_id)
    return format_success(data=UserResponse.from_db(user))


@router.patch(
    "/me",
    response_model=SuccessResponse[UserResponse],
    summary="Update profile",
    responses={409: {"model": ErrorResponse, "description": "Email already in use"}}
)
async def update_me(
    body: UpdateUserRequest,
    user_id: UUID = Depends(require_user),
    user_service: UserService = Depends(get_user_service),
):
    """Update username, email or profile picture. Omitted fields are kept."""
    user = await user_service.update_user(
        user_id,
        username=body.username,
        email=body.email,
        profile_picture=body.profile_picture
    )
    return format_success(data=UserResponse.from_db(user), message="Profile updated")


@router.patch(
    "/me/password",
    response_model=SuccessResponse,
    summary="Change password",
    responses={
        403: {"model": ErrorResponse, "description": "Current password is wrong"},
        429: {"model": ErrorResponse, "description": "Too Many Requests"},
    }
)
async def update_password(
    body: UpdatePasswordRequest,
    response: Response,
    user_id: UUID = Depends(require_user),
    settings: Settings = Depends(get_settings_dependency),
    user_service: UserService = Depends(get_user_service),
    rate_limit_service: RateLimitService = Depends(get_rate_limit_service),
):
    """
    Change the password.

    Every session of the user is revoked and the token cookies are cleared,
    so the client has to log in again.
    """
    guard = await enforce_rate_limit(
        rate_limit_service,
        response,
        f"update-password:user:{user_id}",
        USER_RATE_LIMIT_CONFIG["update_password"],
        "update_password"
    )

    try:
        await user_service.update_password(user_id, body.current_password, body.new_password)
    except BaseError:
        await guard.failure()
        raise

    await guard.success()
    clear_auth_cookies(response, settings)
    return format_success(message="Password updated. Please log in again.")

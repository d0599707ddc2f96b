"""
Video router.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Path

from api.src.dependencies import get_video_service
from api.src.middleware.auth import require_user
from api.src.models.common import ErrorResponse, SuccessResponse, format_success
from api.src.models.video import VideoResponse
from api.src.services import VideoService
from api.src.utils.pagination import PaginationParams, pagination_dependency

router = APIRouter(
    prefix="/videos",
    tags=["Videos"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
    }
)

VIDEO_SORT_COLUMNS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


@router.get(
    "",
    response_model=SuccessResponse[List[VideoResponse]],
    summary="Videos of the current user"
)
async def list_videos(
    pagination: PaginationParams = Depends(pagination_dependency(VIDEO_SORT_COLUMNS)),
    user_id: UUID = Depends(require_user),
    video_service: VideoService = Depends(get_video_service),
):
    videos, page = await video_service.get_user_videos(user_id, pagination)
    return format_success(
        data=[VideoResponse.from_db(video) for video in videos],
        pagination=page
    )


@router.get(
    "/{youtube_id}",
    response_model=SuccessResponse[VideoResponse],
    summary="Open a video",
    responses={
        400: {"model": ErrorResponse, "description": "YouTube request failed"},
        404: {"model": ErrorResponse, "description": "Unknown video"},
    }
)
async def get_video(
    youtube_id: str = Path(..., min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_-]+$"),
    user_id: UUID = Depends(require_user),
    video_service: VideoService = Depends(get_video_service),
):
    """
    Return a video, fetching it from YouTube on first access.

    The video is added to the user's list.
    """
    video = await video_service.get_video_by_youtube_id(user_id, youtube_id)
    return format_success(data=VideoResponse.from_db(video))

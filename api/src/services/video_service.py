"""
Video service.

A video is fetched from YouTube the first time anyone opens it and cached
in the database; later requests only link the cached row to the user.
"""

from typing import List, Tuple
from uuid import UUID

import structlog

from api.src.models.common import Pagination
from api.src.models.video import VideoDB
from api.src.repositories.video_repo import VideoRepository
from api.src.services.youtube_client import YouTubeClient
from api.src.utils.pagination import PaginationParams

logger = structlog.get_logger(__name__)


class VideoService:
    """Finds, caches and lists videos."""

    def __init__(self, video_repo: VideoRepository, youtube_client: YouTubeClient):
        self.video_repo = video_repo
        self.youtube_client = youtube_client

    async def find_video_or_create(self, user_id: UUID, youtube_id: str) -> VideoDB:
        """
        Return the cached video, fetching it from YouTube when missing, and
        make sure it is linked to the user.

        Args:
            user_id: Requesting user
            youtube_id: YouTube video id

        Returns:
            Cached video

        Raises:
            BadRequestError: YouTube request failed
            NotFoundError: VIDEO_NOT_FOUND
        """
        video = await self.video_repo.get_by_youtube_id(youtube_id)
        if video:
            await self.video_repo.link_to_user(video.id, user_id)
            return video

        data = await self.youtube_client.fetch_video(youtube_id)

        async with self.video_repo.transaction() as conn:
            video = await self.video_repo.create_video(data, conn=conn)
            await self.video_repo.link_to_user(video.id, user_id, conn=conn)

        logger.info("video_cached", youtube_id=youtube_id, user_id=str(user_id))
        return video

    async def get_video_by_youtube_id(self, user_id: UUID, youtube_id: str) -> VideoDB:
        """Alias of find_video_or_create used by the video detail route."""
        return await self.find_video_or_create(user_id, youtube_id)

    async def get_user_videos(
        self,
        user_id: UUID,
        pagination: PaginationParams
    ) -> Tuple[List[VideoDB], Pagination]:
        """
        One page of the user's videos.

        Returns:
            (videos, pagination block)
        """
        videos = await self.video_repo.list_for_user(
            user_id,
            limit=pagination.limit,
            skip=pagination.skip,
            sort_by=pagination.sort_by,
            order=pagination.order
        )
        total = await self.video_repo.count_for_user(user_id)
        return videos, pagination.build(total)

"""
Video repository.

Videos are stored once per YouTube id; the user_videos table links them to
the users who opened them.
"""

import asyncpg
import structlog
from typing import List, Optional
from uuid import UUID

from api.src.errors import DatabaseError
from api.src.models.video import VideoDB, YouTubeVideoData
from api.src.repositories.base import BaseRepository

logger = structlog.get_logger(__name__)

_VIDEO_COLUMNS = "v.id, v.youtube_id, v.snippet, v.statistics, v.player, v.created_at, v.updated_at"


class VideoRepository(BaseRepository):
    """Repository for cached YouTube videos."""

    async def get_by_youtube_id(
        self,
        youtube_id: str,
        conn: Optional[asyncpg.Connection] = None
    ) -> Optional[VideoDB]:
        """
        Get a cached video by YouTube id.

        Args:
            youtube_id: YouTube video id
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Video or None if not cached
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    SELECT {_VIDEO_COLUMNS}
                    FROM videos v
                    WHERE v.youtube_id = $1
                    """,
                    youtube_id
                )

                return VideoDB(**dict(row)) if row else None

        except asyncpg.PostgresError as e:
            logger.error("video_get_failed", error=str(e), youtube_id=youtube_id)
            raise DatabaseError("Failed to fetch video") from e

    async def create_video(
        self,
        data: YouTubeVideoData,
        conn: Optional[asyncpg.Connection] = None
    ) -> VideoDB:
        """
        Cache a video. A concurrent insert of the same YouTube id returns the
        existing row.

        Args:
            data: Video data fetched from YouTube
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Stored video
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    """
                    INSERT INTO videos AS v (youtube_id, snippet, statistics, player, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, NOW(), NOW())
                    ON CONFLICT (youtube_id) DO UPDATE SET updated_at = v.updated_at
                    RETURNING v.id, v.youtube_id, v.snippet, v.statistics, v.player,
                              v.created_at, v.updated_at
                    """,
                    data.youtube_id,
                    data.snippet,
                    data.statistics,
                    data.player
                )

                logger.info("video_created", youtube_id=data.youtube_id)
                return VideoDB(**dict(row))

        except asyncpg.PostgresError as e:
            logger.error("video_create_failed", error=str(e), youtube_id=data.youtube_id)
            raise DatabaseError("Failed to store video") from e

    async def link_to_user(
        self,
        video_id: UUID,
        user_id: UUID,
        conn: Optional[asyncpg.Connection] = None
    ) -> bool:
        """
        Link a video to a user.

        Args:
            video_id: Video ID
            user_id: User ID
            conn: Connection of an enclosing transaction (optional)

        Returns:
            True if a new link was created, False if it already existed
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    """
                    INSERT INTO user_videos (user_id, video_id, created_at)
                    VALUES ($1, $2, NOW())
                    ON CONFLICT (user_id, video_id) DO NOTHING
                    RETURNING video_id
                    """,
                    user_id,
                    video_id
                )

                if row:
                    logger.info("video_linked_to_user", video_id=str(video_id), user_id=str(user_id))
                return row is not None

        except asyncpg.PostgresError as e:
            logger.error("video_link_failed", error=str(e), video_id=str(video_id))
            raise DatabaseError("Failed to link video") from e

    async def list_for_user(
        self,
        user_id: UUID,
        limit: int,
        skip: int,
        sort_by: str = "created_at",
        order: str = "desc"
    ) -> List[VideoDB]:
        """
        Videos linked to a user, one page at a time.

        Args:
            user_id: User ID
            limit: Page size
            skip: Rows to skip
            sort_by: Whitelisted column name
            order: asc or desc

        Returns:
            List of videos
        """
        direction = "ASC" if order == "asc" else "DESC"
        try:
            async with self.connection() as db:
                rows = await db.fetch(
                    f"""
                    SELECT {_VIDEO_COLUMNS}
                    FROM videos v
                    JOIN user_videos uv ON uv.video_id = v.id
                    WHERE uv.user_id = $1
                    ORDER BY v.{sort_by} {direction}, v.id
                    LIMIT $2 OFFSET $3
                    """,
                    user_id,
                    limit,
                    skip
                )

                return [VideoDB(**dict(row)) for row in rows]

        except asyncpg.PostgresError as e:
            logger.error("video_list_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to list videos") from e

    async def count_for_user(self, user_id: UUID) -> int:
        """
        Count videos linked to a user.

        Args:
            user_id: User ID

        Returns:
            Number of linked videos
        """
        try:
            async with self.connection() as db:
                return await db.fetchval(
                    "SELECT COUNT(*) FROM user_videos WHERE user_id = $1",
                    user_id
                )

        except asyncpg.PostgresError as e:
            logger.error("video_count_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to count videos") from e

"""
Note repository.

Every query is scoped by user id: a note that belongs to another user is
indistinguishable from a note that does not exist.
"""

import asyncpg
import structlog
from typing import Any, Dict, List, Optional
from uuid import UUID

from api.src.errors import DatabaseError
from api.src.models.note import NoteDB
from api.src.repositories.base import BaseRepository, rows_affected

logger = structlog.get_logger(__name__)

_NOTE_COLUMNS = (
    "id, user_id, video_id, youtube_id, title, content, video_title, "
    "thumbnail, timestamp, created_at, updated_at"
)

# Columns a client may change after creation
UPDATABLE_COLUMNS = ("title", "content", "timestamp")


class NoteRepository(BaseRepository):
    """Repository for notes."""

    async def create_note(
        self,
        user_id: UUID,
        video_id: UUID,
        youtube_id: str,
        title: str,
        content: str,
        video_title: str,
        thumbnail: str,
        timestamp: float,
        conn: Optional[asyncpg.Connection] = None
    ) -> NoteDB:
        """
        Insert a note.

        Args:
            user_id: Author
            video_id: Video the note belongs to
            youtube_id: YouTube id of the video
            title: Note title
            content: Note body
            video_title: Video title shown with the note
            thumbnail: Thumbnail URL shown with the note
            timestamp: Position in the video (seconds)
            conn: Connection of an enclosing transaction (optional)

        Returns:
            Created note
        """
        try:
            async with self.connection(conn) as db:
                row = await db.fetchrow(
                    f"""
                    INSERT INTO notes (
                        user_id, video_id, youtube_id, title, content,
                        video_title, thumbnail, timestamp, created_at, updated_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, NOW(), NOW())
                    RETURNING {_NOTE_COLUMNS}
                    """,
                    user_id,
                    video_id,
                    youtube_id,
                    title,
                    content,
                    video_title,
                    thumbnail,
                    timestamp
                )

                logger.info("note_created", note_id=str(row["id"]), user_id=str(user_id))
                return NoteDB(**dict(row))

        except asyncpg.PostgresError as e:
            logger.error("note_create_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to create note") from e

    async def get_note(self, note_id: UUID, user_id: UUID) -> Optional[NoteDB]:
        """
        Get one of the user's notes.

        Args:
            note_id: Note ID
            user_id: Owner

        Returns:
            Note or None
        """
        try:
            async with self.connection() as db:
                row = await db.fetchrow(
                    f"""
                    SELECT {_NOTE_COLUMNS}
                    FROM notes
                    WHERE id = $1 AND user_id = $2
                    """,
                    note_id,
                    user_id
                )

                return NoteDB(**dict(row)) if row else None

        except asyncpg.PostgresError as e:
            logger.error("note_get_failed", error=str(e), note_id=str(note_id))
            raise DatabaseError("Failed to fetch note") from e

    async def update_note(
        self,
        note_id: UUID,
        user_id: UUID,
        changes: Dict[str, Any]
    ) -> Optional[NoteDB]:
        """
        Update the supplied fields of one of the user's notes.

        Args:
            note_id: Note ID
            user_id: Owner
            changes: Column values to write; keys outside UPDATABLE_COLUMNS
                are ignored

        Returns:
            Updated note or None if not found
        """
        updates = []
        params: List[Any] = []
        param_count = 1

        for column in UPDATABLE_COLUMNS:
            if column in changes:
                updates.append(f"{column} = ${param_count}")
                params.append(changes[column])
                param_count += 1

        if not updates:
            return await self.get_note(note_id, user_id)

        updates.append("updated_at = NOW()")
        params.extend([note_id, user_id])

        try:
            async with self.connection() as db:
                row = await db.fetchrow(
                    f"""
                    UPDATE notes
                    SET {', '.join(updates)}
                    WHERE id = ${param_count} AND user_id = ${param_count + 1}
                    RETURNING {_NOTE_COLUMNS}
                    """,
                    *params
                )

                if not row:
                    return None

                logger.info("note_updated", note_id=str(note_id), fields=list(changes))
                return NoteDB(**dict(row))

        except asyncpg.PostgresError as e:
            logger.error("note_update_failed", error=str(e), note_id=str(note_id))
            raise DatabaseError("Failed to update note") from e

    async def delete_note(self, note_id: UUID, user_id: UUID) -> bool:
        """
        Delete one of the user's notes.

        Args:
            note_id: Note ID
            user_id: Owner

        Returns:
            True if deleted, False if not found
        """
        try:
            async with self.connection() as db:
                result = await db.execute(
                    "DELETE FROM notes WHERE id = $1 AND user_id = $2",
                    note_id,
                    user_id
                )

                deleted = rows_affected(result) == 1
                if deleted:
                    logger.info("note_deleted", note_id=str(note_id), user_id=str(user_id))
                return deleted

        except asyncpg.PostgresError as e:
            logger.error("note_delete_failed", error=str(e), note_id=str(note_id))
            raise DatabaseError("Failed to delete note") from e

    async def list_notes(
        self,
        user_id: UUID,
        limit: int,
        skip: int = 0,
        sort_by: str = "created_at",
        order: str = "desc",
        youtube_id: Optional[str] = None
    ) -> List[NoteDB]:
        """
        The user's notes, optionally restricted to one video.

        Args:
            user_id: Owner
            limit: Page size
            skip: Rows to skip
            sort_by: Whitelisted column name
            order: asc or desc
            youtube_id: Restrict to notes of this video (optional)

        Returns:
            List of notes
        """
        direction = "ASC" if order == "asc" else "DESC"
        params: List[Any] = [user_id]
        where = "user_id = $1"
        if youtube_id is not None:
            params.append(youtube_id)
            where += " AND youtube_id = $2"
        params.extend([limit, skip])

        try:
            async with self.connection() as db:
                rows = await db.fetch(
                    f"""
                    SELECT {_NOTE_COLUMNS}
                    FROM notes
                    WHERE {where}
                    ORDER BY {sort_by} {direction}, id
                    LIMIT ${len(params) - 1} OFFSET ${len(params)}
                    """,
                    *params
                )

                return [NoteDB(**dict(row)) for row in rows]

        except asyncpg.PostgresError as e:
            logger.error("note_list_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to list notes") from e

    async def count_notes(self, user_id: UUID, youtube_id: Optional[str] = None) -> int:
        """
        Count the user's notes, optionally restricted to one video.

        Args:
            user_id: Owner
            youtube_id: Restrict to notes of this video (optional)

        Returns:
            Number of notes
        """
        try:
            async with self.connection() as db:
                if youtube_id is not None:
                    return await db.fetchval(
                        "SELECT COUNT(*) FROM notes WHERE user_id = $1 AND youtube_id = $2",
                        user_id,
                        youtube_id
                    )
                return await db.fetchval(
                    "SELECT COUNT(*) FROM notes WHERE user_id = $1",
                    user_id
                )

        except asyncpg.PostgresError as e:
            logger.error("note_count_failed", error=str(e), user_id=str(user_id))
            raise DatabaseError("Failed to count notes") from e

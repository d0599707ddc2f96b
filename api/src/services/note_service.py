"""
Note service.
"""

from typing import List, Tuple
from uuid import UUID

import structlog

from api.src.constants import ERROR_MESSAGES
from api.src.errors import BadRequestError, NotFoundError
from api.src.models.common import Pagination
from api.src.models.note import CreateNoteRequest, NoteDB, UpdateNoteRequest
from api.src.repositories.note_repo import NoteRepository
from api.src.services.video_service import VideoService
from api.src.utils.pagination import PaginationParams

logger = structlog.get_logger(__name__)

RECENT_NOTES_LIMIT = 2


class NoteService:
    """Creates, edits and lists a user's notes."""

    def __init__(self, note_repo: NoteRepository, video_service: VideoService):
        self.note_repo = note_repo
        self.video_service = video_service

    async def create_note(self, user_id: UUID, dto: CreateNoteRequest) -> NoteDB:
        """
        Create a note on a video.

        The video is looked up (and cached from YouTube if needed); the video
        title and thumbnail default to the cached values.

        Args:
            user_id: Author
            dto: Validated note fields

        Returns:
            Created note
        """
        video = await self.video_service.find_video_or_create(user_id, dto.youtube_id)
        cached = video.as_youtube_data()

        note = await self.note_repo.create_note(
            user_id=user_id,
            video_id=video.id,
            youtube_id=dto.youtube_id,
            title=dto.title,
            content=dto.content,
            video_title=dto.video_title or cached.title,
            thumbnail=dto.thumbnail or cached.thumbnail,
            timestamp=dto.timestamp
        )
        return note

    async def update_note(self, user_id: UUID, note_id: UUID, dto: UpdateNoteRequest) -> NoteDB:
        """
        Update the supplied fields of a note.

        Raises:
            BadRequestError: NOTHING_TO_UPDATE
            NotFoundError: NOTE_NOT_FOUND
        """
        changes = dto.changes()
        if not changes:
            raise BadRequestError(ERROR_MESSAGES.NOTHING_TO_UPDATE)

        note = await self.note_repo.update_note(note_id, user_id, changes)
        if not note:
            raise NotFoundError(ERROR_MESSAGES.NOTE_NOT_FOUND)
        return note

    async def delete_note(self, user_id: UUID, note_id: UUID) -> None:
        """
        Delete a note.

        Raises:
            NotFoundError: NOTE_NOT_FOUND
        """
        if not await self.note_repo.delete_note(note_id, user_id):
            raise NotFoundError(ERROR_MESSAGES.NOTE_NOT_FOUND)

    async def get_note_by_id(self, user_id: UUID, note_id: UUID) -> NoteDB:
        """
        Get one of the user's notes.

        Raises:
            NotFoundError: NOTE_NOT_FOUND
        """
        note = await self.note_repo.get_note(note_id, user_id)
        if not note:
            raise NotFoundError(ERROR_MESSAGES.NOTE_NOT_FOUND)
        return note

    async def get_user_notes(
        self,
        user_id: UUID,
        pagination: PaginationParams
    ) -> Tuple[List[NoteDB], Pagination]:
        """One page of the user's notes."""
        notes = await self.note_repo.list_notes(
            user_id,
            limit=pagination.limit,
            skip=pagination.skip,
            sort_by=pagination.sort_by,
            order=pagination.order
        )
        total = await self.note_repo.count_notes(user_id)
        return notes, pagination.build(total)

    async def get_recent_notes(self, user_id: UUID, limit: int = RECENT_NOTES_LIMIT) -> List[NoteDB]:
        """Most recently created notes."""
        return await self.note_repo.list_notes(user_id, limit=limit, sort_by="created_at", order="desc")

    async def get_recently_updated_notes(
        self,
        user_id: UUID,
        limit: int = RECENT_NOTES_LIMIT
    ) -> List[NoteDB]:
        """Most recently edited notes."""
        return await self.note_repo.list_notes(user_id, limit=limit, sort_by="updated_at", order="desc")

    async def get_notes_by_video(
        self,
        user_id: UUID,
        youtube_id: str,
        pagination: PaginationParams
    ) -> Tuple[List[NoteDB], Pagination]:
        """One page of the user's notes on a video."""
        notes = await self.note_repo.list_notes(
            user_id,
            limit=pagination.limit,
            skip=pagination.skip,
            sort_by=pagination.sort_by,
            order=pagination.order,
            youtube_id=youtube_id
        )
        total = await self.note_repo.count_notes(user_id, youtube_id=youtube_id)
        return notes, pagination.build(total)

"""
Note router.

Notes are always scoped to the signed-in user: another user's note behaves
exactly like a missing one (404).
"""

from typing import List
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Path, status

from api.src.dependencies import get_note_service
from api.src.middleware.auth import require_user
from api.src.models.common import ErrorResponse, SuccessResponse, format_success
from api.src.models.note import CreateNoteRequest, NoteResponse, UpdateNoteRequest
from api.src.services import NoteService
from api.src.utils.pagination import PaginationParams, pagination_dependency

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/notes",
    tags=["Notes"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not Found"},
    }
)

NOTE_SORT_COLUMNS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "timestamp": "timestamp",
}

YOUTUBE_ID_PATH = Path(..., min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_-]+$")


def _notes(notes) -> List[NoteResponse]:
    return [NoteResponse.from_db(note) for note in notes]


# ============================================================================
# COLLECTION ENDPOINTS
# ============================================================================


@router.get(
    "",
    response_model=SuccessResponse[List[NoteResponse]],
    summary="Notes of the current user"
)
async def list_notes(
    pagination: PaginationParams = Depends(pagination_dependency(NOTE_SORT_COLUMNS)),
    user_id: UUID = Depends(require_user),
    note_service: NoteService = Depends(get_note_service),
):
    notes, page = await note_service.get_user_notes(user_id, pagination)
    return format_success(data=_notes(notes), pagination=page)


@router.post(
    "",
    response_model=SuccessResponse[NoteResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a note",
    responses={400: {"model": ErrorResponse, "description": "Validation or YouTube error"}}
)
async def create_note(
    body: CreateNoteRequest,
    user_id: UUID = Depends(require_user),
    note_service: NoteService = Depends(get_note_service),
):
    """
    Create a note on a video.

    The video is fetched from YouTube and cached when no one opened it
    before; ``videoTitle`` and ``thumbnail`` default to the cached values.
    """
    note = await note_service.create_note(user_id, body)
    logger.info("note_created", note_id=str(note.id), user_id=str(user_id))
    return format_success(
        data=NoteResponse.from_db(note),
        message="Note created",
        status=status.HTTP_201_CREATED
    )


@router.get(
    "/recent",
    response_model=SuccessResponse[List[NoteResponse]],
    summary="Most recently created notes"
)
async def recent_notes(
    user_id: UUID = Depends(require_user),
    note_service: NoteService = Depends(get_note_service),
):
    notes = await note_service.get_recent_notes(user_id)
    return format_success(data=_notes(notes))


@router.get(
    "/recently-updated",
    response_model=SuccessResponse[List[NoteResponse]],
    summary="Most recently edited notes"
)
async def recently_updated_notes(
    user_id: UUID = Depends(require_user),
    note_service: NoteService = Depends(get_note_service),
):
    notes = await note_service.get_recently_updated_notes(user_id)
    return format_success(data=_notes(notes))


@router.get(
    "/video/{youtube_id}",
    response_model=SuccessResponse[List[NoteResponse]],
    summary="Notes on one video"
)
async def notes_by_video(
    youtube_id: str = YOUTUBE_ID_PATH,
    pagination: PaginationParams = Depends(pagination_dependency(NOTE_SORT_COLUMNS)),
    user_id: UUID = Depends(require_user),
    note_service: NoteService = Depends(get_note_service),
):
    notes, page = await note_service.get_notes_by_video(user_id, youtube_id, pagination)
    return format_success(data=_notes(notes), pagination=page)


# ============================================================================
# ITEM ENDPOINTS
# ============================================================================


@router.get(
    "/{note_id}",
    response_model=SuccessResponse[NoteResponse],
    summary="Get a note"
)
async def get_note(
    note_id: UUID,
    user_id: UUID = Depends(require_user),
    note_service: NoteService = Depends(get_note_service),
):
    note = await note_service.get_note_by_id(user_id, note_id)
    return format_success(data=NoteResponse.from_db(note))


@router.patch(
    "/{note_id}",
    response_model=SuccessResponse[NoteResponse],
    summary="Update a note"
)
async def update_note(
    note_id: UUID,
    body: UpdateNoteRequest,
    user_id: UUID = Depends(require_user),
    note_service: NoteService = Depends(get_note_service),
):
    """Change title, content or timestamp. Omitted fields are kept."""
    note = await note_service.update_note(user_id, note_id, body)
    return format_success(data=NoteResponse.from_db(note), message="Note updated")


@router.delete(
    "/{note_id}",
    response_model=SuccessResponse,
    summary="Delete a note"
)
async def delete_note(
    note_id: UUID,
    user_id: UUID = Depends(require_user),
    note_service: NoteService = Depends(get_note_service),
):
    await note_service.delete_note(user_id, note_id)
    logger.info("note_deleted", note_id=str(note_id), user_id=str(user_id))
    return format_success(message="Note deleted")

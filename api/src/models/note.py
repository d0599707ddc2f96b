"""
Note models.

A note is a user-authored, timestamped annotation tied to a video.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from api.src.models.common import CamelModel


class NoteDB(BaseModel):
    """Note row."""
    id: UUID
    user_id: UUID
    video_id: UUID
    youtube_id: str
    title: str
    content: str
    video_title: str
    thumbnail: str
    timestamp: float
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Pydantic Request Models
# ============================================================================


class CreateNoteRequest(CamelModel):
    """
    Create note request.

    ``video_title`` and ``thumbnail`` may be omitted; they default to the
    values cached from YouTube for the video.
    """
    title: str = Field(
        ...,
        min_length=3,
        max_length=255,
        description="Note title"
    )
    content: str = Field(
        ...,
        min_length=10,
        description="Note body"
    )
    youtube_id: str = Field(
        ...,
        min_length=3,
        max_length=32,
        pattern=r"^[A-Za-z0-9_-]+$",
        description="YouTube video id"
    )
    timestamp: float = Field(
        ...,
        ge=0,
        description="Position in the video (seconds)"
    )
    video_title: Optional[str] = Field(
        None,
        min_length=3,
        max_length=255,
        description="Video title shown with the note"
    )
    thumbnail: Optional[str] = Field(
        None,
        min_length=3,
        max_length=2048,
        description="Thumbnail URL shown with the note"
    )

    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "title": "Chorus",
                "content": "The chorus starts here and repeats twice.",
                "youtubeId": "dQw4w9WgXcQ",
                "timestamp": 43.5,
                "videoTitle": "Never Gonna Give You Up",
                "thumbnail": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
            }
        }
    }


class UpdateNoteRequest(CamelModel):
    """Update note request. Only title, content and timestamp can change."""
    title: Optional[str] = Field(
        None,
        min_length=3,
        max_length=255,
        description="Note title"
    )
    content: Optional[str] = Field(
        None,
        min_length=10,
        description="Note body"
    )
    timestamp: Optional[float] = Field(
        None,
        ge=0,
        description="Position in the video (seconds)"
    )

    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "content": "Updated: the chorus starts a bit earlier."
            }
        }
    }

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "UpdateNoteRequest":
        """Fields may be omitted but not set to null."""
        for field in self.model_fields_set:
            if getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict:
        """Fields the client actually supplied."""
        return self.model_dump(exclude_unset=True)


# ============================================================================
# Pydantic Response Models
# ============================================================================


class NoteResponse(CamelModel):
    """Note returned to clients."""
    id: UUID
    user_id: UUID
    video_id: UUID
    youtube_id: str
    title: str
    content: str
    video_title: str
    thumbnail: str
    timestamp: float
    created_at: datetime
    updated_at: datetime

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "2b0f0c0e-8d0e-4b8a-9b8e-3c9b0b8f1a22",
                "userId": "550e8400-e29b-41d4-a716-446655440000",
                "videoId": "7f1b2c1e-0f7e-4a51-9a52-2c1d3b9d6a10",
                "youtubeId": "dQw4w9WgXcQ",
                "title": "Chorus",
                "content": "The chorus starts here and repeats twice.",
                "videoTitle": "Never Gonna Give You Up",
                "thumbnail": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg",
                "timestamp": 43.5,
                "createdAt": "2025-01-15T10:30:00Z",
                "updatedAt": "2025-01-15T10:30:00Z"
            }
        }
    }

    @classmethod
    def from_db(cls, note: NoteDB) -> "NoteResponse":
        """Build the public view of a note row."""
        return cls.model_validate(note.model_dump())

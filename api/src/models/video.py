"""
Video models.

A video is the metadata the YouTube Data API returns for one video id
(snippet, statistics, player), cached once and shared by every user who
opened it.
"""

from datetime import datetime
from typing import Any, Dict
from uuid import UUID

from pydantic import BaseModel, Field

from api.src.models.common import CamelModel


class YouTubeVideoData(BaseModel):
    """The parts of a YouTube ``videos`` resource TubeNote keeps."""
    youtube_id: str
    snippet: Dict[str, Any] = Field(default_factory=dict)
    statistics: Dict[str, Any] = Field(default_factory=dict)
    player: Dict[str, Any] = Field(default_factory=dict)

    @property
    def title(self) -> str:
        """Video title from the snippet."""
        return self.snippet.get("title", "")

    @property
    def thumbnail(self) -> str:
        """Best available thumbnail URL from the snippet."""
        thumbnails = self.snippet.get("thumbnails") or {}
        for size in ("maxres", "standard", "high", "medium", "default"):
            url = (thumbnails.get(size) or {}).get("url")
            if url:
                return url
        return ""


class VideoDB(BaseModel):
    """Video row."""
    id: UUID
    youtube_id: str
    snippet: Dict[str, Any]
    statistics: Dict[str, Any]
    player: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    def as_youtube_data(self) -> YouTubeVideoData:
        """View the cached row as YouTube data."""
        return YouTubeVideoData(
            youtube_id=self.youtube_id,
            snippet=self.snippet,
            statistics=self.statistics,
            player=self.player,
        )


class VideoResponse(CamelModel):
    """Video returned to clients."""
    id: UUID = Field(..., description="Video ID (UUID)")
    youtube_id: str = Field(..., description="YouTube video id")
    snippet: Dict[str, Any] = Field(..., description="YouTube snippet part")
    statistics: Dict[str, Any] = Field(..., description="YouTube statistics part")
    player: Dict[str, Any] = Field(..., description="YouTube player part")
    created_at: datetime
    updated_at: datetime

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "7f1b2c1e-0f7e-4a51-9a52-2c1d3b9d6a10",
                "youtubeId": "dQw4w9WgXcQ",
                "snippet": {"title": "Never Gonna Give You Up"},
                "statistics": {"viewCount": "1500000000"},
                "player": {"embedHtml": "<iframe ...></iframe>"},
                "createdAt": "2025-01-15T10:30:00Z",
                "updatedAt": "2025-01-15T10:30:00Z"
            }
        }
    }

    @classmethod
    def from_db(cls, video: VideoDB) -> "VideoResponse":
        """Build the public view of a video row."""
        return cls.model_validate(video.model_dump())


"""
Unit tests for the YouTube client, video caching and notes.

The YouTube Data API is replaced with an httpx.MockTransport.
"""

from unittest.mock import AsyncMock
from uuid import uuid4

import httpx
import pytest

from api.src.constants import ERROR_MESSAGES
from api.src.errors import BadRequestError, NotFoundError
from api.src.models.note import CreateNoteRequest, UpdateNoteRequest
from api.src.models.video import YouTubeVideoData
from api.src.repositories.note_repo import NoteRepository
from api.src.repositories.video_repo import VideoRepository
from api.src.services import NoteService, VideoService, YouTubeClient
from api.src.utils.pagination import PaginationParams

YOUTUBE_ITEM = {
    "id": "dQw4w9WgXcQ",
    "snippet": {
        "title": "Never Gonna Give You Up",
        "thumbnails": {"high": {"url": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"}},
    },
    "statistics": {"viewCount": "1500000000"},
    "player": {"embedHtml": "<iframe></iframe>"},
}


def _youtube_client(settings, handler) -> YouTubeClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return YouTubeClient(http_client, settings)


# ============================================================================
# YOUTUBE CLIENT
# ============================================================================


class TestYouTubeClient:
    """Tests for YouTubeClient.fetch_video."""

    @pytest.mark.asyncio
    async def test_fetch_video(self, settings_factory):
        """Test the three parts are requested and returned."""
        settings = settings_factory(youtube_api_key="yt-key")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            return httpx.Response(200, json={"items": [YOUTUBE_ITEM]})

        data = await _youtube_client(settings, handler).fetch_video("dQw4w9WgXcQ")

        assert data.youtube_id == "dQw4w9WgXcQ"
        assert data.title == "Never Gonna Give You Up"
        assert data.thumbnail.endswith("hqdefault.jpg")
        assert seen["url"].path == "/youtube/v3/videos"
        assert seen["url"].params["id"] == "dQw4w9WgXcQ"
        assert seen["url"].params["key"] == "yt-key"
        assert seen["url"].params["part"] == "snippet,statistics,player"

    @pytest.mark.asyncio
    async def test_no_items(self, settings):
        """Test an unknown id raises VIDEO_NOT_FOUND."""
        client = _youtube_client(settings, lambda request: httpx.Response(200, json={"items": []}))

        with pytest.raises(NotFoundError) as exc_info:
            await client.fetch_video("unknown123")

        assert exc_info.value.message == ERROR_MESSAGES.VIDEO_NOT_FOUND

    @pytest.mark.asyncio
    async def test_error_status(self, settings):
        """Test a non-2xx response raises BadRequestError."""
        client = _youtube_client(settings, lambda request: httpx.Response(403, json={}))

        with pytest.raises(BadRequestError) as exc_info:
            await client.fetch_video("dQw4w9WgXcQ")

        assert exc_info.value.message == ERROR_MESSAGES.YOUTUBE_REQUEST_FAILED

    @pytest.mark.asyncio
    async def test_transport_error(self, settings):
        """Test network failures raise BadRequestError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BadRequestError):
            await _youtube_client(settings, handler).fetch_video("dQw4w9WgXcQ")

    def test_thumbnail_preference(self):
        """Test the largest available thumbnail wins."""
        data = YouTubeVideoData(
            youtube_id="x",
            snippet={"thumbnails": {
                "default": {"url": "small"},
                "maxres": {"url": "large"},
            }},
        )

        assert data.thumbnail == "large"
        assert YouTubeVideoData(youtube_id="x").thumbnail == ""


# ============================================================================
# VIDEO SERVICE
# ============================================================================


@pytest.fixture
def video_repo(attach_transaction):
    repo = AsyncMock(spec=VideoRepository)
    attach_transaction(repo)
    return repo


@pytest.fixture
def youtube_client():
    return AsyncMock(spec=YouTubeClient)


@pytest.fixture
def video_service(video_repo, youtube_client) -> VideoService:
    return VideoService(video_repo, youtube_client)


class TestVideoService:
    """Tests for VideoService."""

    @pytest.mark.asyncio
    async def test_cached_video_is_linked(self, video_service, video_repo, youtube_client, video_factory):
        """Test a cached video is not fetched again but linked to the user."""
        video = video_factory()
        user_id = uuid4()
        video_repo.get_by_youtube_id.return_value = video

        result = await video_service.find_video_or_create(user_id, video.youtube_id)

        assert result == video
        youtube_client.fetch_video.assert_not_awaited()
        video_repo.link_to_user.assert_awaited_once_with(video.id, user_id)

    @pytest.mark.asyncio
    async def test_missing_video_is_fetched(self, video_service, video_repo, youtube_client, video_factory):
        """Test an unknown video is fetched, stored and linked."""
        video = video_factory()
        data = YouTubeVideoData(youtube_id=video.youtube_id, snippet=video.snippet)
        video_repo.get_by_youtube_id.return_value = None
        youtube_client.fetch_video.return_value = data
        video_repo.create_video.return_value = video

        result = await video_service.get_video_by_youtube_id(uuid4(), video.youtube_id)

        assert result == video
        assert video_repo.create_video.await_args.args[0] == data
        video_repo.link_to_user.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_youtube_failure_stores_nothing(self, video_service, video_repo, youtube_client):
        """Test nothing is written when YouTube fails."""
        video_repo.get_by_youtube_id.return_value = None
        youtube_client.fetch_video.side_effect = NotFoundError(ERROR_MESSAGES.VIDEO_NOT_FOUND)

        with pytest.raises(NotFoundError):
            await video_service.find_video_or_create(uuid4(), "unknown123")

        video_repo.create_video.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_user_videos_page(self, video_service, video_repo, video_factory):
        """Test listing returns the page and its pagination block."""
        video_repo.list_for_user.return_value = [video_factory()]
        video_repo.count_for_user.return_value = 9

        videos, page = await video_service.get_user_videos(
            uuid4(), PaginationParams(page=1, limit=8)
        )

        assert len(videos) == 1
        assert page.total_pages == 2
        assert page.has_next_page


# ============================================================================
# NOTE SERVICE
# ============================================================================


@pytest.fixture
def note_repo():
    return AsyncMock(spec=NoteRepository)


@pytest.fixture
def note_service(note_repo) -> NoteService:
    return NoteService(note_repo, AsyncMock(spec=VideoService))


def _create_request(**overrides) -> CreateNoteRequest:
    values = {
        "title": "Chorus",
        "content": "The chorus starts here and repeats twice.",
        "youtubeId": "dQw4w9WgXcQ",
        "timestamp": 43.5,
    }
    values.update(overrides)
    return CreateNoteRequest(**values)


class TestNoteService:
    """Tests for NoteService."""

    @pytest.mark.asyncio
    async def test_create_uses_cached_video_details(self, note_service, note_repo, video_factory, note_factory):
        """Test video title and thumbnail default to the cached video."""
        video = video_factory()
        user_id = uuid4()
        note_service.video_service.find_video_or_create.return_value = video
        note_repo.create_note.return_value = note_factory()

        await note_service.create_note(user_id, _create_request())

        kwargs = note_repo.create_note.await_args.kwargs
        assert kwargs["user_id"] == user_id
        assert kwargs["video_id"] == video.id
        assert kwargs["video_title"] == "Never Gonna Give You Up"
        assert kwargs["thumbnail"].endswith("hqdefault.jpg")

    @pytest.mark.asyncio
    async def test_create_keeps_supplied_details(self, note_service, note_repo, video_factory, note_factory):
        """Test client supplied video title and thumbnail win."""
        note_service.video_service.find_video_or_create.return_value = video_factory()
        note_repo.create_note.return_value = note_factory()

        await note_service.create_note(
            uuid4(), _create_request(videoTitle="My title", thumbnail="https://example.com/t.jpg")
        )

        kwargs = note_repo.create_note.await_args.kwargs
        assert kwargs["video_title"] == "My title"
        assert kwargs["thumbnail"] == "https://example.com/t.jpg"

    @pytest.mark.asyncio
    async def test_update_only_supplied_fields(self, note_service, note_repo, note_factory):
        """Test only the fields sent by the client are changed."""
        note_repo.update_note.return_value = note_factory(title="New title")
        note_id, user_id = uuid4(), uuid4()

        await note_service.update_note(user_id, note_id, UpdateNoteRequest(title="New title"))

        note_repo.update_note.assert_awaited_once_with(note_id, user_id, {"title": "New title"})

    @pytest.mark.asyncio
    async def test_update_nothing(self, note_service, note_repo):
        """Test an empty update is rejected before touching the database."""
        with pytest.raises(BadRequestError):
            await note_service.update_note(uuid4(), uuid4(), UpdateNoteRequest())

        note_repo.update_note.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_users_note_is_not_found(self, note_service, note_repo):
        """Test notes of other users behave like missing ones."""
        note_repo.get_note.return_value = None
        note_repo.update_note.return_value = None
        note_repo.delete_note.return_value = False

        with pytest.raises(NotFoundError):
            await note_service.get_note_by_id(uuid4(), uuid4())
        with pytest.raises(NotFoundError):
            await note_service.update_note(uuid4(), uuid4(), UpdateNoteRequest(timestamp=1))
        with pytest.raises(NotFoundError):
            await note_service.delete_note(uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_recent_notes(self, note_service, note_repo):
        """Test recent lists are the two newest created or updated notes."""
        user_id = uuid4()
        note_repo.list_notes.return_value = []

        await note_service.get_recent_notes(user_id)
        await note_service.get_recently_updated_notes(user_id)

        first, second = note_repo.list_notes.await_args_list
        assert first.kwargs == {"limit": 2, "sort_by": "created_at", "order": "desc"}
        assert second.kwargs == {"limit": 2, "sort_by": "updated_at", "order": "desc"}

    @pytest.mark.asyncio
    async def test_notes_by_video(self, note_service, note_repo, note_factory):
        """Test listing by video filters on the YouTube id."""
        note_repo.list_notes.return_value = [note_factory()]
        note_repo.count_notes.return_value = 1

        notes, page = await note_service.get_notes_by_video(
            uuid4(), "dQw4w9WgXcQ", PaginationParams(page=1, limit=8, sort_by="timestamp", order="asc")
        )

        assert len(notes) == 1
        assert page.total_items == 1
        kwargs = note_repo.list_notes.await_args.kwargs
        assert kwargs["youtube_id"] == "dQw4w9WgXcQ"
        assert kwargs["sort_by"] == "timestamp"
        assert kwargs["order"] == "asc"

"""
Integration tests for the video and note routes.
"""

from uuid import uuid4

import pytest

from api.src.constants import ERROR_MESSAGES
from api.src.errors import BadRequestError, NotFoundError
from api.src.models.common import Pagination

API = "/api/v1"

NEW_NOTE = {
    "title": "Chorus",
    "content": "The chorus starts here and repeats twice.",
    "youtubeId": "dQw4w9WgXcQ",
    "timestamp": 43.5,
}


# ============================================================================
# VIDEOS
# ============================================================================


class TestVideoRoutes:
    """Tests for /videos."""

    def test_requires_authentication(self, client):
        """Test video routes are protected."""
        assert client.get(f"{API}/videos").status_code == 401

    def test_list_videos(self, client, services, auth_headers, user_id, video_factory):
        """Test the user's videos are returned with pagination."""
        services.video.get_user_videos.return_value = (
            [video_factory()], Pagination.build(9, 1, 8)
        )

        response = client.get(f"{API}/videos", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["data"][0]["youtubeId"] == "dQw4w9WgXcQ"
        assert body["pagination"] == {
            "totalPages": 2,
            "totalItems": 9,
            "currentPage": 1,
            "hasNextPage": True,
            "hasPrevPage": False,
        }
        args = services.video.get_user_videos.await_args.args
        assert args[0] == user_id
        assert args[1].limit == 8

    def test_list_videos_query(self, client, services, auth_headers):
        """Test page, limit and sort are read from the query string."""
        services.video.get_user_videos.return_value = ([], Pagination.build(0, 2, 5))

        client.get(
            f"{API}/videos",
            params={"page": 2, "limit": 5, "sortBy": "updatedAt", "order": "asc"},
            headers=auth_headers
        )

        pagination = services.video.get_user_videos.await_args.args[1]
        assert pagination.page == 2
        assert pagination.limit == 5
        assert pagination.sort_by == "updated_at"
        assert pagination.order == "asc"

    def test_get_video(self, client, services, auth_headers, user_id, video_factory):
        """Test opening a video returns its YouTube parts."""
        services.video.get_video_by_youtube_id.return_value = video_factory()

        response = client.get(f"{API}/videos/dQw4w9WgXcQ", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["snippet"]["title"] == "Never Gonna Give You Up"
        assert data["statistics"]["viewCount"] == "1500000000"
        services.video.get_video_by_youtube_id.assert_awaited_once_with(user_id, "dQw4w9WgXcQ")

    def test_unknown_video(self, client, services, auth_headers):
        """Test an id YouTube does not know is 404."""
        services.video.get_video_by_youtube_id.side_effect = NotFoundError(
            ERROR_MESSAGES.VIDEO_NOT_FOUND
        )

        response = client.get(f"{API}/videos/unknown123", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["message"] == ERROR_MESSAGES.VIDEO_NOT_FOUND

    def test_invalid_youtube_id(self, client, services, auth_headers):
        """Test ids with invalid characters never reach the service."""
        response = client.get(f"{API}/videos/bad%20id!", headers=auth_headers)

        assert response.status_code == 400
        services.video.get_video_by_youtube_id.assert_not_awaited()


# ============================================================================
# NOTES
# ============================================================================


class TestCreateNote:
    """Tests for POST /notes."""

    def test_create(self, client, services, auth_headers, user_id, note_factory):
        """Test a note is created for the signed-in user."""
        note = note_factory(user_id=user_id)
        services.note.create_note.return_value = note

        response = client.post(f"{API}/notes", json=NEW_NOTE, headers=auth_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == 201
        assert body["data"]["id"] == str(note.id)
        assert body["data"]["videoTitle"] == "Never Gonna Give You Up"
        user, request = services.note.create_note.await_args.args
        assert user == user_id
        assert request.youtube_id == "dQw4w9WgXcQ"
        assert request.video_title is None

    @pytest.mark.parametrize("overrides,field", [
        ({"title": "ab"}, "title"),
        ({"content": "short"}, "content"),
        ({"timestamp": -1}, "timestamp"),
        ({"youtubeId": "bad id!"}, "youtubeId"),
    ])
    def test_invalid_fields(self, client, services, auth_headers, overrides, field):
        """Test invalid fields are rejected with their name."""
        response = client.post(
            f"{API}/notes", json={**NEW_NOTE, **overrides}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == field
        services.note.create_note.assert_not_awaited()

    def test_unknown_field(self, client, services, auth_headers):
        """Test unknown fields are rejected."""
        response = client.post(
            f"{API}/notes", json={**NEW_NOTE, "userId": str(uuid4())}, headers=auth_headers
        )

        assert response.status_code == 400

    def test_youtube_failure(self, client, services, auth_headers):
        """Test YouTube errors are reported as 400."""
        services.note.create_note.side_effect = BadRequestError(
            ERROR_MESSAGES.YOUTUBE_REQUEST_FAILED
        )

        response = client.post(f"{API}/notes", json=NEW_NOTE, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == ERROR_MESSAGES.YOUTUBE_REQUEST_FAILED


class TestListNotes:
    """Tests for the note listing routes."""

    def test_list(self, client, services, auth_headers, note_factory):
        """Test the list is paginated and sorted by the requested key."""
        services.note.get_user_notes.return_value = (
            [note_factory(), note_factory()], Pagination.build(2, 1, 8)
        )

        response = client.get(
            f"{API}/notes", params={"sortBy": "timestamp", "order": "asc"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert len(response.json()["data"]) == 2
        assert response.json()["pagination"]["totalItems"] == 2
        pagination = services.note.get_user_notes.await_args.args[1]
        assert pagination.sort_by == "timestamp"
        assert pagination.order == "asc"

    def test_unknown_sort_key(self, client, services, auth_headers):
        """Test unknown sort keys fall back to creation date."""
        services.note.get_user_notes.return_value = ([], Pagination.build(0, 1, 8))

        client.get(f"{API}/notes", params={"sortBy": "password"}, headers=auth_headers)

        assert services.note.get_user_notes.await_args.args[1].sort_by == "created_at"

    def test_recent(self, client, services, auth_headers, user_id, note_factory):
        """Test the recent list is not paginated."""
        services.note.get_recent_notes.return_value = [note_factory()]

        response = client.get(f"{API}/notes/recent", headers=auth_headers)

        assert response.status_code == 200
        assert "pagination" not in response.json()
        services.note.get_recent_notes.assert_awaited_once_with(user_id)

    def test_recently_updated(self, client, services, auth_headers, user_id):
        """Test the recently updated list."""
        services.note.get_recently_updated_notes.return_value = []

        response = client.get(f"{API}/notes/recently-updated", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"] == []
        services.note.get_recently_updated_notes.assert_awaited_once_with(user_id)

    def test_by_video(self, client, services, auth_headers, user_id, note_factory):
        """Test notes are filtered by YouTube id."""
        services.note.get_notes_by_video.return_value = (
            [note_factory()], Pagination.build(1, 1, 8)
        )

        response = client.get(f"{API}/notes/video/dQw4w9WgXcQ", headers=auth_headers)

        assert response.status_code == 200
        args = services.note.get_notes_by_video.await_args.args
        assert args[0] == user_id
        assert args[1] == "dQw4w9WgXcQ"


class TestNoteItem:
    """Tests for /notes/{note_id}."""

    def test_get(self, client, services, auth_headers, user_id, note_factory):
        """Test a note is fetched for its owner."""
        note = note_factory(user_id=user_id)
        services.note.get_note_by_id.return_value = note

        response = client.get(f"{API}/notes/{note.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["content"] == note.content
        services.note.get_note_by_id.assert_awaited_once_with(user_id, note.id)

    def test_invalid_id(self, client, services, auth_headers):
        """Test a malformed note id is 400."""
        response = client.get(f"{API}/notes/not-a-uuid", headers=auth_headers)

        assert response.status_code == 400
        services.note.get_note_by_id.assert_not_awaited()

    def test_missing(self, client, services, auth_headers):
        """Test missing notes and other users' notes are 404."""
        services.note.get_note_by_id.side_effect = NotFoundError(ERROR_MESSAGES.NOTE_NOT_FOUND)

        response = client.get(f"{API}/notes/{uuid4()}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["message"] == ERROR_MESSAGES.NOTE_NOT_FOUND

    def test_update(self, client, services, auth_headers, user_id, note_factory):
        """Test supplied fields are passed on."""
        note = note_factory(user_id=user_id, title="New title")
        services.note.update_note.return_value = note

        response = client.patch(
            f"{API}/notes/{note.id}", json={"title": "New title"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["title"] == "New title"
        request = services.note.update_note.await_args.args[2]
        assert request.changes() == {"title": "New title"}

    def test_update_null_rejected(self, client, services, auth_headers):
        """Test fields cannot be cleared with null."""
        response = client.patch(
            f"{API}/notes/{uuid4()}", json={"title": None}, headers=auth_headers
        )

        assert response.status_code == 400
        services.note.update_note.assert_not_awaited()

    def test_update_video_fields_rejected(self, client, services, auth_headers):
        """Test the video of a note cannot be changed."""
        response = client.patch(
            f"{API}/notes/{uuid4()}", json={"youtubeId": "other123"}, headers=auth_headers
        )

        assert response.status_code == 400

    def test_delete(self, client, services, auth_headers, user_id):
        """Test a note is deleted."""
        note_id = uuid4()

        response = client.delete(f"{API}/notes/{note_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Note deleted"
        services.note.delete_note.assert_awaited_once_with(user_id, note_id)

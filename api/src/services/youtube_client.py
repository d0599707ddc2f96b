"""
YouTube Data API client (httpx).
"""

import time

import httpx
import structlog

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES
from api.src.errors import BadRequestError, NotFoundError
from api.src.models.video import YouTubeVideoData
from shared.metrics import get_app_metrics
from shared.tracing import trace_function

logger = structlog.get_logger(__name__)

VIDEO_PARTS = "snippet,statistics,player"


class YouTubeClient:
    """Fetches video metadata from the YouTube Data API v3."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        """
        Initialize client.

        Args:
            http_client: Shared async HTTP client
            settings: Application settings (API URL, key, timeout)
        """
        self.http_client = http_client
        self.settings = settings

    @trace_function("youtube.fetch_video", attributes={"youtube.video_id": "youtube_id"})
    async def fetch_video(self, youtube_id: str) -> YouTubeVideoData:
        """
        Fetch one video.

        Args:
            youtube_id: YouTube video id

        Returns:
            Snippet, statistics and player parts of the video

        Raises:
            BadRequestError: Transport failure or non-2xx response
            NotFoundError: VIDEO_NOT_FOUND when YouTube returns no items
        """
        metrics = get_app_metrics()
        started = time.perf_counter()

        try:
            response = await self.http_client.get(
                f"{self.settings.youtube_api_url}/videos",
                params={
                    "id": youtube_id,
                    "key": self.settings.youtube_api_key,
                    "part": VIDEO_PARTS,
                },
                timeout=self.settings.youtube_timeout_seconds
            )
        except httpx.HTTPError as e:
            metrics.youtube_requests.labels(outcome="error").inc()
            logger.error("youtube_request_failed", youtube_id=youtube_id, error=str(e))
            raise BadRequestError(ERROR_MESSAGES.YOUTUBE_REQUEST_FAILED) from e
        finally:
            metrics.youtube_request_duration.observe(time.perf_counter() - started)

        if not response.is_success:
            metrics.youtube_requests.labels(outcome="error").inc()
            logger.error(
                "youtube_request_rejected",
                youtube_id=youtube_id,
                status_code=response.status_code
            )
            raise BadRequestError(ERROR_MESSAGES.YOUTUBE_REQUEST_FAILED)

        items = response.json().get("items") or []
        if not items:
            metrics.youtube_requests.labels(outcome="not_found").inc()
            raise NotFoundError(ERROR_MESSAGES.VIDEO_NOT_FOUND)

        item = items[0]
        metrics.youtube_requests.labels(outcome="success").inc()
        logger.debug("youtube_video_fetched", youtube_id=youtube_id)

        return YouTubeVideoData(
            youtube_id=youtube_id,
            snippet=item.get("snippet") or {},
            statistics=item.get("statistics") or {},
            player=item.get("player") or {},
        )

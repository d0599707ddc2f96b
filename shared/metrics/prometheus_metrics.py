"""Prometheus metrics definitions and helpers.

Provides HTTP and domain metrics for the TubeNote API.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    REGISTRY,
    CollectorRegistry,
)


class HTTPMetrics:
    """Request level metrics recorded by the logging middleware."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize HTTP metrics.

        Args:
            registry: Prometheus registry to use
        """
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        self.requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method"],
            registry=registry,
        )


class TubeNoteMetrics:
    """Domain metrics: authentication, mail delivery, YouTube calls."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize domain metrics.

        Args:
            registry: Prometheus registry to use
        """
        # Login, register, refresh, logout, verify, reset outcomes
        self.auth_events = Counter(
            "tubenote_auth_events_total",
            "Authentication events by outcome",
            ["event", "outcome"],
            registry=registry,
        )

        self.emails_sent = Counter(
            "tubenote_emails_sent_total",
            "Emails handed to the SMTP server",
            ["template", "outcome"],
            registry=registry,
        )

        self.youtube_requests = Counter(
            "tubenote_youtube_requests_total",
            "Calls to the YouTube Data API",
            ["outcome"],
            registry=registry,
        )

        self.youtube_request_duration = Histogram(
            "tubenote_youtube_request_duration_seconds",
            "Latency of YouTube Data API calls",
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
            registry=registry,
        )

        self.rate_limit_blocks = Counter(
            "tubenote_rate_limit_blocks_total",
            "Requests rejected by rate limiting",
            ["scope"],
            registry=registry,
        )

        self.db_pool_size = Gauge(
            "tubenote_db_pool_size",
            "Connections currently held by the pool",
            registry=registry,
        )

        self.db_pool_idle = Gauge(
            "tubenote_db_pool_idle",
            "Idle connections in the pool",
            registry=registry,
        )


_http_metrics: HTTPMetrics | None = None
_app_metrics: TubeNoteMetrics | None = None


def get_http_metrics() -> HTTPMetrics:
    """Return the process-wide HTTP metrics, creating them on first use."""
    global _http_metrics
    if _http_metrics is None:
        _http_metrics = HTTPMetrics()
    return _http_metrics


def get_app_metrics() -> TubeNoteMetrics:
    """Return the process-wide domain metrics, creating them on first use."""
    global _app_metrics
    if _app_metrics is None:
        _app_metrics = TubeNoteMetrics()
    return _app_metrics


def render_latest(registry: CollectorRegistry = REGISTRY) -> bytes:
    """Render the registry in the Prometheus text exposition format.

    Args:
        registry: Prometheus registry to render

    Returns:
        Encoded metrics payload
    """
    return generate_latest(registry)

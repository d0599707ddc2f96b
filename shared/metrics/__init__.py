"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    HTTPMetrics,
    TubeNoteMetrics,
    get_app_metrics,
    get_http_metrics,
    render_latest,
)

__all__ = [
    "HTTPMetrics",
    "TubeNoteMetrics",
    "get_app_metrics",
    "get_http_metrics",
    "render_latest",
]

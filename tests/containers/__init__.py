"""Testcontainers for integration testing."""

from .postgres import (
    TubeNotePostgresContainer,
    get_postgres_container,
    stop_postgres_container,
)

__all__ = [
    "TubeNotePostgresContainer",
    "get_postgres_container",
    "stop_postgres_container",
]

"""Reusable Testcontainers configuration for repository tests.

Provides a PostgreSQL container with the TubeNote schema created from the
SQLAlchemy models.
"""

import asyncio
from typing import Optional

from testcontainers.postgres import PostgresContainer

from api.src.models.db import create_schema


class TubeNotePostgresContainer(PostgresContainer):
    """PostgreSQL container with the application schema."""

    def __init__(
        self,
        image: str = "postgres:15-alpine",
        username: str = "tubenote",
        password: str = "tubenote_test",
        dbname: str = "tubenote_test",
        **kwargs: object,
    ) -> None:
        """Initialize PostgreSQL container.

        Args:
            image: PostgreSQL image tag (13+ for gen_random_uuid)
            username: Database user
            password: Database password
            dbname: Database name
            **kwargs: Additional container arguments
        """
        super().__init__(
            image=image,
            username=username,
            password=password,
            dbname=dbname,
            **kwargs,
        )

    def get_dsn(self) -> str:
        """Get an asyncpg connection URL.

        Returns:
            ``postgresql://`` URL of the running container
        """
        host = self.get_container_host_ip()
        port = self.get_exposed_port(5432)
        return f"postgresql://{self.username}:{self.password}@{host}:{port}/{self.dbname}"

    def start(self) -> "TubeNotePostgresContainer":
        """Start PostgreSQL and create the tables.

        Returns:
            Started container instance
        """
        super().start()
        asyncio.run(create_schema(self.get_dsn()))
        return self


# Singleton container instance for the test session
_postgres_container: Optional[TubeNotePostgresContainer] = None


def get_postgres_container() -> TubeNotePostgresContainer:
    """Get or create the PostgreSQL container instance.

    Returns:
        TubeNotePostgresContainer instance
    """
    global _postgres_container
    if _postgres_container is None:
        _postgres_container = TubeNotePostgresContainer()
        _postgres_container.start()
    return _postgres_container


def stop_postgres_container() -> None:
    """Stop the shared container if it was started."""
    global _postgres_container
    if _postgres_container is not None:
        _postgres_container.stop()
        _postgres_container = None

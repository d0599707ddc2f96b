"""
Database schema.

SQLAlchemy 2.0 declarative models describing the TubeNote tables. The
application talks to PostgreSQL with raw SQL through asyncpg; these models
are the single source of the DDL (``Base.metadata.create_all``) and keep
column names, constraints and cascades documented in one place.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ============================================================================
# SQLAlchemy Base
# ============================================================================


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Provides common functionality for all database models including
    timezone-aware timestamps and UUID primary keys.
    """
    pass


def _uuid_pk() -> Mapped[UUID]:
    return mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=text("gen_random_uuid()"),
        nullable=False
    )


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP")
    )


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc)
    )


# ============================================================================
# Association Tables
# ============================================================================


# Videos are cached once per YouTube id and linked to every user who opened them
user_videos = Table(
    "user_videos",
    Base.metadata,
    Column(
        "user_id",
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False
    ),
    Column(
        "video_id",
        PGUUID(as_uuid=True),
        ForeignKey("videos.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False
    ),
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP")
    ),
    Index("idx_user_videos_user_id", "user_id"),
    Index("idx_user_videos_video_id", "video_id"),
)


# ============================================================================
# SQLAlchemy Models
# ============================================================================


class User(Base):
    """
    User account model.

    The password column is nullable: users created through Google sign-in
    have no local password until they set one.
    """
    __tablename__ = "users"

    id: Mapped[UUID] = _uuid_pk()
    username: Mapped[str] = mapped_column(
        String(50),
        nullable=False
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False
    )
    password: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True
    )
    profile_picture: Mapped[Optional[str]] = mapped_column(
        String(2048),
        nullable=True
    )
    is_email_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=text("false"),
        nullable=False
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    # Relationships
    accounts: Mapped[List["Account"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan"
    )
    videos: Mapped[List["Video"]] = relationship(
        secondary=user_videos,
        back_populates="users"
    )
    notes: Mapped[List["Note"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_users_email_lower", text("lower(email)"), unique=True),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<User(id={self.id}, username='{self.username}', email='{self.email}')>"


class Account(Base):
    """External identity provider account linked to a user."""
    __tablename__ = "accounts"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="oauth")
    created_at: Mapped[datetime] = _created_at()

    user: Mapped[User] = relationship(back_populates="accounts")

    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_accounts_provider_account"),
        Index("idx_accounts_user_id", "user_id"),
    )


class Video(Base):
    """YouTube video metadata cached from the YouTube Data API."""
    __tablename__ = "videos"

    id: Mapped[UUID] = _uuid_pk()
    youtube_id: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False
    )
    snippet: Mapped[Dict[str, Any]] = mapped_column(JSONB, nullable=False)
    statistics: Mapped[Dict[str, Any]] = mapped_column(JSONB, nullable=False)
    player: Mapped[Dict[str, Any]] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    users: Mapped[List[User]] = relationship(
        secondary=user_videos,
        back_populates="videos"
    )
    notes: Mapped[List["Note"]] = relationship(
        back_populates="video",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (
        Index("idx_videos_youtube_id", "youtube_id"),
    )


class Note(Base):
    """A timestamped note a user wrote against a video."""
    __tablename__ = "notes"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    video_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False
    )
    youtube_id: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    video_title: Mapped[str] = mapped_column(String(255), nullable=False)
    thumbnail: Mapped[str] = mapped_column(String(2048), nullable=False)
    timestamp: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    user: Mapped[User] = relationship(back_populates="notes")
    video: Mapped[Video] = relationship(back_populates="notes")

    __table_args__ = (
        Index("idx_notes_user_id_created_at", "user_id", "created_at"),
        Index("idx_notes_user_id_updated_at", "user_id", "updated_at"),
        Index("idx_notes_user_id_youtube_id", "user_id", "youtube_id"),
    )


class RefreshToken(Base):
    """
    Refresh token record.

    Only SHA-256 digests of the token, device id and IP address are stored.
    """
    __tablename__ = "refresh_tokens"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    device_id: Mapped[str] = mapped_column(String(128), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(128), nullable=False)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    browser: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    os: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    device_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    revoked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=text("false"),
        nullable=False
    )
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revocation_reason: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_refresh_tokens_user_id", "user_id"),
        Index("idx_refresh_tokens_expires_at", "expires_at"),
    )


class EmailVerificationToken(Base):
    """Signed email verification token issued at registration."""
    __tablename__ = "email_verification_tokens"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_email_verification_tokens_user_id", "user_id"),
    )


# ============================================================================
# Schema creation
# ============================================================================


def to_sqlalchemy_url(database_url: str) -> str:
    """Point a ``postgresql://`` URL at the asyncpg dialect."""
    for prefix in ("postgresql+asyncpg://", "postgresql://", "postgres://"):
        if database_url.startswith(prefix):
            return "postgresql+asyncpg://" + database_url[len(prefix):]
    raise ValueError(f"Unsupported database URL scheme: {database_url.split(':', 1)[0]}")


async def create_schema(database_url: str) -> None:
    """
    Create missing tables and indexes.

    Existing tables are left untouched; this is not a migration tool.

    Args:
        database_url: PostgreSQL URL (``postgresql://...``)
    """
    engine = create_async_engine(to_sqlalchemy_url(database_url))
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()

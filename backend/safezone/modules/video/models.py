"""Video record model.

A Video row is created as soon as an upload is accepted, in ``processing``
state with empty storage keys, and moves exactly once to ``ready`` or
``error``.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from safezone.core.database import Base
from safezone.modules.transcoding.models import Quality


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoStatus(str, Enum):
    """Lifecycle status of a video record."""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class Video(Base):
    """Persisted video record."""

    __tablename__ = "videos"
    __table_args__ = (
        Index("ix_videos_status_created_at", "status", "created_at"),
        Index("ix_videos_category_view_count", "category", "view_count"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    unique_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, default=lambda: uuid.uuid4().hex
    )

    # Caller-supplied metadata
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    zone: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Derived by validation
    duration_seconds: Mapped[float] = mapped_column(default=0.0)

    status: Mapped[str] = mapped_column(
        String(20), default=VideoStatus.PROCESSING.value, nullable=False
    )

    # Storage keys, empty until ready
    primary_rendition_key: Mapped[str] = mapped_column(String(512), default="")
    thumbnail_key: Mapped[str] = mapped_column(String(512), default="")
    rendition_high_key: Mapped[str] = mapped_column(String(512), default="")
    rendition_medium_key: Mapped[str] = mapped_column(String(512), default="")
    rendition_low_key: Mapped[str] = mapped_column(String(512), default="")
    staging_key: Mapped[str] = mapped_column(String(512), default="")

    processing_error: Mapped[str] = mapped_column(Text, default="")
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, title={self.title!r}, status={self.status})>"

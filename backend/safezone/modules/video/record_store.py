"""Record store client for video records.

``VideoRecordStore`` is the contract the job coordinator, the sweep and the
HTTP service depend on. ``SqlVideoRecordStore`` implements it on SQLAlchemy
with one session and one commit per call.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from safezone.modules.video.models import Quality, Video, VideoStatus
from safezone.modules.video.repository import VideoRepository


@dataclass(frozen=True)
class RenditionKeys:
    """Storage keys of the three renditions."""

    high: str = ""
    medium: str = ""
    low: str = ""

    def get(self, quality: Quality) -> str:
        return getattr(self, quality.value)

    def as_dict(self) -> dict[str, str]:
        return {q.value: self.get(q) for q in Quality}


@dataclass(frozen=True)
class PublishedKeys:
    """The four keys that are written to a record as one group."""

    thumbnail: str
    renditions: RenditionKeys

    @property
    def primary(self) -> str:
        return self.renditions.high

    def all_keys(self) -> list[str]:
        return [self.thumbnail, *self.renditions.as_dict().values()]

    def is_complete(self) -> bool:
        keys = self.all_keys()
        return all(keys) and len(set(keys)) == len(keys)


@dataclass
class VideoRecord:
    """Read model of a video record."""

    id: uuid.UUID
    unique_id: str
    title: str
    description: str
    category: str
    zone: str
    status: VideoStatus
    duration_seconds: float = 0.0
    primary_rendition_key: str = ""
    thumbnail_key: str = ""
    rendition_keys: RenditionKeys = field(default_factory=RenditionKeys)
    processing_error: str = ""
    view_count: int = 0
    staging_key: str = ""
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, video: Video) -> "VideoRecord":
        return cls(
            id=video.id,
            unique_id=video.unique_id,
            title=video.title,
            description=video.description,
            category=video.category,
            zone=video.zone,
            status=VideoStatus(video.status),
            duration_seconds=video.duration_seconds or 0.0,
            primary_rendition_key=video.primary_rendition_key or "",
            thumbnail_key=video.thumbnail_key or "",
            rendition_keys=RenditionKeys(
                high=video.rendition_high_key or "",
                medium=video.rendition_medium_key or "",
                low=video.rendition_low_key or "",
            ),
            processing_error=video.processing_error or "",
            view_count=video.view_count or 0,
            staging_key=video.staging_key or "",
            owner_id=video.owner_id,
            created_at=video.created_at,
            updated_at=video.updated_at,
        )


class VideoRecordStore(ABC):
    """Persisted video records, addressed by id."""

    @abstractmethod
    async def create_provisional(
        self,
        title: str,
        description: str,
        category: str,
        zone: str,
        staging_key: str,
        owner_id: Optional[str] = None,
    ) -> VideoRecord:
        """Create a record in ``processing`` state with empty keys."""

    @abstractmethod
    async def get(self, video_id: uuid.UUID) -> Optional[VideoRecord]:
        """Fetch a record by id."""

    @abstractmethod
    async def list_records(
        self,
        category: Optional[str] = None,
        status: Optional[VideoStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[VideoRecord]:
        """List records, newest first; no limit when ``limit`` is None."""

    @abstractmethod
    async def record_duration(self, video_id: uuid.UUID, duration_seconds: float) -> bool:
        """Store the validated duration while the record is processing."""

    @abstractmethod
    async def mark_ready(
        self,
        video_id: uuid.UUID,
        keys: PublishedKeys,
        duration_seconds: float,
    ) -> Optional[VideoRecord]:
        """Transition processing -> ready writing all keys in one statement.

        Returns None when the record is missing or no longer processing.
        """

    @abstractmethod
    async def mark_error(self, video_id: uuid.UUID, message: str) -> Optional[VideoRecord]:
        """Transition processing -> error.

        Returns None when the record is missing or no longer processing.
        """

    @abstractmethod
    async def increment_views(self, video_id: uuid.UUID) -> Optional[VideoRecord]:
        """Add one view atomically; None if the record is missing."""

    @abstractmethod
    async def count_processing(self) -> int:
        """Number of records still processing."""

    @abstractmethod
    async def list_stale_processing(self, older_than: datetime) -> list[VideoRecord]:
        """Processing records created before ``older_than``."""

    @abstractmethod
    async def statuses(self, video_ids: list[uuid.UUID]) -> dict[uuid.UUID, VideoStatus]:
        """Status of each existing id; missing ids are absent from the result."""

    @abstractmethod
    async def most_viewed(self, category: str, limit: int) -> list[VideoRecord]:
        """Records of a category by view count, highest first."""

    @abstractmethod
    async def recent_ready(self, limit: int) -> list[VideoRecord]:
        """Newest ready records."""

    @abstractmethod
    async def delete(self, video_id: uuid.UUID) -> bool:
        """Remove a record; False if it did not exist."""


class SqlVideoRecordStore(VideoRecordStore):
    """SQLAlchemy-backed record store."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def create_provisional(
        self,
        title: str,
        description: str,
        category: str,
        zone: str,
        staging_key: str,
        owner_id: Optional[str] = None,
    ) -> VideoRecord:
        async with self._session_maker() as session:
            video = await VideoRepository(session).create(
                title=title,
                description=description,
                category=category,
                zone=zone,
                staging_key=staging_key,
                owner_id=owner_id,
            )
            record = VideoRecord.from_model(video)
            await session.commit()
            return record

    async def get(self, video_id: uuid.UUID) -> Optional[VideoRecord]:
        async with self._session_maker() as session:
            video = await VideoRepository(session).get_by_id(video_id)
            return VideoRecord.from_model(video) if video else None

    async def list_records(
        self,
        category: Optional[str] = None,
        status: Optional[VideoStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[VideoRecord]:
        async with self._session_maker() as session:
            videos = await VideoRepository(session).list_videos(
                category=category, status=status, limit=limit, offset=offset
            )
            return [VideoRecord.from_model(v) for v in videos]

    async def record_duration(self, video_id: uuid.UUID, duration_seconds: float) -> bool:
        return await self._update_if_processing(
            video_id, {"duration_seconds": duration_seconds}
        ) is not None

    async def mark_ready(
        self,
        video_id: uuid.UUID,
        keys: PublishedKeys,
        duration_seconds: float,
    ) -> Optional[VideoRecord]:
        if not keys.is_complete():
            raise ValueError("mark_ready requires four non-empty, distinct keys")
        return await self._update_if_processing(
            video_id,
            {
                "status": VideoStatus.READY.value,
                "duration_seconds": duration_seconds,
                "primary_rendition_key": keys.primary,
                "thumbnail_key": keys.thumbnail,
                "rendition_high_key": keys.renditions.high,
                "rendition_medium_key": keys.renditions.medium,
                "rendition_low_key": keys.renditions.low,
                "processing_error": "",
            },
        )

    async def mark_error(self, video_id: uuid.UUID, message: str) -> Optional[VideoRecord]:
        return await self._update_if_processing(
            video_id,
            {
                "status": VideoStatus.ERROR.value,
                "processing_error": message or "Unknown processing error",
            },
        )

    async def increment_views(self, video_id: uuid.UUID) -> Optional[VideoRecord]:
        async with self._session_maker() as session:
            video = await VideoRepository(session).increment_views(video_id)
            record = VideoRecord.from_model(video) if video else None
            await session.commit()
            return record

    async def count_processing(self) -> int:
        async with self._session_maker() as session:
            return await VideoRepository(session).count_by_status(VideoStatus.PROCESSING)

    async def list_stale_processing(self, older_than: datetime) -> list[VideoRecord]:
        async with self._session_maker() as session:
            videos = await VideoRepository(session).list_processing_older_than(older_than)
            return [VideoRecord.from_model(v) for v in videos]

    async def statuses(self, video_ids: list[uuid.UUID]) -> dict[uuid.UUID, VideoStatus]:
        async with self._session_maker() as session:
            raw = await VideoRepository(session).get_statuses(video_ids)
            return {vid: VideoStatus(s) for vid, s in raw.items()}

    async def most_viewed(self, category: str, limit: int) -> list[VideoRecord]:
        async with self._session_maker() as session:
            videos = await VideoRepository(session).most_viewed(category, limit)
            return [VideoRecord.from_model(v) for v in videos]

    async def recent_ready(self, limit: int) -> list[VideoRecord]:
        return await self.list_records(status=VideoStatus.READY, limit=limit)

    async def delete(self, video_id: uuid.UUID) -> bool:
        async with self._session_maker() as session:
            deleted = await VideoRepository(session).delete(video_id)
            await session.commit()
            return deleted

    async def _update_if_processing(
        self, video_id: uuid.UUID, values: dict
    ) -> Optional[VideoRecord]:
        async with self._session_maker() as session:
            video = await VideoRepository(session).update_if_processing(video_id, values)
            record = VideoRecord.from_model(video) if video else None
            await session.commit()
            return record

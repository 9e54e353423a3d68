"""Video service for the read side of the API.

Listing, lookup, view counting, signed stream URLs and deletion. Uploads go
through the job coordinator instead.
"""

import asyncio
import logging
import uuid
from typing import Optional

from safezone.core.errors import StorageError
from safezone.core.storage import Storage
from safezone.modules.video.models import Quality, VideoStatus
from safezone.modules.video.record_store import VideoRecord, VideoRecordStore
from safezone.modules.video.schemas import STREAM_TARGETS, normalize_category

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class VideoServiceError(Exception):
    """Base exception for video service errors."""

    pass


class VideoNotFoundError(VideoServiceError):
    """Raised when video is not found."""

    pass


class VideoNotReadyError(VideoServiceError):
    """Raised when a video has no published renditions yet."""

    pass


class InvalidQueryError(VideoServiceError):
    """Raised when query parameters are out of range."""

    pass


def _check_limit(limit: int) -> None:
    if limit <= 0 or limit > MAX_PAGE_SIZE:
        raise InvalidQueryError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}")


class VideoService:
    """Service for video record queries."""

    def __init__(self, records: VideoRecordStore, storage: Storage, signed_url_ttl: int):
        self.records = records
        self.storage = storage
        self.signed_url_ttl = signed_url_ttl

    async def get_video(self, video_id: uuid.UUID) -> VideoRecord:
        """Get video by ID.

        Raises:
            VideoNotFoundError: If video doesn't exist
        """
        record = await self.records.get(video_id)
        if record is None:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return record

    async def list_videos(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[VideoRecord]:
        """List videos, newest first.

        Args:
            category: Category filter, normalized like uploads
            status: Status filter (processing, ready, error)
            limit: Page size; all matching records when None
            offset: Records to skip

        Raises:
            InvalidQueryError: For an unknown status or out-of-range paging
        """
        if limit is not None:
            _check_limit(limit)
        if offset < 0:
            raise InvalidQueryError(f"offset must not be negative, got {offset}")

        status_filter = None
        if status:
            try:
                status_filter = VideoStatus(status)
            except ValueError:
                raise InvalidQueryError(f"Invalid status: {status}")

        return await self.records.list_records(
            category=normalize_category(category) if category else None,
            status=status_filter,
            limit=limit,
            offset=offset,
        )

    async def recent(self, limit: int = 5) -> list[VideoRecord]:
        _check_limit(limit)
        return await self.records.recent_ready(limit)

    async def most_viewed(self, category: str, limit: int = 5) -> list[VideoRecord]:
        _check_limit(limit)
        return await self.records.most_viewed(normalize_category(category), limit)

    async def increment_views(self, video_id: uuid.UUID) -> VideoRecord:
        """Add one view.

        Raises:
            VideoNotFoundError: If video doesn't exist
        """
        record = await self.records.increment_views(video_id)
        if record is None:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return record

    async def stream_url(self, video_id: uuid.UUID, quality: str = Quality.HIGH.value) -> str:
        """Signed read URL for one rendition or the thumbnail.

        Args:
            video_id: Video ID
            quality: high, medium, low or thumbnail

        Returns:
            str: URL valid for ``signed_url_ttl`` seconds

        Raises:
            InvalidQueryError: Unknown quality
            VideoNotFoundError: If video doesn't exist
            VideoNotReadyError: If the video is not ready
            StorageError: If the URL could not be signed
        """
        if quality not in STREAM_TARGETS:
            raise InvalidQueryError(
                f"Invalid quality '{quality}'. Allowed: {', '.join(STREAM_TARGETS)}"
            )
        record = await self.get_video(video_id)
        if record.status != VideoStatus.READY:
            raise VideoNotReadyError(f"Video {video_id} is {record.status.value}")

        if quality == "thumbnail":
            key = record.thumbnail_key
        else:
            key = record.rendition_keys.get(Quality(quality))
        return await asyncio.to_thread(self.storage.signed_get, key, self.signed_url_ttl)

    async def delete_video(self, video_id: uuid.UUID) -> None:
        """Delete a video record and its published artifacts.

        Artifacts that fail to delete are left for the maintenance sweep.

        Raises:
            VideoNotFoundError: If video doesn't exist
        """
        record = await self.get_video(video_id)
        if not await self.records.delete(video_id):
            raise VideoNotFoundError(f"Video {video_id} not found")

        keys = [record.thumbnail_key, *record.rendition_keys.as_dict().values()]
        for key in filter(None, keys):
            try:
                await asyncio.to_thread(self.storage.delete, key)
            except StorageError as e:
                logger.warning(
                    "Failed to delete video artifact",
                    extra={"video_id": str(video_id), "key": key, "error": e.message},
                )
        logger.info("Video deleted", extra={"video_id": str(video_id)})

"""Video repository for database operations.

Status transitions are single conditional UPDATE statements guarded by
``status = 'processing'`` so concurrent writers (the job, the sweep) cannot
produce a second terminal transition.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func as sql_func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from safezone.modules.video.models import Video, VideoStatus


class VideoRepository:
    """Repository for Video CRUD operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        title: str,
        description: str,
        category: str,
        zone: str,
        staging_key: str,
        owner_id: Optional[str] = None,
    ) -> Video:
        """Create a provisional video in ``processing`` state.

        Args:
            title: Video title
            description: Video description
            category: Normalized category
            zone: Workplace zone
            staging_key: ``temp/<stagedFileName>`` of the uploaded file
            owner_id: Uploading user, if known

        Returns:
            Video: Created video instance
        """
        video = Video(
            id=uuid.uuid4(),
            unique_id=uuid.uuid4().hex,
            title=title,
            description=description,
            category=category,
            zone=zone,
            owner_id=owner_id,
            staging_key=staging_key,
            status=VideoStatus.PROCESSING.value,
            duration_seconds=0.0,
            primary_rendition_key="",
            thumbnail_key="",
            rendition_high_key="",
            rendition_medium_key="",
            rendition_low_key="",
            processing_error="",
            view_count=0,
        )
        self.session.add(video)
        await self.session.flush()
        await self.session.refresh(video)
        return video

    async def get_by_id(self, video_id: uuid.UUID) -> Optional[Video]:
        result = await self.session.execute(
            select(Video)
            .where(Video.id == video_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_videos(
        self,
        category: Optional[str] = None,
        status: Optional[VideoStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Video]:
        """List videos, newest first.

        Args:
            category: Optional exact category filter
            status: Optional status filter
            limit: Maximum number of results, None for all
            offset: Number of results to skip

        Returns:
            list[Video]: Matching videos
        """
        query = select(Video).order_by(Video.created_at.desc(), Video.id)
        if category is not None:
            query = query.where(Video.category == category)
        if status is not None:
            query = query.where(Video.status == status.value)
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_if_processing(
        self, video_id: uuid.UUID, values: dict[str, Any]
    ) -> Optional[Video]:
        """Apply ``values`` in one statement only while the video is processing.

        Returns:
            Optional[Video]: Updated video, or None if the video is missing
            or already terminal
        """
        result = await self.session.execute(
            update(Video)
            .where(Video.id == video_id, Video.status == VideoStatus.PROCESSING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.get_by_id(video_id)

    async def increment_views(self, video_id: uuid.UUID) -> Optional[Video]:
        """Atomically add one view."""
        result = await self.session.execute(
            update(Video)
            .where(Video.id == video_id)
            .values(view_count=Video.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.get_by_id(video_id)

    async def count_by_status(self, status: VideoStatus) -> int:
        result = await self.session.execute(
            select(sql_func.count()).select_from(Video).where(Video.status == status.value)
        )
        return result.scalar_one()

    async def list_processing_older_than(self, cutoff: datetime) -> list[Video]:
        result = await self.session.execute(
            select(Video)
            .where(
                Video.status == VideoStatus.PROCESSING.value,
                Video.created_at < cutoff,
            )
            .order_by(Video.created_at)
        )
        return list(result.scalars().all())

    async def get_statuses(self, video_ids: list[uuid.UUID]) -> dict[uuid.UUID, str]:
        """Map of id to status for the ids that exist."""
        if not video_ids:
            return {}
        result = await self.session.execute(
            select(Video.id, Video.status).where(Video.id.in_(video_ids))
        )
        return {row.id: row.status for row in result}

    async def most_viewed(self, category: str, limit: int) -> list[Video]:
        result = await self.session.execute(
            select(Video)
            .where(Video.category == category)
            .order_by(Video.view_count.desc(), Video.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete(self, video_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(Video)
            .where(Video.id == video_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

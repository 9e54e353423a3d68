"""Periodic maintenance for the ingestion pipeline.

Three things can be left behind when a worker dies mid-job:

- a record stuck in ``processing`` (and its staged file),
- a staged file whose task was killed after its record was failed, and
- objects under ``videos/<id>/`` that no ready record references.

The sweep fails the first and deletes the others. It never touches objects
whose record is still ``processing`` or is ``ready``.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from safezone.core.errors import ReconciliationError
from safezone.core.metrics import ORPHANED_ARTIFACTS_REMOVED_TOTAL
from safezone.core.storage import Storage
from safezone.core.tracing import create_span
from safezone.modules.pipeline.coordinator import VIDEO_KEY_PREFIX, video_id_from_key
from safezone.modules.video.models import VideoStatus
from safezone.modules.video.record_store import VideoRecordStore
from safezone.modules.video.staging import StagingStore, staged_name_from_key

logger = logging.getLogger(__name__)

STATUS_LOOKUP_BATCH = 500


@dataclass
class SweepReport:
    stale_failed: int = 0
    staged_removed: int = 0
    orphans_removed: int = 0


class PipelineSweeper:
    """Reaps stale jobs and orphaned artifacts."""

    def __init__(
        self,
        records: VideoRecordStore,
        staging: StagingStore,
        storage: Storage,
        stale_after_seconds: int,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.records = records
        self.staging = staging
        self.storage = storage
        self.stale_after_seconds = stale_after_seconds
        self.clock = clock

    async def run(self) -> SweepReport:
        report = SweepReport()
        started = time.perf_counter()
        with create_span("pipeline.sweep"):
            await self._fail_stale(report)
            self._remove_stale_staged(report)
            await self._remove_orphans(report)
        logger.info(
            "Pipeline sweep finished",
            extra={
                "stale_failed": report.stale_failed,
                "staged_removed": report.staged_removed,
                "orphans_removed": report.orphans_removed,
                "duration_seconds": round(time.perf_counter() - started, 3),
            },
        )
        return report

    async def _fail_stale(self, report: SweepReport) -> None:
        cutoff = self.clock() - timedelta(seconds=self.stale_after_seconds)
        stale = await self.records.list_stale_processing(cutoff)
        message = ReconciliationError(
            f"processing did not finish within {self.stale_after_seconds}s"
        ).describe()

        for record in stale:
            updated = await self.records.mark_error(record.id, message)
            if updated is not None:
                report.stale_failed += 1
                logger.warning("Stale video job failed", extra={"video_id": str(record.id)})

            name = staged_name_from_key(record.staging_key)
            if name and self.staging.discard(name):
                report.staged_removed += 1

    def _remove_stale_staged(self, report: SweepReport) -> None:
        """Staged files older than the stale limit belong to no running job."""
        cutoff = self.clock() - timedelta(seconds=self.stale_after_seconds)
        for name, modified in self.staging.list_staged():
            if modified < cutoff and self.staging.discard(name):
                report.staged_removed += 1
                logger.warning("Leftover staged file removed", extra={"staged_name": name})

    async def _remove_orphans(self, report: SweepReport) -> None:
        keys = await asyncio.to_thread(self.storage.list_keys, VIDEO_KEY_PREFIX)

        by_video: dict[uuid.UUID, list[str]] = {}
        for key in keys:
            video_id = video_id_from_key(key)
            if video_id is None:
                logger.debug("Skipping unrecognised key", extra={"key": key})
                continue
            by_video.setdefault(video_id, []).append(key)

        ids = list(by_video)
        for start in range(0, len(ids), STATUS_LOOKUP_BATCH):
            batch = ids[start:start + STATUS_LOOKUP_BATCH]
            statuses = await self.records.statuses(batch)
            for video_id in batch:
                status = statuses.get(video_id)
                if status in (VideoStatus.PROCESSING, VideoStatus.READY):
                    continue
                for key in by_video[video_id]:
                    await self._delete_orphan(video_id, key, report)

    async def _delete_orphan(self, video_id: uuid.UUID, key: str, report: SweepReport) -> None:
        try:
            await asyncio.to_thread(self.storage.delete, key)
        except Exception as e:
            logger.warning(
                "Failed to delete orphaned artifact",
                extra={"video_id": str(video_id), "key": key, "error": str(e)},
            )
            return
        report.orphans_removed += 1
        ORPHANED_ARTIFACTS_REMOVED_TOTAL.labels(source="sweep").inc()

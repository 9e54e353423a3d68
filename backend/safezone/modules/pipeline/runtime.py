"""Wiring for the ingestion pipeline.

``build_runtime`` assembles the record store, staging store, publisher,
ledger, coordinator and sweeper from settings. The API process and the
Celery worker both build one; only the API process starts it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from safezone.core.config import Settings
from safezone.core.storage import Storage, StorageConfig
from safezone.modules.ledger.service import SqlUploadLedger, UploadLedger
from safezone.modules.pipeline.coordinator import JobCoordinator
from safezone.modules.pipeline.dispatch import (
    CeleryJobDispatcher,
    InProcessJobPool,
    JobDispatcher,
)
from safezone.modules.pipeline.sweep import PipelineSweeper
from safezone.modules.transcoding.ffmpeg import FFmpegTranscoder
from safezone.modules.transcoding.models import profiles_from_settings
from safezone.modules.transcoding.orchestrator import TranscodeOrchestrator
from safezone.modules.transcoding.validator import MediaValidator
from safezone.modules.video.record_store import SqlVideoRecordStore, VideoRecordStore
from safezone.modules.video.staging import StagingStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineRuntime:
    """Assembled pipeline components."""

    records: VideoRecordStore
    staging: StagingStore
    storage: Storage
    ledger: UploadLedger
    coordinator: JobCoordinator
    sweeper: PipelineSweeper
    pool: Optional[InProcessJobPool] = None
    sweep_interval_seconds: float = 0
    _sweep_task: Optional[asyncio.Task] = field(default=None, repr=False)

    async def start(self) -> None:
        """Start in-process workers and the sweep timer when running inline."""
        if self.pool is not None and not self.pool.started:
            self.pool.start(self.coordinator.process)
            if self.sweep_interval_seconds > 0:
                self._sweep_task = asyncio.create_task(
                    self._sweep_loop(), name="pipeline-sweep"
                )

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            await asyncio.gather(self._sweep_task, return_exceptions=True)
            self._sweep_task = None
        if self.pool is not None:
            await self.pool.stop(drain=True)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.sweeper.run()
            except Exception:
                logger.exception("Pipeline sweep failed")


def build_runtime(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    dispatcher: Optional[JobDispatcher] = None,
    storage: Optional[Storage] = None,
    transcoder: Optional[FFmpegTranscoder] = None,
) -> PipelineRuntime:
    """Build the pipeline from settings.

    Args:
        settings: Application settings
        session_maker: Session factory for the record store and ledger
        dispatcher: Overrides the dispatcher chosen by ``JOB_BACKEND``
        storage: Overrides the configured publisher
        transcoder: Overrides the ffmpeg wrapper

    Returns:
        PipelineRuntime: Unstarted runtime
    """
    records = SqlVideoRecordStore(session_maker)
    ledger = SqlUploadLedger(session_maker)
    staging = StagingStore(settings.STAGING_DIR)
    storage = storage or Storage(StorageConfig.from_settings(settings))
    transcoder = transcoder or FFmpegTranscoder(
        ffmpeg_path=settings.FFMPEG_PATH,
        ffprobe_path=settings.FFPROBE_PATH,
        preset=settings.FFMPEG_PRESET,
    )

    validator = MediaValidator(
        transcoder,
        max_size_bytes=settings.MAX_UPLOAD_SIZE_BYTES,
        max_duration_seconds=settings.MAX_DURATION_SECONDS,
        probe_timeout_seconds=settings.PROBE_TIMEOUT_SECONDS,
    )
    orchestrator = TranscodeOrchestrator(
        transcoder,
        profiles_from_settings(settings),
        thumbnail_size=(settings.THUMBNAIL_WIDTH, settings.THUMBNAIL_HEIGHT),
        timeout_seconds=settings.TRANSCODE_TIMEOUT_SECONDS,
    )

    pool = None
    if dispatcher is None:
        if settings.JOB_BACKEND == "inline":
            pool = InProcessJobPool(
                workers=settings.TRANSCODE_WORKER_CONCURRENCY,
                max_pending=settings.MAX_PENDING_JOBS,
            )
            dispatcher = pool
        else:
            dispatcher = CeleryJobDispatcher(queue=settings.TRANSCODE_QUEUE)

    coordinator = JobCoordinator(
        records=records,
        staging=staging,
        validator=validator,
        orchestrator=orchestrator,
        storage=storage,
        ledger=ledger,
        dispatcher=dispatcher,
        max_pending_jobs=settings.MAX_PENDING_JOBS,
        max_upload_bytes=settings.MAX_UPLOAD_SIZE_BYTES,
        upload_chunk_size=settings.UPLOAD_CHUNK_SIZE,
    )
    sweeper = PipelineSweeper(
        records=records,
        staging=staging,
        storage=storage,
        stale_after_seconds=settings.stale_job_seconds,
    )

    logger.info(
        "Pipeline runtime built",
        extra={
            "job_backend": settings.JOB_BACKEND,
            "storage_type": storage.storage_type,
            "staging_dir": settings.STAGING_DIR,
        },
    )
    return PipelineRuntime(
        records=records,
        staging=staging,
        storage=storage,
        ledger=ledger,
        coordinator=coordinator,
        sweeper=sweeper,
        pool=pool,
        sweep_interval_seconds=settings.ORPHAN_SWEEP_INTERVAL_SECONDS if pool else 0,
    )

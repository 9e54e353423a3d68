"""Celery tasks for video processing.

Each task runs its coroutine with ``asyncio.run`` on a fresh engine, since a
worker process has no running event loop and pooled connections cannot be
shared across loops.
"""

import asyncio
import logging
import uuid
from typing import Any

from celery import Task

from safezone.core.celery_app import celery_app
from safezone.core.config import settings
from safezone.core.database import create_worker_engine, make_session_maker
from safezone.core.errors import ReconciliationError
from safezone.modules.pipeline.jobs import VideoJob
from safezone.modules.pipeline.runtime import build_runtime
from safezone.modules.video.record_store import SqlVideoRecordStore
from safezone.modules.video.staging import StagingStore

logger = logging.getLogger(__name__)


class VideoJobTask(Task):
    """Base task for video jobs.

    ``JobCoordinator.process`` records its own failures and releases the
    staged file. ``on_failure`` only fires when the task dies outside of it,
    e.g. on a hard time limit, so it does both here.
    """

    abstract = True

    def on_failure(
        self, exc: Exception, task_id: str, args: tuple, kwargs: dict, einfo: Any
    ) -> None:
        payload = args[0] if args else kwargs.get("payload")
        if not payload:
            return
        message = ReconciliationError(f"worker task failed: {exc}").describe()
        try:
            asyncio.run(_mark_failed(uuid.UUID(str(payload["video_id"])), message))
        except Exception:
            logger.exception(
                "Failed to record task failure",
                extra={"task_id": task_id, "video_id": payload.get("video_id")},
            )

        staged_name = payload.get("staged_name")
        if not staged_name:
            return
        try:
            StagingStore(settings.STAGING_DIR).discard(staged_name)
        except Exception:
            logger.exception(
                "Failed to discard staged file",
                extra={"task_id": task_id, "staged_name": staged_name},
            )


async def _mark_failed(video_id: uuid.UUID, message: str) -> None:
    engine = create_worker_engine()
    try:
        await SqlVideoRecordStore(make_session_maker(engine)).mark_error(video_id, message)
    finally:
        await engine.dispose()


async def _process(job: VideoJob) -> str:
    engine = create_worker_engine()
    try:
        runtime = build_runtime(settings, make_session_maker(engine))
        state = await runtime.coordinator.process(job)
        return state.value
    finally:
        await engine.dispose()


async def _sweep() -> dict:
    engine = create_worker_engine()
    try:
        runtime = build_runtime(settings, make_session_maker(engine))
        report = await runtime.sweeper.run()
        return {
            "stale_failed": report.stale_failed,
            "staged_removed": report.staged_removed,
            "orphans_removed": report.orphans_removed,
        }
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    base=VideoJobTask,
    name="safezone.modules.video.tasks.process_video_task",
)
def process_video_task(self: VideoJobTask, payload: dict) -> dict:
    """Validate, transcode and publish one accepted upload.

    Args:
        payload: ``VideoJob.to_payload()`` output

    Returns:
        dict: Video id and terminal job state
    """
    job = VideoJob.from_payload(payload)
    logger.info(
        "Video task received",
        extra={"video_id": job.job_id, "task_id": self.request.id},
    )
    state = asyncio.run(_process(job))
    return {"video_id": job.job_id, "state": state}


@celery_app.task(name="safezone.modules.video.tasks.sweep_video_pipeline_task")
def sweep_video_pipeline_task() -> dict:
    """Fail stale jobs and delete orphaned artifacts."""
    return asyncio.run(_sweep())

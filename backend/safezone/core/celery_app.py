"""Celery application configuration.

Transcode jobs go to a dedicated queue. Run its workers with a fixed pool,
for example ``celery -A safezone.core.celery_app worker -Q transcode``; the
pool size is ``TRANSCODE_WORKER_CONCURRENCY``, which bounds the number of
ffmpeg processes per worker host.
"""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from safezone.core.config import settings
from safezone.core.logging import setup_logging

celery_app = Celery(
    "safezone",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Covers probe, transcode and publish so the job can fail itself first
    task_time_limit=settings.job_time_limit_seconds,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.TRANSCODE_WORKER_CONCURRENCY,
    task_acks_late=True,
    task_reject_on_worker_lost=False,
    task_routes={
        "safezone.modules.video.tasks.process_video_task": {"queue": settings.TRANSCODE_QUEUE},
    },
    beat_schedule={
        "sweep-video-pipeline": {
            "task": "safezone.modules.video.tasks.sweep_video_pipeline_task",
            "schedule": float(settings.ORPHAN_SWEEP_INTERVAL_SECONDS),
        },
    },
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Use the structured log format in worker processes."""
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)


celery_app.autodiscover_tasks(["safezone.modules.video"])

"""Job coordinator for video ingestion.

Accepting an upload is synchronous: check the request, stage the file and
create a provisional record, then answer the client. Everything after that
runs as a background job:

    Received -> Validating -> Transcoding -> Publishing -> Reconciling -> Done
                                                                    \\-> Failed

Failures never escape ``process``; they end the job in ``Failed`` with the
record set to ``error``. The staged file is released exactly once per job, in
the ``finally`` of ``process`` (or of ``dispatch`` when the job never ran).
Storage key layout is owned here: ``videos/<jobId>/<high|medium|low|thumbnail>``.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Optional

from safezone.core.errors import (
    PipelineError,
    QueueFullError,
    ReconciliationError,
    StorageError,
    ValidationError,
)
from safezone.core.logging import (
    job_log_context,
    log_error,
    log_info,
    log_warning,
    peek_correlation_id,
)
from safezone.core.metrics import (
    LEDGER_WRITE_FAILURES_TOTAL,
    ORPHANED_ARTIFACTS_REMOVED_TOTAL,
    VIDEO_JOB_STAGE_DURATION_SECONDS,
    VIDEO_JOBS_IN_PROGRESS,
    VIDEO_JOBS_TOTAL,
    VIDEO_UPLOADS_REJECTED_TOTAL,
)
from safezone.core.storage import Storage
from safezone.core.tracing import create_span
from safezone.modules.ledger.service import LedgerRecord, UploadLedger
from safezone.modules.pipeline.dispatch import JobDispatcher
from safezone.modules.pipeline.jobs import JobState, VideoJob
from safezone.modules.transcoding.models import MediaInfo, Quality, TranscodeArtifacts
from safezone.modules.transcoding.orchestrator import TranscodeOrchestrator
from safezone.modules.transcoding.validator import MediaValidator
from safezone.modules.video.record_store import (
    PublishedKeys,
    RenditionKeys,
    VideoRecord,
    VideoRecordStore,
)
from safezone.modules.video.schemas import normalize_category
from safezone.modules.video.staging import StagingStore

logger = logging.getLogger(__name__)

VIDEO_KEY_PREFIX = "videos/"
THUMBNAIL_CONTENT_TYPE = "image/jpeg"
RENDITION_CONTENT_TYPE = "video/mp4"
REQUIRED_FIELDS = ("title", "description", "category", "zone")


def keys_for(video_id: uuid.UUID) -> PublishedKeys:
    """Storage keys of a job's four artifacts."""
    base = f"{VIDEO_KEY_PREFIX}{video_id}"
    return PublishedKeys(
        thumbnail=f"{base}/thumbnail",
        renditions=RenditionKeys(
            high=f"{base}/{Quality.HIGH.value}",
            medium=f"{base}/{Quality.MEDIUM.value}",
            low=f"{base}/{Quality.LOW.value}",
        ),
    )


def video_id_from_key(key: str) -> Optional[uuid.UUID]:
    """Job id encoded in a ``videos/<id>/...`` key, or None."""
    if not key.startswith(VIDEO_KEY_PREFIX):
        return None
    head = key[len(VIDEO_KEY_PREFIX):].split("/", 1)[0]
    try:
        return uuid.UUID(head)
    except ValueError:
        return None


@dataclass(frozen=True)
class UploadRequest:
    """Multipart upload as received; any field may be missing."""

    title: Optional[str]
    description: Optional[str]
    category: Optional[str]
    zone: Optional[str]
    filename: Optional[str]
    content_type: Optional[str]
    declared_size: Optional[int] = None
    owner_id: Optional[str] = None


@dataclass(frozen=True)
class AcceptedUpload:
    record: VideoRecord
    job: VideoJob


class JobCoordinator:
    """Accepts uploads and drives each job through its states."""

    def __init__(
        self,
        records: VideoRecordStore,
        staging: StagingStore,
        validator: MediaValidator,
        orchestrator: TranscodeOrchestrator,
        storage: Storage,
        ledger: UploadLedger,
        dispatcher: JobDispatcher,
        max_pending_jobs: int,
        max_upload_bytes: int,
        upload_chunk_size: int = 1024 * 1024,
    ):
        self.records = records
        self.staging = staging
        self.validator = validator
        self.orchestrator = orchestrator
        self.storage = storage
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.max_pending_jobs = max_pending_jobs
        self.max_upload_bytes = max_upload_bytes
        self.upload_chunk_size = upload_chunk_size

    # ------------------------------------------------------------------
    # Synchronous half
    # ------------------------------------------------------------------

    async def accept(self, request: UploadRequest, upload: Any) -> AcceptedUpload:
        """Validate the request, stage the file and create the provisional record.

        Args:
            request: Form fields and file metadata
            upload: Async readable upload body, or None when no file was sent

        Returns:
            AcceptedUpload: The ``processing`` record and the job to dispatch

        Raises:
            ValidationError: Missing fields, missing file, or a declared
                size/type rejection (``UploadTooLargeError`` when the body
                itself is over the limit)
            QueueFullError: When too many jobs are already pending
        """
        try:
            missing = [
                name for name in REQUIRED_FIELDS
                if not (getattr(request, name) or "").strip()
            ]
            if missing:
                raise ValidationError(
                    "required", f"Missing required fields: {', '.join(missing)}"
                )
            if upload is None or not request.filename:
                raise ValidationError("required", "No video file was uploaded")

            self.validator.validate_declared(
                request.filename, request.content_type, request.declared_size
            )

            pending = await self.records.count_processing()
            if pending >= self.max_pending_jobs:
                raise QueueFullError(
                    f"{pending} videos are already processing, try again later"
                )
        except PipelineError as e:
            VIDEO_UPLOADS_REJECTED_TOTAL.labels(reason=_rejection_reason(e)).inc()
            raise

        try:
            staged = await self.staging.stage_upload(
                upload,
                request.filename,
                max_bytes=self.max_upload_bytes,
                chunk_size=self.upload_chunk_size,
            )
        except ValidationError as e:
            VIDEO_UPLOADS_REJECTED_TOTAL.labels(reason=_rejection_reason(e)).inc()
            raise

        try:
            record = await self.records.create_provisional(
                title=request.title.strip(),
                description=request.description.strip(),
                category=normalize_category(request.category),
                zone=request.zone.strip(),
                staging_key=staged.staging_key,
                owner_id=request.owner_id,
            )
        except BaseException:
            self.staging.discard(staged.name)
            raise

        job = VideoJob(
            video_id=record.id,
            staged_name=staged.name,
            original_filename=request.filename,
            content_type=request.content_type or "",
            size_bytes=staged.size_bytes,
            owner_id=request.owner_id,
            correlation_id=peek_correlation_id(),
        )
        log_info(
            logger,
            "Upload accepted",
            video_id=job.job_id,
            staged_name=staged.name,
            size_bytes=staged.size_bytes,
            category=record.category,
        )
        return AcceptedUpload(record=record, job=job)

    async def dispatch(self, job: VideoJob) -> None:
        """Hand the job to the dispatcher; a failure here fails the job."""
        try:
            await self.dispatcher.submit(job)
        except Exception as exc:
            await self._fail(job, JobState.RECEIVED, exc, published=[])
            self._release_staged(job)

    # ------------------------------------------------------------------
    # Background half
    # ------------------------------------------------------------------

    async def process(self, job: VideoJob) -> JobState:
        """Run a job to a terminal state.

        Returns:
            JobState: DONE or FAILED
        """
        with job_log_context(job.job_id, job.correlation_id):
            return await self._run(job)

    async def _run(self, job: VideoJob) -> JobState:
        state = JobState.RECEIVED
        published: list[str] = []
        VIDEO_JOBS_IN_PROGRESS.inc()
        log_info(logger, "Video job started", video_id=job.job_id)

        try:
            with create_span("video_job", attributes={"video.id": job.job_id}):
                state = JobState.VALIDATING
                media = await self._stage("validate", job, self._validate(job))

                state = JobState.TRANSCODING
                with self.staging.work_dir(job.job_id) as work_dir:
                    artifacts = await self._stage(
                        "transcode", job, self._transcode(job, work_dir, media)
                    )

                    state = JobState.PUBLISHING
                    keys = await self._stage(
                        "publish", job, self._publish(job, artifacts, published)
                    )

                state = JobState.RECONCILING
                await self._stage("reconcile", job, self._reconcile(job, keys, media))
                state = JobState.DONE

            VIDEO_JOBS_TOTAL.labels(outcome="ready", error_kind="").inc()
            log_info(
                logger,
                "Video job finished",
                video_id=job.job_id,
                duration_seconds=media.duration_seconds,
            )
            await self._write_ledger(job, keys)
            return state
        except Exception as exc:
            await self._fail(job, state, exc, published)
            return JobState.FAILED
        finally:
            self._release_staged(job)
            VIDEO_JOBS_IN_PROGRESS.dec()

    async def _stage(self, name: str, job: VideoJob, step: Awaitable) -> Any:
        started = time.perf_counter()
        with create_span(f"video_job.{name}", attributes={"video.id": job.job_id}):
            try:
                return await step
            finally:
                VIDEO_JOB_STAGE_DURATION_SECONDS.labels(stage=name).observe(
                    time.perf_counter() - started
                )

    async def _validate(self, job: VideoJob) -> MediaInfo:
        media = await asyncio.to_thread(
            self.validator.validate,
            self.staging.path_for(job.staged_name),
            job.content_type,
            job.size_bytes,
            job.original_filename,
        )
        if not await self.records.record_duration(job.video_id, media.duration_seconds):
            raise ReconciliationError("Record is no longer processing")
        return media

    async def _transcode(
        self, job: VideoJob, work_dir: Path, media: MediaInfo
    ) -> TranscodeArtifacts:
        return await asyncio.to_thread(
            self.orchestrator.transcode,
            self.staging.path_for(job.staged_name),
            job.job_id,
            work_dir,
            media.duration_seconds,
        )

    async def _publish(
        self,
        job: VideoJob,
        artifacts: TranscodeArtifacts,
        published: list[str],
    ) -> PublishedKeys:
        """Put all four artifacts; ``published`` collects keys written so far."""
        keys = keys_for(job.video_id)
        uploads = [(artifacts.thumbnail, keys.thumbnail, THUMBNAIL_CONTENT_TYPE)]
        uploads += [
            (artifacts.renditions[q], keys.renditions.get(q), RENDITION_CONTENT_TYPE)
            for q in Quality
        ]
        for path, key, content_type in uploads:
            try:
                await asyncio.to_thread(self.storage.put_file, str(path), key, content_type)
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to write {key}: {e}", key=key) from e
            published.append(key)
        return keys

    async def _reconcile(self, job: VideoJob, keys: PublishedKeys, media: MediaInfo) -> None:
        try:
            record = await self.records.mark_ready(job.video_id, keys, media.duration_seconds)
        except Exception as e:
            raise ReconciliationError(f"Record update failed after publish: {e}") from e
        if record is None:
            raise ReconciliationError("Record is no longer processing")

    async def _write_ledger(self, job: VideoJob, keys: PublishedKeys) -> None:
        entry = LedgerRecord(
            owner_id=job.owner_id,
            file_name=job.original_filename,
            size_bytes=job.size_bytes,
            mime_type=job.content_type,
            storage_key=keys.primary,
            timestamp=datetime.now(timezone.utc),
            storage_type=self.storage.storage_type,
            video_id=job.video_id,
        )
        try:
            await self.ledger.record(entry)
        except Exception as e:
            LEDGER_WRITE_FAILURES_TOTAL.inc()
            log_error(logger, "Upload ledger write failed", e, video_id=job.job_id)

    async def _fail(
        self,
        job: VideoJob,
        state: JobState,
        exc: BaseException,
        published: list[str],
    ) -> None:
        """Record the failure on the job's record and undo partial publishes."""
        if isinstance(exc, PipelineError):
            kind, message = exc.kind, exc.describe()
        else:
            kind, message = type(exc).__name__, f"{type(exc).__name__}: {exc}"

        VIDEO_JOBS_TOTAL.labels(outcome="error", error_kind=kind).inc()
        log_error(
            logger,
            "Video job failed",
            exc,
            video_id=job.job_id,
            state=state.value,
            error_kind=kind,
        )

        try:
            updated = await self.records.mark_error(job.video_id, message)
        except Exception as e:
            log_error(logger, "Failed to record job failure", e, video_id=job.job_id)
        else:
            if updated is None:
                log_warning(
                    logger,
                    "Record was no longer processing; failure not recorded",
                    video_id=job.job_id,
                )

        if published:
            await self._discard_published(job, published)

    async def _discard_published(self, job: VideoJob, keys: list[str]) -> None:
        """Best-effort removal of artifacts no record will reference."""
        for key in keys:
            try:
                await asyncio.to_thread(self.storage.delete, key)
            except Exception as e:
                log_warning(
                    logger,
                    "Orphaned artifact left for the sweep",
                    video_id=job.job_id,
                    key=key,
                    error=str(e),
                )
            else:
                ORPHANED_ARTIFACTS_REMOVED_TOTAL.labels(source="compensation").inc()

    def _release_staged(self, job: VideoJob) -> None:
        removed = self.staging.discard(job.staged_name)
        if not removed:
            log_warning(
                logger,
                "Staged file was already gone",
                video_id=job.job_id,
                staged_name=job.staged_name,
            )


def _rejection_reason(exc: PipelineError) -> str:
    if isinstance(exc, ValidationError):
        return exc.check
    return exc.kind

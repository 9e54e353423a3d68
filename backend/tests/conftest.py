"""Shared fakes and fixtures for pipeline tests."""

import asyncio
import io
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from safezone.core.errors import TranscodeError
from safezone.core.storage import Storage, StorageConfig
from safezone.modules.ledger.service import LedgerRecord, UploadLedger
from safezone.modules.pipeline.coordinator import JobCoordinator
from safezone.modules.pipeline.dispatch import JobDispatcher
from safezone.modules.pipeline.jobs import VideoJob
from safezone.modules.transcoding.ffmpeg import FFmpegTranscoder
from safezone.modules.transcoding.models import Quality, RenditionProfile
from safezone.modules.transcoding.orchestrator import TranscodeOrchestrator
from safezone.modules.transcoding.validator import MediaValidator
from safezone.modules.video.models import VideoStatus
from safezone.modules.video.record_store import (
    PublishedKeys,
    VideoRecord,
    VideoRecordStore,
)
from safezone.modules.video.staging import StagingStore

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
MAX_PENDING_JOBS = 4

PROFILES = {
    Quality.HIGH: RenditionProfile(Quality.HIGH, 1920, 1080, 4000),
    Quality.MEDIUM: RenditionProfile(Quality.MEDIUM, 1280, 720, 2000),
    Quality.LOW: RenditionProfile(Quality.LOW, 854, 480, 1000),
}


def probe_output(
    duration: Optional[float] = 30.0,
    video: bool = True,
    audio: bool = True,
) -> dict:
    """ffprobe JSON as the validator sees it."""
    streams = []
    if video:
        streams.append({"codec_type": "video", "codec_name": "h264", "width": 1920, "height": 1080})
    if audio:
        streams.append({"codec_type": "audio", "codec_name": "aac"})
    fmt = {"format_name": "mov,mp4,m4a,3gp,3g2,mj2"}
    if duration is not None:
        fmt["duration"] = str(duration)
    return {"streams": streams, "format": fmt}


class FakeTranscoder(FFmpegTranscoder):
    """Builds real commands but never spawns a process.

    ``run`` writes a small file to the requested output, or raises
    ``TranscodeError`` when the output path contains ``fail_on``.
    """

    def __init__(self, probe_result: Optional[dict] = None):
        super().__init__(ffmpeg_path="ffmpeg", ffprobe_path="ffprobe")
        self.probe_result = probe_result if probe_result is not None else probe_output()
        self.probe_error: Optional[Exception] = None
        self.fail_on: Optional[str] = None
        self.commands: list[list[str]] = []

    def probe(self, input_path: str, timeout: float) -> dict:
        if self.probe_error is not None:
            raise self.probe_error
        return self.probe_result

    def run(self, cmd: list[str], timeout: float, output_path: Optional[str] = None) -> None:
        self.commands.append(cmd)
        if self.fail_on and output_path and self.fail_on in output_path:
            raise TranscodeError("ffmpeg exited with code 1: Invalid data found when processing input")
        if output_path:
            Path(output_path).write_bytes(b"artifact " + Path(output_path).name.encode())


class FakeRecordStore(VideoRecordStore):
    """In-memory record store with the same transition rules as the SQL one."""

    def __init__(self):
        self.records: dict[uuid.UUID, VideoRecord] = {}
        self.mark_ready_error: Optional[Exception] = None
        self._lock = asyncio.Lock()

    async def create_provisional(
        self,
        title: str,
        description: str,
        category: str,
        zone: str,
        staging_key: str,
        owner_id: Optional[str] = None,
    ) -> VideoRecord:
        now = datetime.now(timezone.utc)
        record = VideoRecord(
            id=uuid.uuid4(),
            unique_id=uuid.uuid4().hex,
            title=title,
            description=description,
            category=category,
            zone=zone,
            status=VideoStatus.PROCESSING,
            staging_key=staging_key,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        self.records[record.id] = record
        return record

    async def get(self, video_id: uuid.UUID) -> Optional[VideoRecord]:
        return self.records.get(video_id)

    async def list_records(
        self,
        category: Optional[str] = None,
        status: Optional[VideoStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[VideoRecord]:
        rows = [
            r for r in self.records.values()
            if (category is None or r.category == category)
            and (status is None or r.status == status)
        ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[offset:] if limit is None else rows[offset:offset + limit]

    async def record_duration(self, video_id: uuid.UUID, duration_seconds: float) -> bool:
        return self._transition(video_id, duration_seconds=duration_seconds) is not None

    async def mark_ready(
        self,
        video_id: uuid.UUID,
        keys: PublishedKeys,
        duration_seconds: float,
    ) -> Optional[VideoRecord]:
        if not keys.is_complete():
            raise ValueError("mark_ready requires four non-empty, distinct keys")
        if self.mark_ready_error is not None:
            raise self.mark_ready_error
        return self._transition(
            video_id,
            status=VideoStatus.READY,
            duration_seconds=duration_seconds,
            primary_rendition_key=keys.primary,
            thumbnail_key=keys.thumbnail,
            rendition_keys=keys.renditions,
            processing_error="",
        )

    async def mark_error(self, video_id: uuid.UUID, message: str) -> Optional[VideoRecord]:
        return self._transition(
            video_id,
            status=VideoStatus.ERROR,
            processing_error=message or "Unknown processing error",
        )

    async def increment_views(self, video_id: uuid.UUID) -> Optional[VideoRecord]:
        async with self._lock:
            record = self.records.get(video_id)
            if record is None:
                return None
            await asyncio.sleep(0)
            updated = replace(record, view_count=record.view_count + 1)
            self.records[video_id] = updated
            return updated

    async def count_processing(self) -> int:
        return sum(1 for r in self.records.values() if r.status == VideoStatus.PROCESSING)

    async def list_stale_processing(self, older_than: datetime) -> list[VideoRecord]:
        return [
            r for r in self.records.values()
            if r.status == VideoStatus.PROCESSING and r.created_at < older_than
        ]

    async def statuses(self, video_ids: list[uuid.UUID]) -> dict[uuid.UUID, VideoStatus]:
        return {vid: self.records[vid].status for vid in video_ids if vid in self.records}

    async def most_viewed(self, category: str, limit: int) -> list[VideoRecord]:
        rows = [r for r in self.records.values() if r.category == category]
        rows.sort(key=lambda r: r.view_count, reverse=True)
        return rows[:limit]

    async def recent_ready(self, limit: int) -> list[VideoRecord]:
        return await self.list_records(status=VideoStatus.READY, limit=limit)

    async def delete(self, video_id: uuid.UUID) -> bool:
        return self.records.pop(video_id, None) is not None

    def _transition(self, video_id: uuid.UUID, **changes) -> Optional[VideoRecord]:
        record = self.records.get(video_id)
        if record is None or record.status != VideoStatus.PROCESSING:
            return None
        updated = replace(record, updated_at=datetime.now(timezone.utc), **changes)
        self.records[video_id] = updated
        return updated


class FakeLedger(UploadLedger):
    def __init__(self):
        self.entries: list[LedgerRecord] = []
        self.error: Optional[Exception] = None

    async def record(self, entry: LedgerRecord) -> None:
        if self.error is not None:
            raise self.error
        self.entries.append(entry)


class RecordingDispatcher(JobDispatcher):
    """Keeps submitted jobs instead of running them."""

    def __init__(self):
        self.jobs: list[VideoJob] = []
        self.error: Optional[Exception] = None

    async def submit(self, job: VideoJob) -> None:
        if self.error is not None:
            raise self.error
        self.jobs.append(job)


class BytesUpload:
    """Async reader over an in-memory body, shaped like UploadFile."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)
        self.reads = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        return self._buffer.read(size)


@pytest.fixture
def records() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def staging(tmp_path) -> StagingStore:
    return StagingStore(tmp_path / "staging")


@pytest.fixture
def storage(tmp_path) -> Storage:
    return Storage(StorageConfig(backend="local", local_path=str(tmp_path / "storage")))


@pytest.fixture
def validator(transcoder) -> MediaValidator:
    return MediaValidator(
        transcoder,
        max_size_bytes=MAX_UPLOAD_BYTES,
        max_duration_seconds=3600,
    )


@pytest.fixture
def orchestrator(transcoder) -> TranscodeOrchestrator:
    return TranscodeOrchestrator(transcoder, PROFILES, timeout_seconds=600)


@pytest.fixture
def coordinator(
    records, staging, validator, orchestrator, storage, ledger, dispatcher
) -> JobCoordinator:
    return JobCoordinator(
        records=records,
        staging=staging,
        validator=validator,
        orchestrator=orchestrator,
        storage=storage,
        ledger=ledger,
        dispatcher=dispatcher,
        max_pending_jobs=MAX_PENDING_JOBS,
        max_upload_bytes=MAX_UPLOAD_BYTES,
        upload_chunk_size=64 * 1024,
    )

"""Tests for the SQLAlchemy record store and ledger on SQLite."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from safezone.core.database import Base, make_session_maker
from safezone.modules.ledger.models import UploadLedgerEntry
from safezone.modules.ledger.service import LedgerRecord, SqlUploadLedger
from safezone.modules.pipeline.coordinator import keys_for
from safezone.modules.video.models import VideoStatus
from safezone.modules.video.record_store import PublishedKeys, RenditionKeys, SqlVideoRecordStore


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def store(session_maker) -> SqlVideoRecordStore:
    return SqlVideoRecordStore(session_maker)


async def _create(store: SqlVideoRecordStore, category: str = "Segurança"):
    return await store.create_provisional(
        title="Forklift safety",
        description="Loading dock",
        category=category,
        zone="Fabrico",
        staging_key="temp/abc.mp4",
        owner_id="user-1",
    )


class TestTransitions:
    """A record leaves ``processing`` at most once."""

    @pytest.mark.asyncio
    async def test_provisional_record(self, store) -> None:
        record = await _create(store)

        fetched = await store.get(record.id)
        assert fetched.status == VideoStatus.PROCESSING
        assert fetched.primary_rendition_key == ""
        assert fetched.rendition_keys == RenditionKeys()
        assert fetched.view_count == 0
        assert len(fetched.unique_id) == 32

    @pytest.mark.asyncio
    async def test_mark_ready_writes_all_keys(self, store) -> None:
        record = await _create(store)
        keys = keys_for(record.id)

        ready = await store.mark_ready(record.id, keys, 31.5)

        assert ready.status == VideoStatus.READY
        assert ready.duration_seconds == 31.5
        assert ready.thumbnail_key == keys.thumbnail
        assert ready.rendition_keys == keys.renditions
        assert ready.primary_rendition_key == keys.renditions.high

    @pytest.mark.asyncio
    async def test_mark_ready_rejects_incomplete_keys(self, store) -> None:
        record = await _create(store)
        keys = PublishedKeys(thumbnail="t", renditions=RenditionKeys(high="h", medium="m", low=""))

        with pytest.raises(ValueError):
            await store.mark_ready(record.id, keys, 1.0)

    @pytest.mark.asyncio
    async def test_terminal_records_do_not_change(self, store) -> None:
        record = await _create(store)
        await store.mark_error(record.id, "TranscodeError: ffmpeg exited with code 1")

        assert await store.mark_ready(record.id, keys_for(record.id), 10.0) is None
        assert await store.mark_error(record.id, "again") is None
        assert await store.record_duration(record.id, 5.0) is False

        fetched = await store.get(record.id)
        assert fetched.status == VideoStatus.ERROR
        assert fetched.processing_error == "TranscodeError: ffmpeg exited with code 1"

    @pytest.mark.asyncio
    async def test_missing_record(self, store) -> None:
        missing = uuid.uuid4()

        assert await store.get(missing) is None
        assert await store.mark_error(missing, "x") is None
        assert await store.increment_views(missing) is None
        assert await store.delete(missing) is False


class TestViews:
    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, store) -> None:
        record = await _create(store)

        await asyncio.gather(*(store.increment_views(record.id) for _ in range(10)))

        assert (await store.get(record.id)).view_count == 10


class TestQueries:
    @pytest.mark.asyncio
    async def test_listing_and_filters(self, store) -> None:
        first = await _create(store, "Segurança")
        second = await _create(store, "Treinamento")
        await store.mark_ready(second.id, keys_for(second.id), 10.0)

        assert {r.id for r in await store.list_records()} == {first.id, second.id}
        assert [r.id for r in await store.list_records(category="Treinamento")] == [second.id]
        assert [r.id for r in await store.list_records(status=VideoStatus.PROCESSING)] == [first.id]
        assert len(await store.list_records(limit=1)) == 1
        assert len(await store.list_records(offset=1)) == 1
        assert [r.id for r in await store.recent_ready(5)] == [second.id]
        assert await store.count_processing() == 1

    @pytest.mark.asyncio
    async def test_most_viewed(self, store) -> None:
        low = await _create(store)
        high = await _create(store)
        for _ in range(3):
            await store.increment_views(high.id)
        await store.increment_views(low.id)

        assert [r.id for r in await store.most_viewed("Segurança", 5)] == [high.id, low.id]
        assert await store.most_viewed("Qualidade", 5) == []

    @pytest.mark.asyncio
    async def test_stale_processing_and_statuses(self, store) -> None:
        record = await _create(store)
        missing = uuid.uuid4()

        future = datetime.now(timezone.utc) + timedelta(minutes=5)
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        assert [r.id for r in await store.list_stale_processing(future)] == [record.id]
        assert await store.list_stale_processing(past) == []
        assert await store.statuses([record.id, missing]) == {record.id: VideoStatus.PROCESSING}

    @pytest.mark.asyncio
    async def test_delete(self, store) -> None:
        record = await _create(store)

        assert await store.delete(record.id) is True
        assert await store.get(record.id) is None


class TestLedger:
    @pytest.mark.asyncio
    async def test_record_appends_row(self, session_maker) -> None:
        ledger = SqlUploadLedger(session_maker)
        video_id = uuid.uuid4()
        entry = LedgerRecord(
            owner_id="user-1",
            file_name="dock.mp4",
            size_bytes=52_428_800,
            mime_type="video/mp4",
            storage_key=f"videos/{video_id}/high",
            timestamp=datetime.now(timezone.utc),
            storage_type="s3",
            video_id=video_id,
        )

        await ledger.record(entry)

        async with session_maker() as session:
            [stored] = (
                await session.execute(
                    select(UploadLedgerEntry).where(UploadLedgerEntry.video_id == video_id)
                )
            ).scalars().all()
        assert stored.storage_key == entry.storage_key
        assert stored.storage_type == "s3"
        assert stored.size_bytes == 52_428_800

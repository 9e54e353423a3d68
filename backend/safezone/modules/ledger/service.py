"""Upload ledger writer.

Write-only from the pipeline's point of view: the coordinator calls
``record`` once per video that reached ``ready``.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from safezone.modules.ledger.models import UploadLedgerEntry


@dataclass(frozen=True)
class LedgerRecord:
    """Immutable ledger fact."""

    owner_id: Optional[str]
    file_name: str
    size_bytes: int
    mime_type: str
    storage_key: str
    timestamp: datetime
    storage_type: str = "other"
    video_id: Optional[uuid.UUID] = None


class UploadLedger(ABC):
    """Append-only record of completed publishes."""

    @abstractmethod
    async def record(self, entry: LedgerRecord) -> None:
        """Append one entry."""


class SqlUploadLedger(UploadLedger):
    """Ledger stored in the ``upload_ledger`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def record(self, entry: LedgerRecord) -> None:
        async with self._session_maker() as session:
            session.add(
                UploadLedgerEntry(
                    video_id=entry.video_id,
                    owner_id=entry.owner_id,
                    file_name=entry.file_name,
                    size_bytes=entry.size_bytes,
                    mime_type=entry.mime_type,
                    storage_type=entry.storage_type,
                    storage_key=entry.storage_key,
                    timestamp=entry.timestamp,
                )
            )
            await session.commit()

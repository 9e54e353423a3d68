"""Job payload and states for video processing."""

import uuid
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional


class JobState(str, Enum):
    """Steps of one video job. DONE and FAILED are terminal."""

    RECEIVED = "received"
    VALIDATING = "validating"
    TRANSCODING = "transcoding"
    PUBLISHING = "publishing"
    RECONCILING = "reconciling"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class VideoJob:
    """Everything a worker needs to process one accepted upload.

    The job id is the video record id, so storage keys and the record share
    one namespace per job.
    """

    video_id: uuid.UUID
    staged_name: str
    original_filename: str
    content_type: str
    size_bytes: int
    owner_id: Optional[str] = None
    correlation_id: Optional[str] = None

    @property
    def job_id(self) -> str:
        return str(self.video_id)

    def to_payload(self) -> dict[str, Any]:
        """JSON-serializable form for the task queue."""
        payload = asdict(self)
        payload["video_id"] = str(self.video_id)
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VideoJob":
        return cls(
            video_id=uuid.UUID(str(payload["video_id"])),
            staged_name=payload["staged_name"],
            original_filename=payload["original_filename"],
            content_type=payload["content_type"],
            size_bytes=int(payload["size_bytes"]),
            owner_id=payload.get("owner_id"),
            correlation_id=payload.get("correlation_id"),
        )

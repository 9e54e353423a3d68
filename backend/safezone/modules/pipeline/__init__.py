"""Job coordination for video ingestion: states, dispatch, processing and sweep."""

from safezone.modules.pipeline.coordinator import (
    AcceptedUpload,
    JobCoordinator,
    UploadRequest,
    keys_for,
)
from safezone.modules.pipeline.dispatch import (
    CeleryJobDispatcher,
    InProcessJobPool,
    JobDispatcher,
)
from safezone.modules.pipeline.jobs import JobState, VideoJob

__all__ = [
    "AcceptedUpload",
    "CeleryJobDispatcher",
    "InProcessJobPool",
    "JobCoordinator",
    "JobDispatcher",
    "JobState",
    "UploadRequest",
    "VideoJob",
    "keys_for",
]

"""Video records, staging and the video API."""

from safezone.modules.video.models import Video, VideoStatus
from safezone.modules.video.record_store import (
    PublishedKeys,
    RenditionKeys,
    SqlVideoRecordStore,
    VideoRecord,
    VideoRecordStore,
)
from safezone.modules.video.staging import StagedFile, StagingStore

__all__ = [
    "PublishedKeys",
    "RenditionKeys",
    "SqlVideoRecordStore",
    "StagedFile",
    "StagingStore",
    "Video",
    "VideoRecord",
    "VideoRecordStore",
    "VideoStatus",
]

"""Value types for media validation and transcoding."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Quality(str, Enum):
    """Rendition quality levels, highest first."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class RenditionProfile:
    """Target box and bitrate for one quality."""

    quality: Quality
    width: int
    height: int
    bitrate_kbps: int

    @property
    def bitrate(self) -> str:
        return f"{self.bitrate_kbps}k"


def profiles_from_settings(settings) -> dict[Quality, RenditionProfile]:
    """Build the rendition profiles from ``settings.RENDITION_PROFILES``."""
    profiles = {}
    for quality in Quality:
        cfg = settings.RENDITION_PROFILES[quality.value]
        profiles[quality] = RenditionProfile(
            quality=quality,
            width=cfg.width,
            height=cfg.height,
            bitrate_kbps=cfg.bitrate_kbps,
        )
    return profiles


@dataclass(frozen=True)
class MediaInfo:
    """What the validator learned about a staged file."""

    duration_seconds: float
    width: int = 0
    height: int = 0
    video_codec: str = ""
    has_audio: bool = False


@dataclass
class TranscodeArtifacts:
    """Local outputs of one transcode run."""

    thumbnail: Path
    renditions: dict[Quality, Path] = field(default_factory=dict)

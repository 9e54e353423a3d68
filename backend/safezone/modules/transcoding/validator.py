"""Media validation for staged uploads.

Checks run in a fixed order and stop at the first failure:

1. size: declared size within the configured maximum
2. media_type: declared content type is ``video/*`` with an allowed extension
3. readable: the staged file exists and can be opened
4. probe / video_stream: ffprobe reads the container, finds a duration and
   at least one video stream
5. duration: duration within the configured maximum

The staged file is only ever read.
"""

import os
from pathlib import Path
from typing import Optional

from safezone.core.errors import ValidationError
from safezone.modules.transcoding.ffmpeg import FFmpegTranscoder, MediaProbeError
from safezone.modules.transcoding.models import MediaInfo

ALLOWED_VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi", ".mkv", ".webm"})


class MediaValidator:
    """Validates uploads against size, type and structural limits."""

    def __init__(
        self,
        transcoder: FFmpegTranscoder,
        max_size_bytes: int,
        max_duration_seconds: float,
        probe_timeout_seconds: float = 30.0,
        allowed_extensions: frozenset[str] = ALLOWED_VIDEO_EXTENSIONS,
    ):
        self.transcoder = transcoder
        self.max_size_bytes = max_size_bytes
        self.max_duration_seconds = max_duration_seconds
        self.probe_timeout_seconds = probe_timeout_seconds
        self.allowed_extensions = allowed_extensions

    def validate_declared(
        self,
        filename: str,
        content_type: Optional[str],
        size_bytes: Optional[int],
    ) -> None:
        """Checks that need only what the client declared.

        ``size_bytes`` may be None when the client sent no size; the staging
        copy enforces the limit in that case.

        Raises:
            ValidationError: On the first failing check
        """
        if size_bytes is not None:
            self._check_size(size_bytes)
        self._check_media_type(filename, content_type)

    def validate(
        self,
        path: str | os.PathLike,
        content_type: Optional[str],
        size_bytes: int,
        filename: Optional[str] = None,
    ) -> MediaInfo:
        """Run every check against a staged file.

        Args:
            path: Staged file
            content_type: Content type declared at upload
            size_bytes: Size reported at upload
            filename: Original client file name; defaults to the staged name

        Returns:
            MediaInfo: Duration and stream details

        Raises:
            ValidationError: Naming the failed check
        """
        path = Path(path)
        self._check_size(size_bytes)
        self._check_media_type(filename or path.name, content_type)
        self._check_readable(path)
        return self._check_structure(path)

    def _check_size(self, size_bytes: int) -> None:
        if size_bytes > self.max_size_bytes:
            raise ValidationError(
                "size",
                f"File size {size_bytes} exceeds maximum allowed size of "
                f"{self.max_size_bytes} bytes",
            )
        if size_bytes <= 0:
            raise ValidationError("size", "File is empty")

    def _check_media_type(self, filename: str, content_type: Optional[str]) -> None:
        ext = Path(filename or "").suffix.lower()
        if ext not in self.allowed_extensions:
            raise ValidationError(
                "media_type",
                f"Invalid file extension '{ext}'. Allowed: "
                f"{', '.join(sorted(self.allowed_extensions))}",
            )
        if not (content_type or "").lower().startswith("video/"):
            raise ValidationError(
                "media_type",
                f"Unsupported content type '{content_type}', expected video/*",
            )

    def _check_readable(self, path: Path) -> None:
        if not path.is_file():
            raise ValidationError("readable", "Staged file does not exist")
        try:
            with open(path, "rb") as f:
                f.read(1)
        except OSError as e:
            raise ValidationError("readable", f"Staged file is not readable: {e}") from e

    def _check_structure(self, path: Path) -> MediaInfo:
        try:
            info = self.transcoder.probe(str(path), timeout=self.probe_timeout_seconds)
        except MediaProbeError as e:
            raise ValidationError("probe", f"Container could not be probed: {e}") from e

        streams = info.get("streams") or []
        video_streams = [s for s in streams if s.get("codec_type") == "video"]
        if not video_streams:
            raise ValidationError("video_stream", "File contains no video stream")
        video = video_streams[0]

        duration = _parse_duration(info.get("format", {}).get("duration"))
        if duration is None:
            duration = _parse_duration(video.get("duration"))
        if duration is None or duration <= 0:
            raise ValidationError("probe", "Could not determine media duration")

        if duration > self.max_duration_seconds:
            raise ValidationError(
                "duration",
                f"Duration {duration:.0f}s exceeds maximum of "
                f"{self.max_duration_seconds:.0f}s",
            )

        return MediaInfo(
            duration_seconds=duration,
            width=int(video.get("width") or 0),
            height=int(video.get("height") or 0),
            video_codec=video.get("codec_name") or "",
            has_audio=any(s.get("codec_type") == "audio" for s in streams),
        )


def _parse_duration(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

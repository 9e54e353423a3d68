"""Transcode orchestration.

Produces one thumbnail and one rendition per quality from a staged source.
The run is all-or-nothing: if any subprocess fails or the time budget runs
out, every output already written is deleted before the error propagates.
"""

import logging
import time
from pathlib import Path
from typing import Callable

from safezone.core.errors import TranscodeError
from safezone.modules.transcoding.ffmpeg import FFmpegTranscoder
from safezone.modules.transcoding.models import Quality, RenditionProfile, TranscodeArtifacts

logger = logging.getLogger(__name__)

THUMBNAIL_OFFSET_SECONDS = 1.0


class TranscodeOrchestrator:
    """Runs the ffmpeg commands for one job, one at a time."""

    def __init__(
        self,
        transcoder: FFmpegTranscoder,
        profiles: dict[Quality, RenditionProfile],
        thumbnail_size: tuple[int, int] = (640, 360),
        timeout_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize orchestrator.

        Args:
            transcoder: Command builder and runner
            profiles: One profile per quality
            thumbnail_size: Thumbnail (width, height)
            timeout_seconds: Budget shared by all subprocesses of one job
            clock: Monotonic clock, injectable for tests
        """
        missing = [q.value for q in Quality if q not in profiles]
        if missing:
            raise ValueError(f"Missing rendition profiles: {', '.join(missing)}")
        self.transcoder = transcoder
        self.profiles = profiles
        self.thumbnail_size = thumbnail_size
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    def transcode(
        self,
        source: Path,
        job_id: str,
        work_dir: Path,
        duration_seconds: float = 0.0,
    ) -> TranscodeArtifacts:
        """Produce the thumbnail and all renditions for ``source``.

        Args:
            source: Staged source file
            job_id: Job identifier, used in output file names
            work_dir: Directory for outputs
            duration_seconds: Source duration if known, for the thumbnail offset

        Returns:
            TranscodeArtifacts: Paths of the four outputs

        Raises:
            TranscodeError: If any step fails; no outputs are left behind
        """
        deadline = self._clock() + self.timeout_seconds
        written: list[Path] = []

        try:
            thumbnail = work_dir / f"{job_id}_thumbnail.jpg"
            written.append(thumbnail)
            width, height = self.thumbnail_size
            self.transcoder.run(
                self.transcoder.build_thumbnail_command(
                    str(source),
                    str(thumbnail),
                    width,
                    height,
                    offset_seconds=self._thumbnail_offset(duration_seconds),
                ),
                timeout=self._remaining(deadline),
                output_path=str(thumbnail),
            )

            renditions: dict[Quality, Path] = {}
            for quality in Quality:
                output = work_dir / f"{job_id}_{quality.value}.mp4"
                written.append(output)
                started = self._clock()
                self.transcoder.run(
                    self.transcoder.build_rendition_command(
                        str(source), str(output), self.profiles[quality]
                    ),
                    timeout=self._remaining(deadline),
                    output_path=str(output),
                )
                renditions[quality] = output
                logger.info(
                    "Rendition produced",
                    extra={
                        "job_id": job_id,
                        "quality": quality.value,
                        "seconds": round(self._clock() - started, 2),
                        "bytes": output.stat().st_size,
                    },
                )
        except TranscodeError:
            self._remove(written)
            raise
        except Exception as e:
            self._remove(written)
            raise TranscodeError(f"Unexpected transcoding failure: {e}") from e

        return TranscodeArtifacts(thumbnail=thumbnail, renditions=renditions)

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise TranscodeError(
                f"Transcode budget of {self.timeout_seconds:.0f}s exhausted"
            )
        return remaining

    @staticmethod
    def _thumbnail_offset(duration_seconds: float) -> float:
        if duration_seconds <= 0:
            return 0.0
        return min(THUMBNAIL_OFFSET_SECONDS, duration_seconds / 2)

    @staticmethod
    def _remove(paths: list[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Failed to remove partial output", extra={"path": str(path)})

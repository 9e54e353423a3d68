"""FFmpeg and ffprobe invocation.

Builds command lines for renditions and thumbnails and runs them as
subprocesses with a hard timeout.
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import Optional

from safezone.core.errors import TranscodeError
from safezone.modules.transcoding.models import RenditionProfile

logger = logging.getLogger(__name__)

# Keep the end of stderr; ffmpeg puts the actual error last
STDERR_TAIL_CHARS = 2000


class MediaProbeError(Exception):
    """ffprobe could not read the container."""


class FFmpegTranscoder:
    """FFmpeg-based video transcoder."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        preset: str = "medium",
        audio_bitrate: str = "128k",
    ):
        """Initialize transcoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            preset: x264 preset used for every rendition
            audio_bitrate: AAC bitrate for renditions
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.preset = preset
        self.audio_bitrate = audio_bitrate

    def build_probe_command(self, input_path: str) -> list[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            input_path,
        ]

    def probe(self, input_path: str, timeout: float) -> dict:
        """Get container and stream information using ffprobe.

        Args:
            input_path: Path to input video
            timeout: Seconds before ffprobe is killed

        Returns:
            Parsed ffprobe JSON output

        Raises:
            MediaProbeError: If ffprobe fails, times out or prints invalid JSON
        """
        cmd = self.build_probe_command(input_path)
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=timeout, check=False
            )
        except subprocess.TimeoutExpired as e:
            raise MediaProbeError(f"ffprobe timed out after {timeout:.0f}s") from e
        except OSError as e:
            raise MediaProbeError(f"ffprobe could not be started: {e}") from e

        if result.returncode != 0:
            raise MediaProbeError(
                f"ffprobe exited with code {result.returncode}: "
                f"{(result.stderr or '').strip()[-STDERR_TAIL_CHARS:]}"
            )
        try:
            return json.loads(result.stdout or "")
        except json.JSONDecodeError as e:
            raise MediaProbeError(f"ffprobe returned invalid JSON: {e}") from e

    def build_rendition_command(
        self,
        input_path: str,
        output_path: str,
        profile: RenditionProfile,
    ) -> list[str]:
        """Build the H.264/AAC MP4 command for one rendition.

        The picture is scaled to fit the profile box, keeping its aspect
        ratio, and padded to the exact box size.
        """
        width, height = profile.width, profile.height
        kbps = profile.bitrate_kbps
        return [
            self.ffmpeg_path,
            "-y",
            "-i", input_path,
            "-map", "0:v:0",
            "-map", "0:a:0?",
            # Video settings
            "-c:v", "libx264",
            "-preset", self.preset,
            "-b:v", profile.bitrate,
            "-maxrate", f"{int(kbps * 1.5)}k",
            "-bufsize", f"{kbps * 2}k",
            "-vf", (
                f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
                f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1"
            ),
            "-pix_fmt", "yuv420p",
            # Audio settings
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-ac", "2",
            # Output format
            "-movflags", "+faststart",
            "-f", "mp4",
            output_path,
        ]

    def build_thumbnail_command(
        self,
        input_path: str,
        output_path: str,
        width: int,
        height: int,
        offset_seconds: float = 1.0,
    ) -> list[str]:
        """Build the command extracting one JPEG frame at ``offset_seconds``."""
        return [
            self.ffmpeg_path,
            "-y",
            "-ss", f"{offset_seconds:.3f}",
            "-i", input_path,
            "-frames:v", "1",
            "-vf", (
                f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
                f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
            ),
            "-q:v", "2",
            "-f", "image2",
            output_path,
        ]

    def run(self, cmd: list[str], timeout: float, output_path: Optional[str] = None) -> None:
        """Run an ffmpeg command to completion.

        Args:
            cmd: Command to run
            timeout: Seconds before the process is killed
            output_path: File the command must produce

        Raises:
            TranscodeError: On non-zero exit, timeout, a missing binary, or a
                missing/empty output file
        """
        logger.debug("Running ffmpeg", extra={"command": " ".join(cmd)})
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=timeout, check=False
            )
        except subprocess.TimeoutExpired as e:
            raise TranscodeError(f"ffmpeg timed out after {timeout:.0f}s") from e
        except OSError as e:
            raise TranscodeError(f"ffmpeg could not be started: {e}") from e

        stderr_tail = (result.stderr or "").strip()[-STDERR_TAIL_CHARS:]
        if result.returncode != 0:
            message = f"ffmpeg exited with code {result.returncode}"
            if stderr_tail:
                message = f"{message}: {stderr_tail.splitlines()[-1]}"
            raise TranscodeError(message, stderr=stderr_tail)

        if output_path is not None:
            path = Path(output_path)
            if not path.is_file() or path.stat().st_size == 0:
                raise TranscodeError(
                    f"ffmpeg produced no output at {path.name}",
                    stderr=stderr_tail,
                )

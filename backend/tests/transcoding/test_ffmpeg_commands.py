"""Tests for ffmpeg command construction and subprocess handling."""

import json
import subprocess

import pytest
from hypothesis import given, settings, strategies as st

from safezone.core.errors import TranscodeError
from safezone.modules.transcoding import ffmpeg as ffmpeg_module
from safezone.modules.transcoding.ffmpeg import FFmpegTranscoder, MediaProbeError
from safezone.modules.transcoding.models import Quality, RenditionProfile


def _flag_value(cmd: list[str], flag: str) -> str:
    return cmd[cmd.index(flag) + 1]


def _fake_run(returncode: int = 0, stdout: str = "", stderr: str = ""):
    def run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)
    return run


class TestRenditionCommand:
    """Rendition commands encode H.264/AAC MP4 at the profile's box and bitrate."""

    def test_command_targets_profile(self) -> None:
        transcoder = FFmpegTranscoder(preset="fast")
        profile = RenditionProfile(Quality.MEDIUM, 1280, 720, 2000)

        cmd = transcoder.build_rendition_command("in.mov", "out.mp4", profile)

        assert cmd[0] == "ffmpeg"
        assert _flag_value(cmd, "-i") == "in.mov"
        assert _flag_value(cmd, "-c:v") == "libx264"
        assert _flag_value(cmd, "-preset") == "fast"
        assert _flag_value(cmd, "-b:v") == "2000k"
        assert _flag_value(cmd, "-c:a") == "aac"
        assert _flag_value(cmd, "-movflags") == "+faststart"
        assert "scale=1280:720" in _flag_value(cmd, "-vf")
        assert "pad=1280:720" in _flag_value(cmd, "-vf")
        assert cmd[-1] == "out.mp4"

    def test_audio_stream_is_optional(self) -> None:
        cmd = FFmpegTranscoder().build_rendition_command(
            "in.mp4", "out.mp4", RenditionProfile(Quality.LOW, 854, 480, 1000)
        )
        assert "0:a:0?" in cmd

    @given(kbps=st.integers(min_value=100, max_value=20000))
    @settings(max_examples=100)
    def test_rate_control_scales_with_bitrate(self, kbps: int) -> None:
        """For any bitrate, maxrate is 1.5x and bufsize 2x the target."""
        cmd = FFmpegTranscoder().build_rendition_command(
            "in.mp4", "out.mp4", RenditionProfile(Quality.HIGH, 1920, 1080, kbps)
        )
        assert _flag_value(cmd, "-maxrate") == f"{int(kbps * 1.5)}k"
        assert _flag_value(cmd, "-bufsize") == f"{kbps * 2}k"


class TestThumbnailCommand:
    def test_seek_happens_before_input(self) -> None:
        cmd = FFmpegTranscoder().build_thumbnail_command("in.mp4", "thumb.jpg", 640, 360, 1.0)

        assert cmd.index("-ss") < cmd.index("-i")
        assert _flag_value(cmd, "-ss") == "1.000"
        assert _flag_value(cmd, "-frames:v") == "1"
        assert cmd[-1] == "thumb.jpg"


class TestRun:
    """Subprocess failures surface as TranscodeError."""

    def test_timeout(self, monkeypatch) -> None:
        def run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(ffmpeg_module.subprocess, "run", run)

        with pytest.raises(TranscodeError, match="timed out after 5s"):
            FFmpegTranscoder().run(["ffmpeg"], timeout=5)

    def test_missing_binary(self, monkeypatch) -> None:
        def run(cmd, **kwargs):
            raise FileNotFoundError("ffmpeg")

        monkeypatch.setattr(ffmpeg_module.subprocess, "run", run)

        with pytest.raises(TranscodeError, match="could not be started"):
            FFmpegTranscoder().run(["ffmpeg"], timeout=5)

    def test_nonzero_exit_reports_last_stderr_line(self, monkeypatch) -> None:
        stderr = "frame=  10\nmoov atom not found\nin.mp4: Invalid data found when processing input\n"
        monkeypatch.setattr(ffmpeg_module.subprocess, "run", _fake_run(1, stderr=stderr))

        with pytest.raises(TranscodeError) as exc_info:
            FFmpegTranscoder().run(["ffmpeg"], timeout=5)

        assert exc_info.value.message == (
            "ffmpeg exited with code 1: in.mp4: Invalid data found when processing input"
        )
        assert "moov atom not found" in exc_info.value.stderr

    def test_empty_output_is_a_failure(self, monkeypatch, tmp_path) -> None:
        output = tmp_path / "out.mp4"
        output.write_bytes(b"")
        monkeypatch.setattr(ffmpeg_module.subprocess, "run", _fake_run(0))

        with pytest.raises(TranscodeError, match="produced no output at out.mp4"):
            FFmpegTranscoder().run(["ffmpeg"], timeout=5, output_path=str(output))

    def test_success_with_output(self, monkeypatch, tmp_path) -> None:
        output = tmp_path / "out.mp4"
        output.write_bytes(b"data")
        monkeypatch.setattr(ffmpeg_module.subprocess, "run", _fake_run(0))

        FFmpegTranscoder().run(["ffmpeg"], timeout=5, output_path=str(output))


class TestProbe:
    def test_parses_json(self, monkeypatch) -> None:
        info = {"streams": [{"codec_type": "video"}], "format": {"duration": "12.5"}}
        monkeypatch.setattr(
            ffmpeg_module.subprocess, "run", _fake_run(0, stdout=json.dumps(info))
        )

        assert FFmpegTranscoder().probe("in.mp4", timeout=5) == info

    def test_invalid_json(self, monkeypatch) -> None:
        monkeypatch.setattr(ffmpeg_module.subprocess, "run", _fake_run(0, stdout="not json"))

        with pytest.raises(MediaProbeError, match="invalid JSON"):
            FFmpegTranscoder().probe("in.mp4", timeout=5)

    def test_nonzero_exit(self, monkeypatch) -> None:
        monkeypatch.setattr(
            ffmpeg_module.subprocess, "run", _fake_run(1, stderr="in.mp4: No such file")
        )

        with pytest.raises(MediaProbeError, match="exited with code 1"):
            FFmpegTranscoder().probe("in.mp4", timeout=5)

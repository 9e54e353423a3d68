"""Tests for upload validation order and rejections."""

import pytest
from hypothesis import given, settings, strategies as st

from conftest import FakeTranscoder, probe_output
from safezone.core.errors import ValidationError
from safezone.modules.transcoding.ffmpeg import MediaProbeError
from safezone.modules.transcoding.validator import ALLOWED_VIDEO_EXTENSIONS, MediaValidator

MAX_BYTES = 1000
MAX_DURATION = 600


def _validator(transcoder: FakeTranscoder) -> MediaValidator:
    return MediaValidator(transcoder, max_size_bytes=MAX_BYTES, max_duration_seconds=MAX_DURATION)


@pytest.fixture
def staged_file(tmp_path):
    path = tmp_path / "abc.mp4"
    path.write_bytes(b"\x00" * 100)
    return path


class TestValidate:
    """Checks run in order and stop at the first failure."""

    def test_valid_file(self, staged_file) -> None:
        info = _validator(FakeTranscoder()).validate(staged_file, "video/mp4", 100, "clip.mp4")

        assert info.duration_seconds == 30.0
        assert info.width == 1920
        assert info.has_audio is True

    def test_size_checked_before_media_type(self, staged_file) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _validator(FakeTranscoder()).validate(staged_file, "text/plain", MAX_BYTES + 1, "a.txt")
        assert exc_info.value.check == "size"

    def test_empty_file(self, staged_file) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _validator(FakeTranscoder()).validate(staged_file, "video/mp4", 0, "clip.mp4")
        assert exc_info.value.check == "size"
        assert exc_info.value.message == "File is empty"

    @pytest.mark.parametrize(
        "filename, content_type",
        [("clip.txt", "video/mp4"), ("clip.mp4", "application/octet-stream"), ("clip", "video/mp4")],
    )
    def test_media_type(self, staged_file, filename, content_type) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _validator(FakeTranscoder()).validate(staged_file, content_type, 100, filename)
        assert exc_info.value.check == "media_type"

    def test_missing_staged_file(self, tmp_path) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _validator(FakeTranscoder()).validate(tmp_path / "gone.mp4", "video/mp4", 100)
        assert exc_info.value.check == "readable"

    def test_unprobeable_container(self, staged_file) -> None:
        transcoder = FakeTranscoder()
        transcoder.probe_error = MediaProbeError("moov atom not found")

        with pytest.raises(ValidationError) as exc_info:
            _validator(transcoder).validate(staged_file, "video/mp4", 100)
        assert exc_info.value.check == "probe"

    def test_no_video_stream(self, staged_file) -> None:
        transcoder = FakeTranscoder(probe_output(video=False, audio=True))

        with pytest.raises(ValidationError) as exc_info:
            _validator(transcoder).validate(staged_file, "video/mp4", 100)
        assert exc_info.value.check == "video_stream"

    def test_unknown_duration(self, staged_file) -> None:
        transcoder = FakeTranscoder(probe_output(duration=None))

        with pytest.raises(ValidationError) as exc_info:
            _validator(transcoder).validate(staged_file, "video/mp4", 100)
        assert exc_info.value.check == "probe"

    def test_duration_falls_back_to_stream(self, staged_file) -> None:
        info = probe_output(duration=None)
        info["streams"][0]["duration"] = "42.0"

        result = _validator(FakeTranscoder(info)).validate(staged_file, "video/mp4", 100)

        assert result.duration_seconds == 42.0

    def test_too_long(self, staged_file) -> None:
        transcoder = FakeTranscoder(probe_output(duration=MAX_DURATION + 1))

        with pytest.raises(ValidationError) as exc_info:
            _validator(transcoder).validate(staged_file, "video/mp4", 100)
        assert exc_info.value.check == "duration"


class TestValidateDeclared:
    def test_unknown_size_skips_size_check(self) -> None:
        _validator(FakeTranscoder()).validate_declared("clip.mov", "video/quicktime", None)

    def test_declared_size_over_limit(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _validator(FakeTranscoder()).validate_declared("clip.mov", "video/quicktime", MAX_BYTES + 1)
        assert exc_info.value.check == "size"

    @given(
        ext=st.sampled_from(sorted(ALLOWED_VIDEO_EXTENSIONS)),
        upper=st.booleans(),
    )
    @settings(max_examples=50)
    def test_allowed_extensions_any_case(self, ext: str, upper: bool) -> None:
        """For any allowed extension, in any case, a video/* upload passes."""
        name = "clip" + (ext.upper() if upper else ext)
        _validator(FakeTranscoder()).validate_declared(name, "video/mp4", 10)

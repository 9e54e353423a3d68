"""Tests for structured log output and job log context."""

import json
import logging
import sys

from safezone.core.logging import (
    CorrelationIdFilter,
    StructuredFormatter,
    clear_correlation_id,
    job_log_context,
    peek_correlation_id,
    set_correlation_id,
)


def _record(message: str = "Video job started", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="safezone.modules.pipeline.coordinator",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def _emit(record: logging.LogRecord) -> dict:
    CorrelationIdFilter().filter(record)
    return json.loads(StructuredFormatter().format(record))


class TestJobLogContext:
    def setup_method(self) -> None:
        clear_correlation_id()

    def test_lines_carry_job_ids(self) -> None:
        with job_log_context("7d5f7c1e-8d8f-4c55-9d3e-1e2a3b4c5d6e", "req-42"):
            line = _emit(_record())

        assert line["video_id"] == "7d5f7c1e-8d8f-4c55-9d3e-1e2a3b4c5d6e"
        assert line["correlation_id"] == "req-42"
        assert line["message"] == "Video job started"
        assert "video_id" not in line.get("extra", {})

    def test_context_is_restored(self) -> None:
        set_correlation_id("outer")

        with job_log_context("abc", "inner"):
            assert peek_correlation_id() == "inner"

        assert peek_correlation_id() == "outer"
        assert "video_id" not in _emit(_record())

    def test_missing_correlation_id_keeps_current(self) -> None:
        set_correlation_id("outer")

        with job_log_context("abc"):
            assert peek_correlation_id() == "outer"


class TestStructuredFormatter:
    def test_extra_fields(self) -> None:
        line = _emit(_record(stage="transcode", size_bytes=1024))

        assert line["extra"]["stage"] == "transcode"
        assert line["extra"]["size_bytes"] == 1024
        assert line["level"] == "INFO"

    def test_exception(self) -> None:
        try:
            raise RuntimeError("ffmpeg vanished")
        except RuntimeError:
            record = _record("Video job failed")
            record.exc_info = sys.exc_info()

        line = _emit(record)

        assert line["exception"]["type"] == "RuntimeError"
        assert line["exception"]["message"] == "ffmpeg vanished"

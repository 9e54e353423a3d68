"""Prometheus metrics for the API and the video pipeline."""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

REGISTRY = CollectorRegistry()

# Multiprocess mode (gunicorn workers, Celery prefork)
if "PROMETHEUS_MULTIPROC_DIR" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "safezone_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Video Job Metrics
# ============================================
VIDEO_UPLOADS_REJECTED_TOTAL = Counter(
    "video_uploads_rejected_total",
    "Uploads rejected before a record was created",
    ["reason"],
    registry=REGISTRY,
)

VIDEO_JOBS_TOTAL = Counter(
    "video_jobs_total",
    "Video jobs by terminal outcome",
    ["outcome", "error_kind"],
    registry=REGISTRY,
)

VIDEO_JOB_STAGE_DURATION_SECONDS = Histogram(
    "video_job_stage_duration_seconds",
    "Duration of each video job stage in seconds",
    ["stage"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0],
    registry=REGISTRY,
)

VIDEO_JOBS_IN_PROGRESS = Gauge(
    "video_jobs_in_progress",
    "Video jobs currently being processed by this process",
    registry=REGISTRY,
)

QUEUE_DEPTH = Gauge(
    "video_job_queue_depth",
    "Jobs waiting in the in-process transcode queue",
    ["queue_name"],
    registry=REGISTRY,
)

ORPHANED_ARTIFACTS_REMOVED_TOTAL = Counter(
    "orphaned_artifacts_removed_total",
    "Storage objects removed because no ready record references them",
    ["source"],
    registry=REGISTRY,
)

LEDGER_WRITE_FAILURES_TOTAL = Counter(
    "upload_ledger_write_failures_total",
    "Upload ledger writes that failed and were dropped",
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })

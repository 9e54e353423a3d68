"""SafeZone video ingestion backend.

Accepts raw training videos, validates and transcodes them into quality
renditions plus a thumbnail, publishes the outputs to object storage and
reconciles the result into the persisted video record.

Modules:
    - core: Configuration, database, storage, Celery, logging, tracing, metrics
    - modules.video: Video records, HTTP API and Celery tasks
    - modules.transcoding: Media validation and ffmpeg orchestration
    - modules.ledger: Append-only upload ledger
    - modules.pipeline: Job coordinator, dispatchers and maintenance sweep
"""

__version__ = "0.1.0"

"""Application modules.

- video: Video records, HTTP API and Celery tasks
- transcoding: Media validation and ffmpeg orchestration
- ledger: Append-only upload ledger
- pipeline: Job coordinator, dispatchers and maintenance sweep
"""

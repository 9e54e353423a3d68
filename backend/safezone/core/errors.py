"""Error taxonomy for the video ingestion pipeline.

Every failure a job can end with is one of these types. The job coordinator
stores ``"<ErrorKind>: <message>"`` into the record's processing error, so the
class names are part of the user-visible contract.
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def describe(self) -> str:
        """Human-readable form stored on a failed record."""
        return f"{self.kind}: {self.message}"


class ValidationError(PipelineError):
    """Upload rejected by the validator.

    Attributes:
        check: Name of the failed check (size, media_type, readable, probe,
            video_stream, duration)
    """

    def __init__(self, check: str, message: str):
        super().__init__(message)
        self.check = check


class TranscodeError(PipelineError):
    """Transcoding subprocess failed, timed out or produced no output."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr


class StorageError(PipelineError):
    """Object storage put, delete or signing failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class ReconciliationError(PipelineError):
    """Record update failed after artifacts were published."""


class QueueFullError(PipelineError):
    """No capacity left for another transcode job."""


class UploadTooLargeError(ValidationError):
    """Upload body grew past the size limit while being received."""

    def __init__(self, max_bytes: int):
        super().__init__("size", f"Upload exceeds the maximum size of {max_bytes} bytes")
        self.max_bytes = max_bytes

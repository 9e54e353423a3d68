"""Core module for configuration, persistence, storage and observability."""

from safezone.core.config import settings
from safezone.core.database import Base
from safezone.core.errors import (
    PipelineError,
    QueueFullError,
    ReconciliationError,
    StorageError,
    TranscodeError,
    ValidationError,
)

__all__ = [
    "settings",
    "Base",
    "PipelineError",
    "QueueFullError",
    "ReconciliationError",
    "StorageError",
    "TranscodeError",
    "ValidationError",
]

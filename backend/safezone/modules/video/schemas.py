"""Pydantic schemas for the video module.

Responses use camelCase field names; ``VideoResponse`` is the wire form of a
video record.
"""

import unicodedata
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from safezone.modules.video.models import Quality, VideoStatus
from safezone.modules.video.record_store import VideoRecord

VALID_CATEGORIES = (
    "Segurança",
    "Qualidade",
    "Procedimentos e Regras",
    "Treinamento",
    "Equipamentos",
    "Outros",
    "Procedimentos",
)
DEFAULT_CATEGORY = "Outros"

_CATEGORY_KEYWORDS = (
    ("seguranca", "Segurança"),
    ("treinamento", "Treinamento"),
    ("procedimento", "Procedimentos"),
)


def _fold(value: str) -> str:
    """Lower-case and strip accents."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


def normalize_category(category: str) -> str:
    """Map a free-form category onto one of ``VALID_CATEGORIES``.

    Exact matches are kept. Otherwise the first keyword contained in the
    accent-folded value decides, falling back to ``Outros``.
    """
    value = (category or "").strip()
    if value in VALID_CATEGORIES:
        return value
    folded = _fold(value)
    for valid in VALID_CATEGORIES:
        if _fold(valid) == folded:
            return valid
    for keyword, target in _CATEGORY_KEYWORDS:
        if keyword in folded:
            return target
    return DEFAULT_CATEGORY


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RenditionKeysResponse(CamelModel):
    high: str = ""
    medium: str = ""
    low: str = ""


class VideoResponse(CamelModel):
    """Video record as returned by the API."""

    id: uuid.UUID
    unique_id: str
    title: str
    description: str
    category: str
    zone: str
    duration_seconds: float
    status: VideoStatus
    primary_rendition_key: str
    thumbnail_key: str
    rendition_keys: RenditionKeysResponse
    processing_error: str
    view_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: VideoRecord) -> "VideoResponse":
        return cls(
            id=record.id,
            unique_id=record.unique_id,
            title=record.title,
            description=record.description,
            category=record.category,
            zone=record.zone,
            duration_seconds=record.duration_seconds,
            status=record.status,
            primary_rendition_key=record.primary_rendition_key,
            thumbnail_key=record.thumbnail_key,
            rendition_keys=RenditionKeysResponse(**record.rendition_keys.as_dict()),
            processing_error=record.processing_error,
            view_count=record.view_count,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class UploadAcceptedResponse(CamelModel):
    """Body of the 202 answer to an upload."""

    message: str = "Upload accepted, processing started"
    video_id: uuid.UUID
    unique_id: str
    status: VideoStatus = VideoStatus.PROCESSING


class StreamUrlResponse(CamelModel):
    """Signed read URL for one rendition or the thumbnail."""

    url: str
    expires_in: int = Field(..., description="Seconds until the URL expires")
    quality: str


class MessageResponse(BaseModel):
    message: str


STREAM_TARGETS = tuple(q.value for q in Quality) + ("thumbnail",)

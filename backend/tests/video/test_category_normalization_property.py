"""Property-based tests for category normalization and response shape."""

import uuid
from datetime import datetime, timezone

from hypothesis import given, settings, strategies as st

from safezone.modules.video.models import VideoStatus
from safezone.modules.video.record_store import VideoRecord
from safezone.modules.video.schemas import (
    DEFAULT_CATEGORY,
    VALID_CATEGORIES,
    VideoResponse,
    normalize_category,
)


class TestNormalizeCategory:
    """Every category maps onto one of the accepted values."""

    @given(category=st.text(max_size=50))
    @settings(max_examples=200)
    def test_result_is_always_valid(self, category: str) -> None:
        assert normalize_category(category) in VALID_CATEGORIES

    @given(category=st.sampled_from(VALID_CATEGORIES))
    @settings(max_examples=50)
    def test_valid_categories_are_kept(self, category: str) -> None:
        assert normalize_category(category) == category

    @given(
        prefix=st.text(alphabet="abc xyz", max_size=10),
        suffix=st.text(alphabet="abc xyz", max_size=10),
    )
    @settings(max_examples=100)
    def test_keyword_match(self, prefix: str, suffix: str) -> None:
        """A value containing 'treinamento' maps to Treinamento."""
        assert normalize_category(f"{prefix}treinamento{suffix}") == "Treinamento"

    def test_accents_and_case(self) -> None:
        assert normalize_category("SEGURANÇA") == "Segurança"
        assert normalize_category("seguranca no trabalho") == "Segurança"
        assert normalize_category("procedimentos e regras") == "Procedimentos e Regras"
        assert normalize_category("Procedimento interno") == "Procedimentos"

    def test_unknown_falls_back(self) -> None:
        assert normalize_category("Marketing") == DEFAULT_CATEGORY
        assert normalize_category("") == DEFAULT_CATEGORY


class TestVideoResponse:
    def test_camel_case_with_empty_keys(self) -> None:
        record = VideoRecord(
            id=uuid.uuid4(),
            unique_id="abc",
            title="Forklift safety",
            description="Loading dock",
            category="Segurança",
            zone="Fabrico",
            status=VideoStatus.PROCESSING,
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

        body = VideoResponse.from_record(record).model_dump(by_alias=True, mode="json")

        assert body["uniqueId"] == "abc"
        assert body["status"] == "processing"
        assert body["primaryRenditionKey"] == ""
        assert body["thumbnailKey"] == ""
        assert body["renditionKeys"] == {"high": "", "medium": "", "low": ""}
        assert body["viewCount"] == 0
        assert body["durationSeconds"] == 0.0

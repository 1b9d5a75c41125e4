"""
Database Models Test Suite
=========================

Tests for Pydantic data models and the extraction pattern table.
"""

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError

from dailynews.database.models import (
    ExtractionPattern,
    FallbackImage,
    NewsItem,
    NewsSource,
    to_db_timestamp,
)


class TestExtractionPattern:
    """Test pattern parsing and metadata."""

    @pytest.mark.parametrize("raw,expected", [
        ("pattern1", ExtractionPattern.PATTERN1),
        ("pattern-2", ExtractionPattern.PATTERN2),
        ("patron3", ExtractionPattern.PATTERN3),
        ("Pattern 1 no image", ExtractionPattern.PATTERN1_NO_IMAGE),
        ("patron2_no_image", ExtractionPattern.PATTERN2_NO_IMAGE),
        ("pattern-3-no-image", ExtractionPattern.PATTERN3_NO_IMAGE),
    ])
    def test_parse_spellings(self, raw, expected):
        assert ExtractionPattern.parse(raw) == expected

    def test_parse_empty_values(self):
        assert ExtractionPattern.parse(None) is None
        assert ExtractionPattern.parse("  ") is None

    def test_parse_unknown_raises(self):
        with pytest.raises(ValueError, match="Unknown extraction pattern"):
            ExtractionPattern.parse("pattern9")

    def test_labels(self):
        assert ExtractionPattern.PATTERN2.label == "pattern-2"
        assert ExtractionPattern.PATTERN3_NO_IMAGE.label == "pattern-3 (no image)"

    def test_probe_order(self):
        assert all(p.has_image for p in ExtractionPattern.image_patterns())
        assert not any(p.has_image for p in ExtractionPattern.no_image_patterns())

    def test_field_table(self):
        assert ExtractionPattern.PATTERN1.fields.image == "media:content|media:thumbnail"
        assert ExtractionPattern.PATTERN2.fields.image == "enclosure|media:content"
        assert ExtractionPattern.PATTERN3.fields.image == "description_img"
        assert ExtractionPattern.PATTERN1_NO_IMAGE.fields.image == ""
        assert {p.fields.date for p in ExtractionPattern} == {"pubDate"}


class TestNewsSource:
    """Test NewsSource model validation and functionality."""

    def test_source_creation_valid(self):
        source = NewsSource(
            name="  Example  ",
            rss_url="https://example.com/feed.xml",
            pattern="pattern-1",
            category_id=1,
            language_id=2,
        )

        assert source.name == "Example"
        assert source.pattern == ExtractionPattern.PATTERN1
        assert source.active is True
        assert source.user_added is False
        assert isinstance(source.created_at, datetime)

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            NewsSource(name="   ", rss_url="https://x/feed", category_id=1, language_id=1)

    def test_unknown_pattern_rejected(self):
        with pytest.raises(ValidationError):
            NewsSource(name="X", rss_url="https://x/feed", pattern="weird", category_id=1, language_id=1)

    def test_fallback_image_usage(self):
        with_image = NewsSource(name="A", rss_url="https://x/a", pattern="pattern2", category_id=1, language_id=1)
        without = NewsSource(name="B", rss_url="https://x/b", pattern="pattern2_no_image", category_id=1, language_id=1)
        unset = NewsSource(name="C", rss_url="https://x/c", category_id=1, language_id=1)

        assert not with_image.uses_fallback_image
        assert without.uses_fallback_image
        assert not unset.uses_fallback_image

    def test_overrides_ignore_blank_fields(self):
        source = NewsSource(
            name="A", rss_url="https://x/a", category_id=1, language_id=1,
            title_field="headline", image_field="",
        )

        overrides = source.overrides
        assert overrides.title == "headline"
        assert overrides.image is None
        assert not overrides.is_empty()

    def test_from_db_row_coerces_flags(self):
        row = {
            "id": 3, "name": "A", "rss_url": "https://x/a", "pattern": "pattern1",
            "category_id": 1, "language_id": 2, "category_code": "sports",
            "language_code": "es", "active": 1, "user_added": 0,
        }

        source = NewsSource.from_db_row(row)
        assert source.active is True
        assert source.user_added is False
        assert source.group_key == "sports_es"
        assert str(source) == "NewsSource(A:sports_es)"


class TestNewsItem:
    def test_requires_image(self):
        with pytest.raises(ValidationError):
            NewsItem(
                source_id=1, title="Title", link="http://x/1", image="",
                pub_date=datetime.now(timezone.utc), language_code="en", category_code="health",
            )

    def test_str_truncates_title(self):
        item = NewsItem(
            source_id=1, title="x" * 80, link="http://x/1", image="http://x/a.jpg",
            pub_date=datetime.now(timezone.utc), language_code="en", category_code="health",
        )
        assert str(item) == f"NewsItem({'x' * 50})"


class TestFallbackImage:
    def test_public_url(self):
        image = FallbackImage(
            category_code="sports", language_code="es",
            filename="sports_es_20240101_120000.webp", mime_type="image/webp",
        )

        assert image.public_url() == "/images/fallback/sports_es_20240101_120000.webp"
        assert image.public_url("/static/") == "/static/sports_es_20240101_120000.webp"


class TestTimestamps:
    def test_naive_values_stored_as_utc(self):
        assert to_db_timestamp(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05+00:00"

"""
Tests for Field Extractor
=========================

Alternative resolution, per-field handlers and the two <img> scanners.
"""

import time

import pytest

from dailynews.ingestion.field_extractor import (
    FieldExtractor,
    clean_cdata,
    find_img_src,
    find_img_src_soup,
    format_struct_time,
)


class TestFindImgSrc:
    """Lenient linear <img src> scan."""

    def test_double_quoted_src(self):
        assert find_img_src('<p>Hi</p><img src="http://x/a.jpg" alt="a">') == "http://x/a.jpg"

    def test_single_quoted_src(self):
        assert find_img_src("<img class='c' src='http://x/b.png'>") == "http://x/b.png"

    def test_first_image_wins(self):
        html = '<img src="http://x/1.jpg"><img src="http://x/2.jpg">'
        assert find_img_src(html) == "http://x/1.jpg"

    @pytest.mark.parametrize("html", [
        "",
        "<p>no image</p>",
        '<img src="http://x/a.jpg"',
        '<img alt="nothing">',
        '<img src="http://x/unterminated>',
    ])
    def test_malformed_or_missing_returns_empty(self, html):
        assert find_img_src(html) == ""

    def test_entities_are_not_decoded(self):
        assert find_img_src('<img src="http://x/a.jpg?a=1&amp;b=2">') == "http://x/a.jpg?a=1&amp;b=2"


class TestFindImgSrcSoup:
    """HTML parser based scan."""

    def test_decodes_entities(self):
        assert find_img_src_soup('<img src="http://x/a.jpg?a=1&amp;b=2">') == "http://x/a.jpg?a=1&b=2"

    def test_skips_img_without_src(self):
        assert find_img_src_soup('<img alt="x"><img src="http://x/b.jpg">') == "http://x/b.jpg"

    def test_empty_input(self):
        assert find_img_src_soup("   ") == ""


class TestHelpers:
    def test_clean_cdata(self):
        assert clean_cdata("  <![CDATA[ Breaking news ]]> ") == "Breaking news"
        assert clean_cdata("Plain") == "Plain"
        assert clean_cdata(None) == ""

    def test_format_struct_time(self):
        value = time.strptime("2024-03-01 12:30:00", "%Y-%m-%d %H:%M:%S")
        assert format_struct_time(value) == "2024-03-01T12:30:00Z"
        assert format_struct_time(None) == ""


class TestFieldExtractor:
    """Field spec resolution against feedparser-shaped entries."""

    @pytest.fixture
    def extractor(self):
        return FieldExtractor()

    def test_alternatives_tried_left_to_right(self, extractor):
        entry = {
            "media_content": [{"url": ""}],
            "media_thumbnail": [{"url": "http://x/thumb.jpg"}],
        }
        assert extractor.extract(entry, "media:content|media:thumbnail") == "http://x/thumb.jpg"

    def test_first_non_empty_alternative_returned(self, extractor):
        entry = {
            "media_content": [{"url": "http://x/content.jpg"}],
            "media_thumbnail": [{"url": "http://x/thumb.jpg"}],
        }
        assert extractor.extract(entry, "media:content|media:thumbnail") == "http://x/content.jpg"

    def test_unknown_fields_resolve_empty(self, extractor):
        assert extractor.extract({"title": "T"}, "dc:creator") == ""
        assert extractor.extract({"title": "T"}, "") == ""
        assert extractor.extract({"title": "T"}, None) == ""

    def test_enclosure_requires_image_type(self, extractor):
        entry = {
            "enclosures": [
                {"href": "http://x/audio.mp3", "type": "audio/mpeg"},
                {"href": "http://x/photo.jpg", "type": "image/jpeg"},
            ]
        }
        assert extractor.extract(entry, "enclosure") == "http://x/photo.jpg"

    def test_enclosure_falls_through_to_media_content(self, extractor):
        entry = {
            "enclosures": [{"href": "http://x/audio.mp3", "type": "audio/mpeg"}],
            "media_content": [{"url": "http://x/m.jpg"}],
        }
        assert extractor.extract(entry, "enclosure|media:content") == "http://x/m.jpg"

    def test_description_img_uses_summary(self, extractor):
        entry = {"summary": '<p><img src="http://x/d.jpg" /></p>'}
        assert extractor.extract(entry, "description_img") == "http://x/d.jpg"

    def test_custom_image_scanner(self):
        extractor = FieldExtractor(image_scanner=lambda html: "scanned")
        assert extractor.extract({"description": "<img>"}, "description_img") == "scanned"

    def test_link_is_trimmed(self, extractor):
        assert extractor.extract({"link": "  http://x/1 "}, "link") == "http://x/1"

    def test_pub_date_prefers_published(self, extractor):
        published = time.strptime("2024-03-01 08:00:00", "%Y-%m-%d %H:%M:%S")
        updated = time.strptime("2024-03-02 08:00:00", "%Y-%m-%d %H:%M:%S")
        entry = {"published_parsed": published, "updated_parsed": updated}
        assert extractor.extract(entry, "pubDate") == "2024-03-01T08:00:00Z"

    def test_pub_date_falls_back_to_updated(self, extractor):
        updated = time.strptime("2024-03-02 08:00:00", "%Y-%m-%d %H:%M:%S")
        assert extractor.extract({"updated_parsed": updated}, "pubDate") == "2024-03-02T08:00:00Z"

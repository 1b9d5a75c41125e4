"""Tests for source and upload input validation."""

import pytest

from dailynews.utils.exceptions import ErrorCode, ValidationError
from dailynews.utils.validators import ImageUploadValidator, SourceInputValidator, URLValidator


class TestURLValidator:
    def test_normalizes(self):
        assert URLValidator.validate_feed_url(" HTTP://EXAMPLE.COM/RSS#latest ") == "http://example.com/RSS"

    @pytest.mark.parametrize("url,code", [
        ("", ErrorCode.VALIDATION_REQUIRED_FIELD),
        (None, ErrorCode.VALIDATION_REQUIRED_FIELD),
        ("ftp://example.com/rss", ErrorCode.VALIDATION_INVALID_FORMAT),
        ("https:///rss", ErrorCode.VALIDATION_INVALID_FORMAT),
        ("http://127.0.0.1/rss", ErrorCode.VALIDATION_INVALID_FORMAT),
        ("http://192.168.1.10/rss", ErrorCode.VALIDATION_INVALID_FORMAT),
    ])
    def test_rejects(self, url, code):
        with pytest.raises(ValidationError) as exc_info:
            URLValidator.validate_feed_url(url)
        assert exc_info.value.error_code == code


class TestSourceInputValidator:
    def test_name_trimmed(self):
        assert SourceInputValidator.validate_name("  El País  ") == "El País"

    @pytest.mark.parametrize("name", ["", "   ", None, "x" * 201])
    def test_bad_names(self, name):
        with pytest.raises(ValidationError):
            SourceInputValidator.validate_name(name)

    def test_code_lowercased(self):
        assert SourceInputValidator.validate_code(" Sports ", "category") == "sports"

    @pytest.mark.parametrize("code", ["", "1abc", "sp orts", "x" * 51])
    def test_bad_codes(self, code):
        with pytest.raises(ValidationError) as exc_info:
            SourceInputValidator.validate_code(code, "category")
        assert exc_info.value.context["field_name"] == "category"


class TestImageUploadValidator:
    MAX = 1024

    @pytest.mark.parametrize("name,content_type,extension", [
        ("photo.JPG", "image/jpeg", ".jpg"),
        ("photo.jpeg", "image/jpeg", ".jpeg"),
        ("photo", "image/png", ".png"),
        ("photo.bin", "image/webp; q=1", ".webp"),
        ("photo.png", "image/jpg", ".png"),
    ])
    def test_accepts(self, name, content_type, extension):
        assert ImageUploadValidator.validate_upload(name, content_type, 10, self.MAX) == extension

    @pytest.mark.parametrize("content_type,size,code", [
        ("image/gif", 10, ErrorCode.VALIDATION_INVALID_FORMAT),
        ("", 10, ErrorCode.VALIDATION_INVALID_FORMAT),
        ("image/png", 0, ErrorCode.VALIDATION_REQUIRED_FIELD),
        ("image/png", 1025, ErrorCode.VALIDATION_OUT_OF_RANGE),
    ])
    def test_rejects(self, content_type, size, code):
        with pytest.raises(ValidationError) as exc_info:
            ImageUploadValidator.validate_upload("a.png", content_type, size, self.MAX)
        assert exc_info.value.error_code == code

"""
DailyNews Input Validators
==========================

Validation for user-submitted sources and fallback image uploads.
"""

import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, urlunparse

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and normalization utilities."""

    ALLOWED_SCHEMES = {'http', 'https'}

    SUSPICIOUS_PATTERNS = [
        r'javascript:',
        r'data:',
        r'file:',
        r'localhost',
        r'127\.0\.0\.1',
        r'10\.\d+\.\d+\.\d+',
        r'192\.168\.\d+\.\d+',
    ]

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize a feed URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL (lowercased scheme and host, fragment removed)

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str) or not url.strip():
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()
        parsed = urlparse(url)

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        url_lower = url.lower()
        if any(re.search(pattern, url_lower) for pattern in cls.SUSPICIOUS_PATTERNS):
            raise ValidationError(
                "URL contains suspicious patterns",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        return urlunparse(parsed._replace(
            scheme=parsed.scheme.lower(),
            netloc=parsed.netloc.lower(),
            fragment=''
        ))


class SourceInputValidator:
    """Validation of free-text source fields."""

    CODE_PATTERN = re.compile(r'^[a-z][a-z0-9_-]{0,49}$')

    @staticmethod
    def validate_name(name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError(
                "Source name is required",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="name"
            )
        if len(name) > 200:
            raise ValidationError(
                "Source name must be at most 200 characters",
                error_code=ErrorCode.VALIDATION_OUT_OF_RANGE,
                field_name="name"
            )
        return name

    @classmethod
    def validate_code(cls, value: Optional[str], field_name: str) -> str:
        """Validate a category or language code."""
        value = (value or "").strip().lower()
        if not value:
            raise ValidationError(
                f"{field_name} is required",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name=field_name
            )
        if not cls.CODE_PATTERN.match(value):
            raise ValidationError(
                f"Invalid {field_name} code: {value}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name
            )
        return value


class ImageUploadValidator:
    """Validation of uploaded fallback images."""

    ALLOWED_TYPES = {
        "image/jpeg": ".jpg",
        "image/jpg": ".jpg",
        "image/png": ".png",
        "image/webp": ".webp",
    }
    DEFAULT_EXTENSION = ".jpg"

    @classmethod
    def validate_upload(
        cls,
        original_name: str,
        content_type: str,
        size: int,
        max_bytes: int,
    ) -> str:
        """Validate an upload and return the extension to store it under.

        Raises:
            ValidationError: If the type or size is not acceptable
        """
        mime = (content_type or "").split(";")[0].strip().lower()
        if mime not in cls.ALLOWED_TYPES:
            raise ValidationError(
                f"Unsupported image type: {content_type}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="image",
                user_message="Only JPEG, PNG and WebP images are allowed",
            )

        if size <= 0:
            raise ValidationError(
                "Uploaded image is empty",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="image",
            )

        if size > max_bytes:
            raise ValidationError(
                f"Image is {size} bytes, limit is {max_bytes}",
                error_code=ErrorCode.VALIDATION_OUT_OF_RANGE,
                field_name="image",
                user_message=f"Image must be at most {max_bytes // (1024 * 1024)} MB",
            )

        extension = Path(original_name or "").suffix.lower()
        if extension in {".jpg", ".jpeg", ".png", ".webp"}:
            return extension
        return cls.ALLOWED_TYPES.get(mime, cls.DEFAULT_EXTENSION)

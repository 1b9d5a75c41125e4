"""
DailyNews Data Models
=====================

Pydantic models for persisted entities (sources, news items, fallback
images, catalogs), the fixed extraction pattern table, and the ephemeral
candidate produced while reading a feed.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import List, NamedTuple, Optional, Dict, Any
from dataclasses import dataclass, field
from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as UTC ISO-8601 text for storage."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


class FieldMapping(NamedTuple):
    """Syntactic field alternatives for each logical field."""
    title: str
    image: str
    link: str
    date: str


class ExtractionPattern(str, Enum):
    """The six fixed field-extraction patterns."""
    PATTERN1 = "pattern1"
    PATTERN2 = "pattern2"
    PATTERN3 = "pattern3"
    PATTERN1_NO_IMAGE = "pattern1_no_image"
    PATTERN2_NO_IMAGE = "pattern2_no_image"
    PATTERN3_NO_IMAGE = "pattern3_no_image"

    @property
    def fields(self) -> FieldMapping:
        return PATTERN_FIELDS[self]

    @property
    def has_image(self) -> bool:
        return not self.value.endswith("_no_image")

    @property
    def label(self) -> str:
        """Human readable name, e.g. ``pattern-2 (no image)``."""
        number = self.value[len("pattern")]
        if self.has_image:
            return f"pattern-{number}"
        return f"pattern-{number} (no image)"

    @classmethod
    def image_patterns(cls) -> List["ExtractionPattern"]:
        return [cls.PATTERN1, cls.PATTERN2, cls.PATTERN3]

    @classmethod
    def no_image_patterns(cls) -> List["ExtractionPattern"]:
        return [cls.PATTERN1_NO_IMAGE, cls.PATTERN2_NO_IMAGE, cls.PATTERN3_NO_IMAGE]

    @classmethod
    def parse(cls, value: Any) -> Optional["ExtractionPattern"]:
        """Parse a pattern identifier, accepting ``pattern-1`` and ``patron1`` spellings.

        Returns None for empty values and raises ValueError for unknown ones.
        """
        if value is None or isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if not text:
            return None
        text = text.replace("patron", "pattern")
        text = re.sub(r"^pattern[-_ ]?(\d)", r"pattern\1", text)
        text = text.replace("-", "_").replace(" ", "_")
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Unknown extraction pattern: {value!r}") from None


_DATE_FIELD = "pubDate"

PATTERN_FIELDS: Dict[ExtractionPattern, FieldMapping] = {
    ExtractionPattern.PATTERN1: FieldMapping("title", "media:content|media:thumbnail", "link", _DATE_FIELD),
    ExtractionPattern.PATTERN2: FieldMapping("title", "enclosure|media:content", "link", _DATE_FIELD),
    ExtractionPattern.PATTERN3: FieldMapping("title", "description_img", "link", _DATE_FIELD),
    ExtractionPattern.PATTERN1_NO_IMAGE: FieldMapping("title", "", "link", _DATE_FIELD),
    ExtractionPattern.PATTERN2_NO_IMAGE: FieldMapping("title", "", "link", _DATE_FIELD),
    ExtractionPattern.PATTERN3_NO_IMAGE: FieldMapping("title", "", "link", _DATE_FIELD),
}


@dataclass
class FieldOverrides:
    """Explicit per-source field specs that take precedence over the pattern."""
    title: Optional[str] = None
    image: Optional[str] = None
    link: Optional[str] = None
    date: Optional[str] = None

    def is_empty(self) -> bool:
        return not any([self.title, self.image, self.link, self.date])


@dataclass
class Candidate:
    """A news entry extracted from a feed, not yet admitted."""
    title: str
    link: str
    image: str
    pub_date: datetime


class Country(BaseModel):
    """Language/country catalog entry."""
    id: Optional[int] = None
    code: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1)


class Category(BaseModel):
    """News category catalog entry."""
    id: Optional[int] = None
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1)


class NewsSource(BaseModel):
    """A configured feed endpoint."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    rss_url: str = Field(..., min_length=1, description="Feed URL")
    pattern: Optional[ExtractionPattern] = Field(default=None, description="Extraction pattern")
    title_field: Optional[str] = None
    image_field: Optional[str] = None
    link_field: Optional[str] = None
    date_field: Optional[str] = None
    category_id: int = Field(..., description="Category foreign key")
    language_id: int = Field(..., description="Country/language foreign key")
    category_code: Optional[str] = Field(default=None, description="Joined category code")
    language_code: Optional[str] = Field(default=None, description="Joined language code")
    active: bool = True
    user_added: bool = False
    fallback_image_id: Optional[int] = None
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator('pattern', mode='before')
    @classmethod
    def validate_pattern(cls, v):
        """Reject unknown pattern identifiers at the boundary."""
        return ExtractionPattern.parse(v)

    @field_validator('name', 'rss_url')
    @classmethod
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty")
        return v

    @property
    def overrides(self) -> FieldOverrides:
        return FieldOverrides(
            title=self.title_field or None,
            image=self.image_field or None,
            link=self.link_field or None,
            date=self.date_field or None,
        )

    @property
    def uses_fallback_image(self) -> bool:
        """True for sources whose pattern never yields an image."""
        return self.pattern is not None and not self.pattern.has_image

    @property
    def group_key(self) -> str:
        return f"{self.category_code}_{self.language_code}"

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "NewsSource":
        data = dict(row)
        data["active"] = bool(data.get("active", True))
        data["user_added"] = bool(data.get("user_added", False))
        return cls(**data)

    def __str__(self) -> str:
        return f"NewsSource({self.name}:{self.group_key})"


class NewsItem(BaseModel):
    """An admitted news entry."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    source_id: int = Field(..., description="Owning source")
    title: str = Field(..., min_length=1)
    link: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    pub_date: datetime
    language_code: str = Field(..., min_length=1)
    category_code: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)
    source_name: Optional[str] = Field(default=None, description="Joined source name")

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "NewsItem":
        return cls(**dict(row))

    def __str__(self) -> str:
        return f"NewsItem({self.title[:50]})"


class FallbackImage(BaseModel):
    """Stored image used when a feed yields none."""
    id: Optional[int] = None
    category_code: str = Field(..., min_length=1)
    language_code: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    original_name: str = Field(default="")
    mime_type: str = Field(..., min_length=1)
    file_size: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)

    def public_url(self, prefix: str = "/images/fallback/") -> str:
        return f"{prefix.rstrip('/')}/{self.filename}"

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "FallbackImage":
        return cls(**dict(row))


@dataclass
class NewsFilters:
    """Query filters for listing stored news."""
    language: Optional[str] = None
    category: Optional[str] = None
    sources: List[str] = field(default_factory=list)
    exclude_categories: List[str] = field(default_factory=list)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None

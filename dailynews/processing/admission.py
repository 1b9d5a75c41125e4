"""
Admission Session
=================

Per-group admission state for one ingestion run: links and titles already
accepted, per-source counters and the quotas of the category+language
group. One session has exactly one writer.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional, Set

from ..config.settings import DailyNewsSettings, FilterSettings
from ..database.models import Candidate
from .text_filters import clean_text, find_blacklisted_term


class DiscardReason(str, Enum):
    """Why a candidate was not admitted."""
    BLACKLISTED = "blacklisted"
    TITLE_LENGTH = "title_length"
    DUPLICATE_LINK = "duplicate_link"
    DUPLICATE_TITLE = "duplicate_title"
    TOO_OLD = "too_old"
    NO_IMAGE = "no_image"
    NO_FALLBACK = "no_fallback"
    IMAGE_REJECTED = "image_rejected"
    IMAGE_ERROR = "image_error"
    STORAGE_ERROR = "storage_error"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass
class GroupQuota:
    """Quotas for one category+language group."""
    news_count: Optional[int]
    max_per_source: int
    max_days: int

    @classmethod
    def for_group(
        cls,
        settings: DailyNewsSettings,
        language: str,
        category: str,
        source_count: Optional[int] = None,
    ) -> "GroupQuota":
        """Resolve quotas for a group.

        Args:
            settings: Application settings
            language: Language code
            category: Category code
            source_count: Active sources in the group; None for single-source
                runs, which have no group cap and no extended age window
        """
        quotas = settings.quotas
        max_days = quotas.get_max_days(language, category)

        if source_count is None:
            return cls(
                news_count=None,
                max_per_source=quotas.get_max_per_source(language, category),
                max_days=max_days,
            )

        if source_count <= settings.filters.few_sources_threshold:
            max_days = max(max_days, settings.filters.max_days_few_sources)

        return cls(
            news_count=quotas.get_news_count(language, category),
            max_per_source=quotas.get_max_per_source(language, category),
            max_days=max_days,
        )


@dataclass
class ScreenResult:
    """Outcome of the text, duplicate and age checks."""
    title: str
    reason: Optional[DiscardReason] = None
    detail: str = ""

    @property
    def passed(self) -> bool:
        return self.reason is None


@dataclass
class AdmissionSession:
    """Dedup and quota state for one group during one run."""
    category: str
    language: str
    quota: GroupQuota
    filters: FilterSettings
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    links_seen: Set[str] = field(default_factory=set)
    titles_seen: Set[str] = field(default_factory=set)
    source_counts: Counter = field(default_factory=Counter)
    discards: Counter = field(default_factory=Counter)
    admitted: int = 0

    @property
    def group_full(self) -> bool:
        return self.quota.news_count is not None and self.admitted >= self.quota.news_count

    def source_full(self, source_id: int) -> bool:
        return self.source_counts[source_id] >= self.quota.max_per_source

    def screen(self, candidate: Candidate) -> ScreenResult:
        """Run blacklist, length, duplicate and age checks in that order."""
        title = clean_text(candidate.title)

        term = find_blacklisted_term(title, self.filters.blacklist)
        if term:
            return ScreenResult(title, DiscardReason.BLACKLISTED, term)

        if not title or not self.filters.min_title <= len(title) <= self.filters.max_title:
            return ScreenResult(title, DiscardReason.TITLE_LENGTH, str(len(title)))

        if candidate.link in self.links_seen:
            return ScreenResult(title, DiscardReason.DUPLICATE_LINK)

        if title in self.titles_seen:
            return ScreenResult(title, DiscardReason.DUPLICATE_TITLE)

        pub_date = candidate.pub_date
        if pub_date.tzinfo is None:
            pub_date = pub_date.replace(tzinfo=timezone.utc)
        if self.now - pub_date > timedelta(days=self.quota.max_days):
            return ScreenResult(title, DiscardReason.TOO_OLD, pub_date.isoformat())

        return ScreenResult(title)

    def record_admission(self, source_id: int, link: str, title: str) -> None:
        self.links_seen.add(link)
        self.titles_seen.add(title)
        self.source_counts[source_id] += 1
        self.admitted += 1

    def record_discard(self, reason: DiscardReason) -> None:
        self.discards[reason.value] += 1

    @property
    def discarded(self) -> int:
        return sum(self.discards.values())

    def summary(self) -> Dict[str, object]:
        return {
            "category": self.category,
            "language": self.language,
            "admitted": self.admitted,
            "discarded": self.discarded,
            "discards": dict(self.discards),
            "news_count": self.quota.news_count,
            "max_per_source": self.quota.max_per_source,
            "max_days": self.quota.max_days,
        }

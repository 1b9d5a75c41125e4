"""
Pattern Detector
================

Picks the extraction pattern for a new feed. The three image-bearing
patterns are probed first, in declaration order; a pattern passes when it
yields enough valid candidates (title longer than the minimum, a link and
an image). If none passes, the no-image variants are probed with the same
threshold but without the image requirement. The first passing pattern
wins regardless of how many candidates the later ones would yield.
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Any, Optional

from ..config.settings import DailyNewsSettings, get_settings
from ..database.models import Candidate, ExtractionPattern
from ..utils.exceptions import NoPatternMatchedError
from ..utils.logging import get_ingestion_logger
from .feed_fetcher import FeedFetcher

MAX_SAMPLE_TITLES = 3


@dataclass
class PatternTestResult:
    """Preview of a feed under its detected pattern."""
    pattern: ExtractionPattern
    valid_count: int
    total_count: int
    sample_titles: List[str] = field(default_factory=list)

    @property
    def requires_fallback(self) -> bool:
        return not self.pattern.has_image

    @property
    def pattern_type(self) -> str:
        if self.requires_fallback:
            return "no image, requires fallback"
        return "with image"


class PatternDetector:
    """Detects which extraction pattern fits a feed."""

    def __init__(
        self,
        settings: Optional[DailyNewsSettings] = None,
        feed_fetcher: Optional[FeedFetcher] = None,
    ):
        self.settings = settings or get_settings()
        self.feed_fetcher = feed_fetcher or FeedFetcher(self.settings)
        self.min_valid_items = self.settings.ingestion.detection_min_valid_items
        self.min_title_length = self.settings.ingestion.detection_min_title_length
        self.logger = get_ingestion_logger()

    def is_valid(self, candidate: Candidate, require_image: bool) -> bool:
        if not candidate.title or not candidate.link:
            return False
        if len(candidate.title) <= self.min_title_length:
            return False
        return bool(candidate.image) or not require_image

    def count_valid(self, candidates: List[Candidate], require_image: bool) -> int:
        return sum(1 for candidate in candidates if self.is_valid(candidate, require_image))

    def detect_in_document(self, feed: Mapping[str, Any], url: str = "") -> ExtractionPattern:
        """Detect the pattern of an already parsed feed document.

        Raises:
            NoPatternMatchedError: If no pattern yields enough valid candidates
        """
        probes = [(pattern, True) for pattern in ExtractionPattern.image_patterns()]
        probes += [(pattern, False) for pattern in ExtractionPattern.no_image_patterns()]

        for pattern, require_image in probes:
            candidates = self.feed_fetcher.extract_candidates(feed, pattern)
            valid = self.count_valid(candidates, require_image)
            self.logger.debug(f"Probe {pattern.label}: {valid}/{len(candidates)} valid for {url}")
            if valid >= self.min_valid_items:
                self.logger.info(f"Detected {pattern.label} for {url}")
                return pattern

        raise NoPatternMatchedError(
            f"No extraction pattern yields {self.min_valid_items} valid items",
            feed_url=url,
        )

    async def detect(self, url: str) -> ExtractionPattern:
        """Detect the extraction pattern of a feed.

        Raises:
            FeedUnavailableError: If the feed cannot be read
            NoPatternMatchedError: If no pattern qualifies
        """
        feed = await self.feed_fetcher.fetch_document(url)
        return self.detect_in_document(feed, url)

    async def test_pattern(self, url: str) -> PatternTestResult:
        """Detect the pattern and preview what it extracts.

        Valid items here need a title and link only, so previews of
        no-image feeds are comparable with image-bearing ones.
        """
        feed = await self.feed_fetcher.fetch_document(url)
        pattern = self.detect_in_document(feed, url)
        candidates = self.feed_fetcher.extract_candidates(feed, pattern)

        valid = [c for c in candidates if self.is_valid(c, require_image=False)]
        return PatternTestResult(
            pattern=pattern,
            valid_count=len(valid),
            total_count=len(candidates),
            sample_titles=[c.title for c in valid[:MAX_SAMPLE_TITLES]],
        )


async def detect_pattern(url: str, settings: Optional[DailyNewsSettings] = None) -> ExtractionPattern:
    """Detect the extraction pattern of a feed with default components."""
    async with FeedFetcher(settings) as fetcher:
        return await PatternDetector(settings, fetcher).detect(url)


async def test_pattern(url: str, settings: Optional[DailyNewsSettings] = None) -> PatternTestResult:
    """Preview a feed under its detected pattern with default components."""
    async with FeedFetcher(settings) as fetcher:
        return await PatternDetector(settings, fetcher).test_pattern(url)

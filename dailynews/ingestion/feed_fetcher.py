"""
Feed Fetcher
============

Downloads a feed document, parses it with feedparser and turns each entry
into a normalized candidate using an extraction pattern and/or explicit
field overrides.

Entries without a title or link are dropped. Fetch and parse failures
raise ``FeedUnavailableError``; there are no retries.
"""

import asyncio
import re
import ssl
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

import aiohttp
import certifi
import feedparser

from ..config.settings import DailyNewsSettings, ImageScanner, get_settings
from ..database.models import Candidate, ExtractionPattern, FieldOverrides
from ..utils.exceptions import FeedUnavailableError, ErrorCode
from ..utils.logging import get_logger_for_component
from .field_extractor import FieldExtractor, clean_cdata, find_img_src, find_img_src_soup

_RFC3339 = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a strict RFC 3339 timestamp, returning None on mismatch."""
    value = (value or "").strip()
    if not _RFC3339.match(value):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.astimezone(timezone.utc)


def struct_time_to_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def build_extractor(settings: DailyNewsSettings) -> FieldExtractor:
    if settings.filters.image_scanner == ImageScanner.SOUP:
        return FieldExtractor(image_scanner=find_img_src_soup)
    return FieldExtractor(image_scanner=find_img_src)


class FeedFetcher:
    """Fetches feeds and extracts candidates."""

    def __init__(
        self,
        settings: Optional[DailyNewsSettings] = None,
        extractor: Optional[FieldExtractor] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize feed fetcher.

        Args:
            settings: Application settings (default: global settings)
            extractor: Field extractor (default: built from settings)
            timeout: Request timeout in seconds (default from config)
        """
        self.settings = settings or get_settings()
        self.timeout = timeout or self.settings.limits.request_timeout
        self.max_concurrent = self.settings.limits.parallel_feeds
        self.extractor = extractor or build_extractor(self.settings)
        self.logger = get_logger_for_component("feed_fetcher")
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._session: Optional[aiohttp.ClientSession] = None

    def _create_session(self) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.max_concurrent * 2,
            limit_per_host=5,
            enable_cleanup_closed=True,
        )
        headers = {
            "User-Agent": self.settings.images.user_agent,
            "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml, */*",
            "Accept-Encoding": "gzip, deflate",
        }
        return aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=headers,
        )

    async def open(self) -> None:
        """Open a session shared by subsequent fetches until ``close``."""
        if self._session is None or self._session.closed:
            self._session = self._create_session()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "FeedFetcher":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @asynccontextmanager
    async def _session_scope(self):
        if self._session is not None and not self._session.closed:
            yield self._session
        else:
            async with self._create_session() as session:
                yield session

    async def _download(self, url: str) -> bytes:
        try:
            async with self._session_scope() as session:
                async with session.get(url) as response:
                    if not 200 <= response.status < 300:
                        raise FeedUnavailableError(
                            f"HTTP {response.status}: {response.reason}",
                            feed_url=url,
                            error_code=ErrorCode.FEED_HTTP_STATUS,
                        )
                    return await response.read()

        except asyncio.TimeoutError:
            raise FeedUnavailableError(
                f"Request timeout after {self.timeout}s",
                feed_url=url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            )
        except aiohttp.ClientError as e:
            raise FeedUnavailableError(
                f"Network error: {e}",
                feed_url=url,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            )

    def parse_document(self, content: Any, url: str = "") -> feedparser.FeedParserDict:
        """Parse a feed document.

        Raises:
            FeedUnavailableError: If the document is malformed and has no entries
        """
        feed = feedparser.parse(content)

        if feed.get("bozo") and not feed.entries:
            reason = feed.get("bozo_exception") or "invalid XML structure"
            raise FeedUnavailableError(
                f"Feed parse error: {reason}",
                feed_url=url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
            )

        if feed.get("bozo"):
            self.logger.debug(f"Feed has parse warnings but contains entries: {url}")

        return feed

    async def fetch_document(self, url: str) -> feedparser.FeedParserDict:
        content = await self._download(url)
        return self.parse_document(content, url)

    def build_candidate(
        self,
        entry: Mapping[str, Any],
        pattern: Optional[ExtractionPattern],
        overrides: Optional[FieldOverrides] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Candidate]:
        """Resolve one entry into a candidate, or None if it lacks a title or link."""
        overrides = overrides or FieldOverrides()
        fields = pattern.fields if pattern else None

        title_spec = overrides.title or (fields.title if fields else "")
        title = clean_cdata(self.extractor.extract(entry, title_spec))
        if not title:
            return None

        image = ""
        if overrides.image:
            image = self.extractor.extract(entry, overrides.image)
        elif pattern is not None and pattern.has_image:
            image = self.extractor.extract(entry, fields.image)

        link_spec = overrides.link or (fields.link if fields else "")
        link = self.extractor.extract(entry, link_spec)
        if not link:
            return None

        date_spec = overrides.date or (fields.date if fields else "")
        pub_date = (
            parse_timestamp(self.extractor.extract(entry, date_spec))
            or struct_time_to_datetime(entry.get("published_parsed"))
            or struct_time_to_datetime(entry.get("updated_parsed"))
            or now
            or datetime.now(timezone.utc)
        )

        return Candidate(title=title, link=link, image=image.strip(), pub_date=pub_date)

    def extract_candidates(
        self,
        feed: Mapping[str, Any],
        pattern: Optional[ExtractionPattern],
        overrides: Optional[FieldOverrides] = None,
    ) -> List[Candidate]:
        if pattern is None and (overrides is None or overrides.is_empty()):
            self.logger.warning("No extraction pattern or field overrides, skipping entries")
            return []

        now = datetime.now(timezone.utc)
        candidates = []
        dropped = 0

        for entry in feed.get("entries", []):
            candidate = self.build_candidate(entry, pattern, overrides, now)
            if candidate is None:
                dropped += 1
                continue
            candidates.append(candidate)

        if dropped:
            self.logger.debug(f"Dropped {dropped} entries without title or link")
        return candidates

    async def fetch(
        self,
        url: str,
        pattern: Optional[ExtractionPattern] = None,
        overrides: Optional[FieldOverrides] = None,
    ) -> List[Candidate]:
        """Fetch a feed and return its candidates.

        Args:
            url: Feed URL
            pattern: Extraction pattern
            overrides: Explicit field specs taking precedence over the pattern

        Returns:
            Candidates in feed order

        Raises:
            FeedUnavailableError: If the feed cannot be retrieved or parsed
        """
        feed = await self.fetch_document(url)
        candidates = self.extract_candidates(feed, pattern, overrides)
        self.logger.debug(f"Fetched {len(candidates)} candidates from {url}")
        return candidates

"""
Source Service
==============

Source management shared by the CLI and the scheduler tooling: previewing
a feed, adding it with an auto-detected extraction pattern, renaming,
swapping its fallback image and deleting it together with its news.

Features:
- Duplicate prevention on (url, category, language)
- Pattern detection before a source is stored
- Immediate single-source ingestion after an add
"""

from dataclasses import dataclass
from typing import List, Optional

from ..config.settings import DailyNewsSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.models import ExtractionPattern, FallbackImage, NewsSource
from ..ingestion.feed_fetcher import FeedFetcher
from ..ingestion.pattern_detector import PatternDetector, PatternTestResult
from ..processing.pipeline import IngestionPipeline, IngestionResult
from ..storage.catalog_repository import CatalogRepository
from ..storage.news_repository import NewsRepository
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import (
    DailyNewsError,
    DuplicateSourceError,
    ErrorCode,
    SourceNotFoundError,
    ValidationError,
)
from ..utils.logging import get_logger_for_component
from ..utils.validators import SourceInputValidator, URLValidator
from .fallback_image_service import FallbackImageService


@dataclass
class AddSourceResult:
    """Outcome of adding a source."""
    source_id: int
    pattern: ExtractionPattern
    ingestion: Optional[IngestionResult] = None
    ingestion_error: Optional[str] = None

    @property
    def admitted(self) -> int:
        return self.ingestion.total_admitted if self.ingestion else 0


class SourceService:
    """
    Source management operations.

    Validation failures raise ``ValidationError`` (or ``DuplicateSourceError``);
    feeds that cannot be read or matched raise ``FeedUnavailableError`` or
    ``NoPatternMatchedError`` so callers can show a rejection message.
    """

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[DailyNewsSettings] = None,
        pipeline: Optional[IngestionPipeline] = None,
        detector: Optional[PatternDetector] = None,
        fallback_service: Optional[FallbackImageService] = None,
    ):
        """Initialize the source service.

        Args:
            db_connection: Database connection manager
            settings: Application settings (default: global settings)
            pipeline: Pipeline used for post-add ingestion
            detector: Pattern detector
            fallback_service: Fallback image service
        """
        self.db = db_connection
        self.settings = settings or get_settings()
        self.source_repository = SourceRepository(db_connection)
        self.news_repository = NewsRepository(db_connection)
        self.catalog = CatalogRepository(db_connection)
        self.detector = detector or PatternDetector(self.settings, FeedFetcher(self.settings))
        self.pipeline = pipeline or IngestionPipeline(db_connection, self.settings)
        self.fallback_service = fallback_service or FallbackImageService(db_connection, self.settings)
        self.logger = get_logger_for_component("source_service")

    def _require_source(self, source_id: int) -> NewsSource:
        source = self.source_repository.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    @staticmethod
    def _require_user_added(source: NewsSource) -> None:
        if not source.user_added:
            raise ValidationError(
                f"Source {source.id} is not user-added",
                field_name="source",
                error_code=ErrorCode.VALIDATION_NOT_PERMITTED,
                user_message="Only user-added sources can be edited",
            )

    async def test_source(self, url: str) -> PatternTestResult:
        """Detect a feed's pattern and preview its items without storing anything."""
        url = URLValidator.validate_feed_url(url)
        self.logger.info(f"Testing source {url}")
        return await self.detector.test_pattern(url)

    def is_duplicate(self, url: str, category_code: str, language_code: str) -> bool:
        url = URLValidator.validate_feed_url(url)
        category_code = SourceInputValidator.validate_code(category_code, "category")
        language_code = SourceInputValidator.validate_code(language_code, "language")
        return self.source_repository.exists(url, category_code, language_code)

    async def add_source(
        self,
        name: str,
        url: str,
        category_code: str,
        language_code: str,
        fallback_image_id: Optional[int] = None,
        ingest: bool = True,
    ) -> AddSourceResult:
        """Add a user source with an auto-detected pattern and ingest it.

        Args:
            name: Display name
            url: Feed URL
            category_code: Existing category code
            language_code: Existing language code
            fallback_image_id: Fallback image to associate with the source
            ingest: Run single-source ingestion after the add

        Returns:
            AddSourceResult; a failed ingestion is reported, not raised

        Raises:
            ValidationError: Invalid name, URL, category or language
            DuplicateSourceError: Same URL already added to the group
            FeedUnavailableError: Feed could not be read
            NoPatternMatchedError: No extraction pattern fits the feed
        """
        name = SourceInputValidator.validate_name(name)
        url = URLValidator.validate_feed_url(url)
        category_code = SourceInputValidator.validate_code(category_code, "category")
        language_code = SourceInputValidator.validate_code(language_code, "language")

        category = self.catalog.get_category(category_code)
        if category is None:
            raise ValidationError(f"Unknown category: {category_code}", field_name="category")
        language = self.catalog.get_country(language_code)
        if language is None:
            raise ValidationError(f"Unknown language: {language_code}", field_name="language")

        if self.source_repository.exists(url, category_code, language_code):
            raise DuplicateSourceError(
                f"Source {url} already exists for {category_code}/{language_code}"
            )

        pattern = await self.detector.detect(url)

        source_id = self.source_repository.create_source(
            NewsSource(
                name=name,
                rss_url=url,
                pattern=pattern,
                category_id=category.id,
                language_id=language.id,
                user_added=True,
            )
        )
        self.logger.info(
            f"Added source {source_id} '{name}' with {pattern.label}",
            extra={"category": category_code, "language": language_code},
        )

        if fallback_image_id is not None:
            if not self.source_repository.update_source(source_id, fallback_image_id=fallback_image_id):
                self.logger.warning(f"Could not associate fallback image {fallback_image_id} with source {source_id}")

        result = AddSourceResult(source_id=source_id, pattern=pattern)
        if ingest:
            try:
                result.ingestion = await self.pipeline.run_single_source_ingestion(source_id)
            except DailyNewsError as e:
                self.logger.warning(f"Initial ingestion of source {source_id} failed: {e}")
                result.ingestion_error = str(e)
        return result

    def list_sources(
        self,
        category_code: Optional[str] = None,
        language_code: Optional[str] = None,
        user_added: Optional[bool] = None,
    ) -> List[NewsSource]:
        return self.source_repository.list_sources(category_code, language_code, user_added)

    def rename_source(self, source_id: int, name: str) -> NewsSource:
        """Rename a user-added source."""
        name = SourceInputValidator.validate_name(name)
        source = self._require_source(source_id)
        self._require_user_added(source)

        self.source_repository.update_source(source_id, name=name)
        self.logger.info(f"Renamed source {source_id} to '{name}'")
        return self._require_source(source_id)

    def set_source_fallback_image(
        self, source_id: int, content: bytes, original_name: str, content_type: str
    ) -> FallbackImage:
        """Store a new fallback image for a user-added source, replacing its previous one."""
        source = self._require_source(source_id)
        self._require_user_added(source)

        image = self.fallback_service.save_upload(
            content,
            original_name,
            content_type,
            source.category_code,
            source.language_code,
            replace_existing=False,
        )

        previous = source.fallback_image_id
        self.source_repository.update_source(source_id, fallback_image_id=image.id)
        if previous and previous != image.id:
            self.fallback_service.delete_image(previous)

        self.logger.info(f"Source {source_id} now uses fallback image {image.filename}")
        return image

    def delete_source(self, source_id: int) -> None:
        """Delete a source, its news items and its linked fallback image."""
        source = self._require_source(source_id)

        removed = self.news_repository.delete_by_source(source_id)
        self.source_repository.delete_source(source_id)
        self.logger.info(f"Deleted source {source_id} '{source.name}' and {removed} news items")

        if source.fallback_image_id:
            self.fallback_service.delete_image(source.fallback_image_id)

"""
Ingestion Pipeline
==================

Runs the full refresh and the single-source ingestion. For every
category+language group the pipeline resolves the quotas, reads each
source's candidates and admits them through the layered checks:

1. blacklist  2. title length  3. duplicate link  4. duplicate title
5. age  6. image presence / fallback  7. image qualification

Per-candidate and per-source failures are logged and skipped. Only a
failure to list the active sources aborts a full run.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from ..config.settings import DailyNewsSettings, get_settings
from ..database.connection import DatabaseConnection, get_db_manager
from ..database.models import Candidate, NewsItem, NewsSource
from ..ingestion.feed_fetcher import FeedFetcher
from ..ingestion.image_qualifier import ImageQualifier
from ..storage.fallback_image_repository import FallbackImageRepository
from ..storage.news_repository import NewsRepository
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import (
    DailyNewsError,
    FeedUnavailableError,
    ImageError,
    IngestionTimeoutError,
    SourceNotFoundError,
    StorageError,
    is_retryable_error,
)
from ..utils.logging import PerformanceLogger, get_pipeline_logger
from .admission import AdmissionSession, DiscardReason, GroupQuota

GroupKey = Tuple[str, str]


@dataclass
class GroupResult:
    """Outcome of processing one category+language group."""
    category: str
    language: str
    sources_total: int = 0
    sources_failed: int = 0
    candidates_seen: int = 0
    admitted: int = 0
    discards: Dict[str, int] = field(default_factory=dict)

    @property
    def discarded(self) -> int:
        return sum(self.discards.values())


@dataclass
class IngestionResult:
    """Outcome of one pipeline run."""
    mode: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    groups: List[GroupResult] = field(default_factory=list)
    purge_failed: bool = False
    published: Optional[int] = None
    errors: List[str] = field(default_factory=list)

    @property
    def total_admitted(self) -> int:
        return sum(group.admitted for group in self.groups)

    @property
    def total_discarded(self) -> int:
        return sum(group.discarded for group in self.groups)

    @property
    def sources_failed(self) -> int:
        return sum(group.sources_failed for group in self.groups)

    @property
    def duration_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def efficiency_metrics(self) -> Dict[str, float]:
        sources = sum(group.sources_total for group in self.groups)
        candidates = sum(group.candidates_seen for group in self.groups)
        return {
            "source_success_rate": ((sources - self.sources_failed) / sources) * 100 if sources else 0.0,
            "admission_rate": (self.total_admitted / candidates) * 100 if candidates else 0.0,
            "items_per_second": self.total_admitted / self.duration_seconds if self.duration_seconds > 0 else 0.0,
        }


class IngestionPipeline:
    """Full-refresh and single-source ingestion orchestrator."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[DailyNewsSettings] = None,
        feed_fetcher: Optional[FeedFetcher] = None,
        image_qualifier: Optional[ImageQualifier] = None,
    ):
        """Initialize the pipeline.

        Args:
            db_connection: Database connection manager
            settings: Application settings (default: global settings)
            feed_fetcher: Feed fetcher (default: built from settings)
            image_qualifier: Image qualifier (default: built from settings)
        """
        self.db = db_connection
        self.settings = settings or get_settings()
        self.logger = get_pipeline_logger()

        self.feed_fetcher = feed_fetcher or FeedFetcher(self.settings)
        self.image_qualifier = image_qualifier or ImageQualifier(self.settings)
        self.source_repository = SourceRepository(db_connection)
        self.news_repository = NewsRepository(db_connection)
        self.fallback_repository = FallbackImageRepository(db_connection)

        self._run_lock = asyncio.Lock()

    # Public entry points

    async def run_full_ingestion(self, deadline: Optional[float] = None) -> IngestionResult:
        """Replace the stored news with a fresh pass over every active source.

        Args:
            deadline: Optional run time limit in seconds, checked between sources

        Returns:
            IngestionResult with per-group statistics

        Raises:
            StorageError: If the active sources cannot be listed
            IngestionTimeoutError: If the deadline passes mid-run
        """
        async with self._run_lock:
            result = IngestionResult(mode="full")
            deadline_at = time.monotonic() + deadline if deadline else None
            atomic = self.settings.ingestion.atomic_refresh

            sources = self.source_repository.list_active_sources()
            self._purge(atomic, result)

            groups = self._group_sources(sources)
            self.logger.info(
                f"Starting full ingestion: {len(sources)} sources in {len(groups)} groups"
            )

            with PerformanceLogger(self.logger, "full ingestion", sources=len(sources)):
                await self._open_clients()
                try:
                    for (category, language), group_sources in groups.items():
                        self._check_deadline(deadline_at)
                        quota = GroupQuota.for_group(
                            self.settings, language, category, source_count=len(group_sources)
                        )
                        group_result = await self._process_group(
                            category, language, group_sources, quota,
                            staging=atomic, deadline_at=deadline_at,
                        )
                        result.groups.append(group_result)
                except BaseException:
                    if atomic:
                        self._discard_staging()
                    raise
                finally:
                    await self._close_clients()

            if atomic:
                try:
                    result.published = self.news_repository.publish_staging()
                except StorageError as e:
                    self.logger.error(f"Failed to publish refreshed news, keeping previous set: {e}")
                    result.errors.append(str(e))

            result.finished_at = datetime.now(timezone.utc)
            self.logger.info(
                f"Full ingestion finished: {result.total_admitted} admitted, "
                f"{result.total_discarded} discarded, {result.sources_failed} sources failed"
            )
            return result

    async def run_single_source_ingestion(self, source_id: int) -> IngestionResult:
        """Ingest one source into the live store without purging.

        Raises:
            SourceNotFoundError: If the source does not exist
            FeedUnavailableError: If the source's feed cannot be read
        """
        async with self._run_lock:
            source = self.source_repository.get_source(source_id)
            if source is None:
                raise SourceNotFoundError(source_id)

            result = IngestionResult(mode="single_source")
            quota = GroupQuota.for_group(
                self.settings, source.language_code, source.category_code, source_count=None
            )
            session = AdmissionSession(
                category=source.category_code,
                language=source.language_code,
                quota=quota,
                filters=self.settings.filters,
            )
            group_result = GroupResult(
                category=source.category_code, language=source.language_code, sources_total=1
            )
            logger = self.logger.bind(category=source.category_code, language=source.language_code)

            await self._open_clients()
            try:
                candidates = await self.feed_fetcher.fetch(
                    source.rss_url, source.pattern, source.overrides
                )
                await self._process_source(session, source, candidates, group_result, logger, staging=False)
            finally:
                await self._close_clients()

            group_result.admitted = session.admitted
            group_result.discards = dict(session.discards)
            result.groups.append(group_result)
            result.finished_at = datetime.now(timezone.utc)

            logger.info(f"Ingested source {source.name}: {session.admitted} admitted, {session.discarded} discarded")
            return result

    # Run helpers

    async def _open_clients(self) -> None:
        await self.feed_fetcher.open()
        await self.image_qualifier.open()

    async def _close_clients(self) -> None:
        await self.feed_fetcher.close()
        await self.image_qualifier.close()

    def _purge(self, atomic: bool, result: IngestionResult) -> None:
        try:
            if atomic:
                self.news_repository.clear_staging()
            else:
                self.news_repository.delete_older_than(datetime.now(timezone.utc))
        except StorageError as e:
            self.logger.warning(f"Failed to purge old news, continuing: {e}")
            result.purge_failed = True

    def _discard_staging(self) -> None:
        try:
            self.news_repository.clear_staging()
        except StorageError as e:
            self.logger.warning(f"Failed to clear staging table: {e}")

    @staticmethod
    def _check_deadline(deadline_at: Optional[float]) -> None:
        if deadline_at is not None and time.monotonic() > deadline_at:
            raise IngestionTimeoutError("Ingestion run exceeded its deadline")

    @staticmethod
    def _group_sources(sources: List[NewsSource]) -> "OrderedDict[GroupKey, List[NewsSource]]":
        groups: "OrderedDict[GroupKey, List[NewsSource]]" = OrderedDict()
        for source in sources:
            groups.setdefault((source.category_code, source.language_code), []).append(source)
        return groups

    async def _fetch_source(self, source: NewsSource, semaphore: asyncio.Semaphore) -> List[Candidate]:
        async with semaphore:
            return await self.feed_fetcher.fetch(source.rss_url, source.pattern, source.overrides)

    async def _process_group(
        self,
        category: str,
        language: str,
        sources: List[NewsSource],
        quota: GroupQuota,
        staging: bool,
        deadline_at: Optional[float] = None,
    ) -> GroupResult:
        logger = self.logger.bind(category=category, language=language)
        session = AdmissionSession(
            category=category, language=language, quota=quota, filters=self.settings.filters
        )
        group_result = GroupResult(category=category, language=language, sources_total=len(sources))

        logger.debug(
            f"Processing group with {len(sources)} sources "
            f"(news_count={quota.news_count}, max_per_source={quota.max_per_source}, max_days={quota.max_days})"
        )

        # Fetches run ahead; admission consumes them in source order on this task only.
        semaphore = asyncio.Semaphore(self.settings.limits.parallel_feeds)
        tasks = [asyncio.ensure_future(self._fetch_source(source, semaphore)) for source in sources]

        try:
            for source, task in zip(sources, tasks):
                self._check_deadline(deadline_at)
                if session.group_full:
                    break

                try:
                    candidates = await task
                except FeedUnavailableError as e:
                    logger.warning(
                        f"Skipping source {source.name}: {e}",
                        extra={"source_name": source.name, "retryable": is_retryable_error(e)},
                    )
                    group_result.sources_failed += 1
                    continue
                except Exception as e:
                    logger.error(
                        f"Unexpected error fetching {source.name}: {e}",
                        extra={"source_name": source.name},
                        exc_info=True,
                    )
                    group_result.sources_failed += 1
                    continue

                await self._process_source(session, source, candidates, group_result, logger, staging)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        group_result.admitted = session.admitted
        group_result.discards = dict(session.discards)
        logger.info(f"Group done: {session.admitted} admitted, {session.discarded} discarded")
        return group_result

    async def _process_source(
        self,
        session: AdmissionSession,
        source: NewsSource,
        candidates: List[Candidate],
        group_result: GroupResult,
        logger,
        staging: bool,
    ) -> None:
        for candidate in candidates:
            if session.group_full or session.source_full(source.id):
                break
            group_result.candidates_seen += 1
            try:
                await self._admit_candidate(session, source, candidate, logger, staging)
            except Exception as e:
                logger.error(
                    f"Unexpected error admitting candidate from {source.name}: {e}",
                    extra={"source_name": source.name, "title": candidate.title},
                    exc_info=True,
                )
                self._discard(session, logger, candidate.title, DiscardReason.UNEXPECTED_ERROR, str(e))

    async def _admit_candidate(
        self,
        session: AdmissionSession,
        source: NewsSource,
        candidate: Candidate,
        logger,
        staging: bool,
    ) -> Optional[DiscardReason]:
        """Apply the seven admission checks and persist the candidate if it passes.

        Returns:
            The discard reason, or None if the candidate was admitted
        """
        screen = session.screen(candidate)
        if not screen.passed:
            return self._discard(session, logger, screen.title, screen.reason, screen.detail)

        image, reason = self._resolve_image(source, candidate, logger)
        if reason:
            return self._discard(session, logger, screen.title, reason)

        try:
            qualified = await self.image_qualifier.validate(image)
        except ImageError as e:
            return self._discard(session, logger, screen.title, DiscardReason.IMAGE_ERROR, str(e))
        if not qualified:
            return self._discard(session, logger, screen.title, DiscardReason.IMAGE_REJECTED, image)

        item = NewsItem(
            source_id=source.id,
            title=screen.title,
            link=candidate.link,
            image=image,
            pub_date=candidate.pub_date,
            language_code=session.language,
            category_code=session.category,
        )
        try:
            self.news_repository.create_item(item, staging=staging)
        except StorageError as e:
            logger.error(f"Failed to store news item: {e}", extra={"title": screen.title})
            return self._discard(session, logger, screen.title, DiscardReason.STORAGE_ERROR)

        session.record_admission(source.id, candidate.link, screen.title)
        logger.debug(f"Admitted: {screen.title}", extra={"source_name": source.name})
        return None

    def _resolve_image(
        self, source: NewsSource, candidate: Candidate, logger
    ) -> Tuple[str, Optional[DiscardReason]]:
        if candidate.image:
            return candidate.image, None
        if not source.uses_fallback_image:
            return "", DiscardReason.NO_IMAGE

        try:
            fallback = None
            if source.fallback_image_id:
                fallback = self.fallback_repository.get_by_id(source.fallback_image_id)
            if fallback is None:
                fallback = self.fallback_repository.get_by_group(
                    source.category_code, source.language_code
                )
        except StorageError as e:
            logger.warning(f"Fallback image lookup failed: {e}")
            fallback = None

        if fallback is None:
            return "", DiscardReason.NO_FALLBACK
        return fallback.public_url(self.settings.images.fallback_url_prefix), None

    @staticmethod
    def _discard(
        session: AdmissionSession, logger, title: str, reason: DiscardReason, detail: str = ""
    ) -> DiscardReason:
        session.record_discard(reason)
        logger.debug(
            f"Discarded: {title}",
            extra={"title": title, "reason": reason.value, "detail": detail},
        )
        return reason


async def run_full_ingestion(
    db_connection: Optional[DatabaseConnection] = None,
    settings: Optional[DailyNewsSettings] = None,
    deadline: Optional[float] = None,
) -> IngestionResult:
    """Run a full refresh with default components."""
    pipeline = IngestionPipeline(db_connection or get_db_manager(), settings=settings)
    return await pipeline.run_full_ingestion(deadline=deadline)


async def run_single_source_ingestion(
    source_id: int,
    db_connection: Optional[DatabaseConnection] = None,
    settings: Optional[DailyNewsSettings] = None,
) -> IngestionResult:
    """Ingest one source with default components."""
    pipeline = IngestionPipeline(db_connection or get_db_manager(), settings=settings)
    return await pipeline.run_single_source_ingestion(source_id)

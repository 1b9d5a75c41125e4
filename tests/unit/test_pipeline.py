"""
Ingestion Pipeline Test Suite
=============================

Full refresh and single-source ingestion over a real sqlite database with
the feed fetcher and image qualifier mocked out.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from dailynews.database.models import FallbackImage
from dailynews.processing.pipeline import (
    GroupResult,
    IngestionPipeline,
    IngestionResult,
)
from dailynews.storage.fallback_image_repository import FallbackImageRepository
from dailynews.storage.news_repository import NewsRepository
from dailynews.utils.exceptions import (
    FeedUnavailableError,
    ImageFetchError,
    IngestionTimeoutError,
    SourceNotFoundError,
    StorageError,
)


@pytest.fixture
def feeds():
    """Candidates served per feed URL; exceptions are raised instead."""
    return {}


@pytest.fixture
def feed_fetcher(feeds):
    async def fetch(url, pattern=None, overrides=None):
        value = feeds.get(url, [])
        if isinstance(value, Exception):
            raise value
        return list(value)

    fetcher = Mock()
    fetcher.open = AsyncMock()
    fetcher.close = AsyncMock()
    fetcher.fetch = AsyncMock(side_effect=fetch)
    return fetcher


@pytest.fixture
def image_qualifier():
    qualifier = Mock()
    qualifier.open = AsyncMock()
    qualifier.close = AsyncMock()
    qualifier.validate = AsyncMock(return_value=True)
    return qualifier


@pytest.fixture
def pipeline(seeded_db, settings, feed_fetcher, image_qualifier):
    return IngestionPipeline(
        seeded_db, settings, feed_fetcher=feed_fetcher, image_qualifier=image_qualifier
    )


def _titles(db):
    return sorted(item.title for item in NewsRepository(db).get_latest_news(limit=100))


class TestFullIngestion:
    """Test the full refresh path."""

    @pytest.mark.asyncio
    async def test_blacklist_and_admission(self, pipeline, seeded_db, make_source, make_candidate, feeds):
        source = make_source(category="sports", language="es")
        feeds[source.rss_url] = [
            make_candidate("Resultados de la jornada", "http://x/1"),
            make_candidate("Horóscopo de hoy para Aries", "http://x/2"),
        ]

        result = await pipeline.run_full_ingestion()

        assert _titles(seeded_db) == ["Resultados de la jornada"]
        assert result.total_admitted == 1
        assert result.groups[0].discards == {"blacklisted": 1}
        assert result.published == 1

    @pytest.mark.asyncio
    async def test_replaces_previous_items(self, pipeline, seeded_db, make_source, make_candidate, feeds):
        source = make_source()
        feeds[source.rss_url] = [make_candidate("First run headline", "http://x/1")]
        await pipeline.run_full_ingestion()

        feeds[source.rss_url] = [make_candidate("Second run headline", "http://x/2")]
        await pipeline.run_full_ingestion()

        assert _titles(seeded_db) == ["Second run headline"]

    @pytest.mark.asyncio
    async def test_repeated_runs_are_idempotent(self, pipeline, seeded_db, make_source, make_candidate, feeds):
        source = make_source()
        feeds[source.rss_url] = [
            make_candidate("Stable headline one", "http://x/1"),
            make_candidate("Stable headline two", "http://x/2"),
        ]

        await pipeline.run_full_ingestion()
        first = _titles(seeded_db)
        await pipeline.run_full_ingestion()

        assert _titles(seeded_db) == first
        assert NewsRepository(seeded_db).count_items() == 2

    @pytest.mark.asyncio
    async def test_discard_reasons(self, pipeline, make_source, make_candidate, feeds, image_qualifier):
        source = make_source()
        feeds[source.rss_url] = [
            make_candidate("Short", "http://x/1"),
            make_candidate("Admitted headline here", "http://x/2"),
            make_candidate("Same link different title", "http://x/2"),
            make_candidate("Admitted headline here", "http://x/3"),
            make_candidate("A very old headline", "http://x/4", age=timedelta(days=30)),
            make_candidate("Headline without image", "http://x/5", image=""),
            make_candidate("Headline with bad image", "http://x/6", image="http://x/bad.jpg"),
            make_candidate("Headline with broken image", "http://x/7", image="http://x/broken.jpg"),
        ]

        async def validate(url):
            if url.endswith("bad.jpg"):
                return False
            if url.endswith("broken.jpg"):
                raise ImageFetchError("HTTP 404", image_url=url)
            return True

        image_qualifier.validate.side_effect = validate

        result = await pipeline.run_full_ingestion()

        assert result.groups[0].discards == {
            "title_length": 1,
            "duplicate_link": 1,
            "duplicate_title": 1,
            "too_old": 1,
            "no_image": 1,
            "image_rejected": 1,
            "image_error": 1,
        }
        assert result.total_admitted == 1
        assert result.groups[0].candidates_seen == 8

    @pytest.mark.asyncio
    async def test_screening_happens_before_image_checks(self, pipeline, make_source, make_candidate, feeds, image_qualifier):
        source = make_source()
        feeds[source.rss_url] = [make_candidate("Horóscopo semanal completo", "http://x/1")]

        await pipeline.run_full_ingestion()

        image_qualifier.validate.assert_not_called()

    @pytest.mark.asyncio
    async def test_fallback_image_for_no_image_source(self, pipeline, seeded_db, make_source, make_candidate, feeds, settings):
        FallbackImageRepository(seeded_db).create(
            FallbackImage(
                category_code="health", language_code="en",
                filename="health_en_20240101_000000.jpg", mime_type="image/jpeg",
            )
        )
        source = make_source(pattern="pattern1_no_image", category="health")
        feeds[source.rss_url] = [make_candidate("Hospital opens new wing", "http://x/1", image="")]

        await pipeline.run_full_ingestion()

        items = NewsRepository(seeded_db).get_latest_news()
        assert [item.image for item in items] == ["/images/fallback/health_en_20240101_000000.jpg"]

    @pytest.mark.asyncio
    async def test_source_fallback_preferred_over_group(self, pipeline, seeded_db, make_source, make_candidate, feeds):
        repository = FallbackImageRepository(seeded_db)
        own_id = repository.create(
            FallbackImage(category_code="health", language_code="en", filename="own.webp", mime_type="image/webp")
        )
        repository.create(
            FallbackImage(
                category_code="health", language_code="en", filename="group.webp", mime_type="image/webp",
                created_at=datetime.now(timezone.utc) + timedelta(minutes=1),
            )
        )
        source = make_source(pattern="pattern2_no_image", category="health", fallback_image_id=own_id)
        feeds[source.rss_url] = [make_candidate("Hospital opens new wing", "http://x/1", image="")]

        await pipeline.run_full_ingestion()

        assert NewsRepository(seeded_db).get_latest_news()[0].image == "/images/fallback/own.webp"

    @pytest.mark.asyncio
    async def test_no_fallback_available(self, pipeline, make_source, make_candidate, feeds):
        source = make_source(pattern="pattern3_no_image")
        feeds[source.rss_url] = [make_candidate("Headline needing fallback", "http://x/1", image="")]

        result = await pipeline.run_full_ingestion()

        assert result.groups[0].discards == {"no_fallback": 1}

    @pytest.mark.asyncio
    async def test_per_source_quota(self, pipeline, make_source, make_candidate, feeds):
        source = make_source()
        feeds[source.rss_url] = [
            make_candidate(f"Numbered headline {index:02d}", f"http://x/{index}") for index in range(10)
        ]

        result = await pipeline.run_full_ingestion()

        assert result.total_admitted == 7
        assert result.groups[0].candidates_seen == 7

    @pytest.mark.asyncio
    async def test_group_quota_stops_group(self, seeded_db, make_source, make_candidate, feeds, feed_fetcher, image_qualifier):
        from dailynews.config.settings import DailyNewsSettings

        settings = DailyNewsSettings(
            quotas={"news_count": {"default": 3}, "max_per_source": {"default": 2}},
            logging={"file_path": None},
        )
        pipeline = IngestionPipeline(seeded_db, settings, feed_fetcher=feed_fetcher, image_qualifier=image_qualifier)
        for number in range(3):
            source = make_source(name=f"S{number}", rss_url=f"https://a/{number}")
            feeds[source.rss_url] = [
                make_candidate(f"Source {number} headline {index}", f"http://x/{number}/{index}")
                for index in range(3)
            ]

        result = await pipeline.run_full_ingestion()

        assert result.total_admitted == 3
        assert sum(1 for title in _titles(seeded_db) if title.startswith("Source 0")) == 2

    @pytest.mark.asyncio
    async def test_dedup_across_sources_in_group(self, pipeline, make_source, make_candidate, feeds):
        first = make_source(name="A", rss_url="https://a/1")
        second = make_source(name="B", rss_url="https://a/2")
        feeds[first.rss_url] = [make_candidate("Shared wire story", "http://wire/1")]
        feeds[second.rss_url] = [make_candidate("Shared wire story", "http://b/1")]

        result = await pipeline.run_full_ingestion()

        assert result.total_admitted == 1
        assert result.groups[0].discards == {"duplicate_title": 1}

    @pytest.mark.asyncio
    async def test_groups_have_independent_dedup(self, pipeline, make_source, make_candidate, feeds):
        tech = make_source(name="A", rss_url="https://a/1", category="technology")
        health = make_source(name="B", rss_url="https://a/2", category="health")
        feeds[tech.rss_url] = [make_candidate("Shared wire story", "http://wire/1")]
        feeds[health.rss_url] = [make_candidate("Shared wire story", "http://wire/1")]

        result = await pipeline.run_full_ingestion()

        assert result.total_admitted == 2
        assert [g.category for g in result.groups] == ["health", "technology"]

    @pytest.mark.asyncio
    async def test_unavailable_source_skipped(self, pipeline, make_source, make_candidate, feeds):
        broken = make_source(name="Broken", rss_url="https://a/broken")
        working = make_source(name="Working", rss_url="https://a/working")
        feeds[broken.rss_url] = FeedUnavailableError("HTTP 503")
        feeds[working.rss_url] = [make_candidate("Working feed headline", "http://x/1")]

        result = await pipeline.run_full_ingestion()

        assert result.total_admitted == 1
        assert result.sources_failed == 1

    @pytest.mark.asyncio
    async def test_unexpected_fetch_error_skipped(self, pipeline, make_source, feeds):
        source = make_source()
        feeds[source.rss_url] = RuntimeError("parser crashed")

        result = await pipeline.run_full_ingestion()

        assert result.sources_failed == 1

    @pytest.mark.asyncio
    async def test_inactive_sources_ignored(self, pipeline, make_source, make_candidate, feeds, feed_fetcher):
        source = make_source(active=False)
        feeds[source.rss_url] = [make_candidate()]

        result = await pipeline.run_full_ingestion()

        assert result.groups == []
        feed_fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_source_listing_failure_is_fatal(self, pipeline, seeded_db, make_source, make_candidate, feeds):
        source = make_source()
        feeds[source.rss_url] = [make_candidate("Existing headline", "http://x/1")]
        await pipeline.run_full_ingestion()

        pipeline.source_repository.list_active_sources = Mock(side_effect=StorageError("db locked"))
        with pytest.raises(StorageError):
            await pipeline.run_full_ingestion()

        assert _titles(seeded_db) == ["Existing headline"]

    @pytest.mark.asyncio
    async def test_deadline_discards_staging(self, pipeline, seeded_db, make_source, make_candidate, feeds, feed_fetcher):
        first = make_source(name="A", rss_url="https://a/1")
        second = make_source(name="B", rss_url="https://a/2")
        feeds[first.rss_url] = [make_candidate("Headline from first run", "http://x/1")]
        await pipeline.run_full_ingestion()

        async def slow_fetch(url, pattern=None, overrides=None):
            await asyncio.sleep(0.2)
            return [make_candidate(f"Late headline {url[-1]}", f"http://late/{url[-1]}")]

        feed_fetcher.fetch.side_effect = slow_fetch
        pipeline.settings.limits.parallel_feeds = 1

        with pytest.raises(IngestionTimeoutError):
            await pipeline.run_full_ingestion(deadline=0.05)

        assert _titles(seeded_db) == ["Headline from first run"]
        assert NewsRepository(seeded_db).count_items(staging=True) == 0
        feed_fetcher.close.assert_awaited()

    @pytest.mark.asyncio
    async def test_purge_first_mode(self, seeded_db, make_source, make_candidate, feeds, feed_fetcher, image_qualifier):
        from dailynews.config.settings import DailyNewsSettings

        settings = DailyNewsSettings(ingestion={"atomic_refresh": False}, logging={"file_path": None})
        pipeline = IngestionPipeline(seeded_db, settings, feed_fetcher=feed_fetcher, image_qualifier=image_qualifier)
        source = make_source()
        feeds[source.rss_url] = [make_candidate("Old headline here", "http://x/1")]
        await pipeline.run_full_ingestion()

        feeds[source.rss_url] = [make_candidate("New headline here", "http://x/2")]
        result = await pipeline.run_full_ingestion()

        assert result.published is None
        assert _titles(seeded_db) == ["New headline here"]

    @pytest.mark.asyncio
    async def test_purge_failure_continues(self, pipeline, make_source, make_candidate, feeds):
        source = make_source()
        feeds[source.rss_url] = [make_candidate("Headline after purge failure", "http://x/1")]
        pipeline.news_repository.clear_staging = Mock(side_effect=StorageError("locked"))

        result = await pipeline.run_full_ingestion()

        assert result.purge_failed is True
        assert result.total_admitted == 1

    @pytest.mark.asyncio
    async def test_storage_error_discards_candidate(self, pipeline, make_source, make_candidate, feeds):
        source = make_source()
        feeds[source.rss_url] = [make_candidate("Headline that fails insert", "http://x/1")]
        pipeline.news_repository.create_item = Mock(side_effect=StorageError("disk full"))

        result = await pipeline.run_full_ingestion()

        assert result.groups[0].discards == {"storage_error": 1}

    @pytest.mark.asyncio
    async def test_unexpected_candidate_error_does_not_stop_run(
        self, pipeline, seeded_db, make_source, make_candidate, feeds, image_qualifier
    ):
        sports = make_source(name="Sports", rss_url="https://a/sports", category="sports", language="es")
        health = make_source(name="Health", rss_url="https://a/health", category="health", language="en")
        feeds[sports.rss_url] = [
            make_candidate("Headline with broken image", "http://x/1", image="http://x/broken.jpg"),
            make_candidate("Headline after the broken one", "http://x/2"),
        ]
        feeds[health.rss_url] = [make_candidate("Hospital opens new wing", "http://x/3")]

        async def validate(url):
            if url == "http://x/broken.jpg":
                raise RuntimeError("decoder crashed")
            return True

        image_qualifier.validate = AsyncMock(side_effect=validate)

        result = await pipeline.run_full_ingestion()

        assert _titles(seeded_db) == ["Headline after the broken one", "Hospital opens new wing"]
        discards = {group.category: group.discards for group in result.groups}
        assert discards["sports"] == {"unexpected_error": 1}
        assert discards["health"] == {}


class TestSingleSourceIngestion:
    """Test ingestion of one newly added source."""

    @pytest.mark.asyncio
    async def test_inserts_without_purging(self, pipeline, seeded_db, make_source, make_candidate, feeds):
        existing = make_source(name="Existing", rss_url="https://a/1")
        feeds[existing.rss_url] = [make_candidate("Existing source headline", "http://x/1")]
        await pipeline.run_full_ingestion()

        added = make_source(name="Added", rss_url="https://a/2")
        feeds[added.rss_url] = [make_candidate("Added source headline", "http://x/2")]
        result = await pipeline.run_single_source_ingestion(added.id)

        assert result.mode == "single_source"
        assert result.total_admitted == 1
        assert _titles(seeded_db) == ["Added source headline", "Existing source headline"]

    @pytest.mark.asyncio
    async def test_no_group_cap(self, seeded_db, make_source, make_candidate, feeds, feed_fetcher, image_qualifier):
        from dailynews.config.settings import DailyNewsSettings

        settings = DailyNewsSettings(
            quotas={"news_count": {"default": 2}, "max_per_source": {"default": 5}},
            logging={"file_path": None},
        )
        pipeline = IngestionPipeline(seeded_db, settings, feed_fetcher=feed_fetcher, image_qualifier=image_qualifier)
        source = make_source()
        feeds[source.rss_url] = [
            make_candidate(f"Numbered headline {index}", f"http://x/{index}") for index in range(8)
        ]

        result = await pipeline.run_single_source_ingestion(source.id)

        assert result.total_admitted == 5

    @pytest.mark.asyncio
    async def test_unknown_source(self, pipeline):
        with pytest.raises(SourceNotFoundError):
            await pipeline.run_single_source_ingestion(12345)

    @pytest.mark.asyncio
    async def test_feed_failure_propagates(self, pipeline, make_source, feeds, feed_fetcher):
        source = make_source()
        feeds[source.rss_url] = FeedUnavailableError("HTTP 500")

        with pytest.raises(FeedUnavailableError):
            await pipeline.run_single_source_ingestion(source.id)

        feed_fetcher.close.assert_awaited()


class TestResults:
    def test_aggregates(self):
        result = IngestionResult(mode="full")
        result.groups = [
            GroupResult("sports", "es", sources_total=2, sources_failed=1, candidates_seen=10,
                        admitted=4, discards={"too_old": 3, "no_image": 3}),
            GroupResult("health", "en", sources_total=2, candidates_seen=10, admitted=6,
                        discards={"blacklisted": 4}),
        ]
        result.finished_at = result.started_at + timedelta(seconds=2)

        assert result.total_admitted == 10
        assert result.total_discarded == 10
        assert result.sources_failed == 1
        assert result.duration_seconds == 2.0

        metrics = result.efficiency_metrics
        assert metrics["source_success_rate"] == 75.0
        assert metrics["admission_rate"] == 50.0
        assert metrics["items_per_second"] == 5.0

    def test_unfinished_run(self):
        result = IngestionResult(mode="full")
        assert result.duration_seconds == 0.0
        assert result.efficiency_metrics["items_per_second"] == 0.0

"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for DailyNews tests.

Every test gets its own temporary sqlite file so ingestion runs, staging
swaps and cascades never leak between tests.
"""

import pytest
import tempfile
import os
import sys
from datetime import datetime, timedelta, timezone
from io import BytesIO
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="dailynews_tests_"))
os.environ["DAILYNEWS_DATABASE__PATH"] = str(_TEST_ROOT / "dailynews_test.db")
os.environ["DAILYNEWS_LOGGING__FILE_PATH"] = str(_TEST_ROOT / "logs" / "dailynews_test.log")
os.environ["DAILYNEWS_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["DAILYNEWS_IMAGES__FALLBACK_DIR"] = str(_TEST_ROOT / "fallback")
os.environ["DAILYNEWS_DEBUG"] = "true"


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path):
    """Settings with paths under the test's temporary directory."""
    from dailynews.config.settings import DailyNewsSettings

    return DailyNewsSettings(
        database={"path": str(tmp_path / "dailynews.db"), "pool_size": 2},
        images={"fallback_dir": str(tmp_path / "fallback")},
        logging={"file_path": None, "console_logging": False},
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def test_database(settings):
    """Fresh schema in a temporary sqlite file."""
    from dailynews.database.schema import DatabaseSchema

    schema = DatabaseSchema(settings.database.path)
    schema.create_tables()
    return settings.database.path


@pytest.fixture
def db_connection(test_database):
    """Create a database connection manager for testing."""
    from dailynews.database.connection import DatabaseConnection

    connection = DatabaseConnection(test_database, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def seeded_db(db_connection):
    """Database with countries and categories but no sources."""
    from dailynews.database.seed import seed_database

    seed_database(db_connection, include_sources=False)
    return db_connection


@pytest.fixture
def make_source(seeded_db):
    """Factory inserting a source into the seeded database."""
    from dailynews.database.models import NewsSource
    from dailynews.storage.catalog_repository import CatalogRepository
    from dailynews.storage.source_repository import SourceRepository

    catalog = CatalogRepository(seeded_db)
    repository = SourceRepository(seeded_db)

    def _make(
        name="Example Source",
        rss_url="https://example.com/feed.xml",
        pattern="pattern1",
        category="technology",
        language="en",
        **kwargs,
    ):
        source = NewsSource(
            name=name,
            rss_url=rss_url,
            pattern=pattern,
            category_id=catalog.get_category(category).id,
            language_id=catalog.get_country(language).id,
            **kwargs,
        )
        return repository.get_source(repository.create_source(source))

    return _make


# ============================================================================
# Sample Data
# ============================================================================


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def make_candidate(now):
    """Factory for feed candidates published an hour ago by default."""
    from dailynews.database.models import Candidate

    def _make(title="Example Headline Today", link="http://x/1", image="http://x/a.jpg", age=timedelta(hours=1)):
        return Candidate(title=title, link=link, image=image, pub_date=now - age)

    return _make


@pytest.fixture
def image_bytes():
    """Factory for in-memory images generated with Pillow."""
    from PIL import Image

    def _make(width=800, height=450, fmt="JPEG", mode="RGB"):
        buffer = BytesIO()
        Image.new(mode, (width, height), color="navy").save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


MEDIA_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example</title>
    <link>http://x/</link>
    <description>Example feed</description>
    {items}
  </channel>
</rss>"""


@pytest.fixture
def rss_document():
    """Build an RSS 2.0 document from item XML fragments."""

    def _make(*items):
        return MEDIA_RSS.format(items="\n".join(items))

    return _make

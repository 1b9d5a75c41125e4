"""
DailyNews Database Schema
=========================

SQLite schema for the news store:
- countries / categories: language and category catalogs
- fallback_images: uploaded images substituted for image-less feeds
- news_sources: configured feed endpoints
- news_items: admitted news, replaced on every full refresh
- news_items_staging: build area for atomic full refreshes
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

_NEWS_ITEM_COLUMNS = """
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source_id INTEGER NOT NULL,
                title TEXT NOT NULL CHECK (length(title) > 0),
                link TEXT NOT NULL CHECK (length(link) > 0),
                image TEXT NOT NULL CHECK (length(image) > 0),
                pub_date TEXT NOT NULL,
                language_code TEXT NOT NULL CHECK (length(language_code) > 0),
                category_code TEXT NOT NULL CHECK (length(category_code) > 0),
                created_at TEXT NOT NULL,
                FOREIGN KEY (source_id) REFERENCES news_sources(id) ON DELETE CASCADE
"""


class DatabaseSchema:
    """Database schema manager for the DailyNews SQLite database."""

    def __init__(self, db_path: str = "data/dailynews.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables, run migrations and create indexes."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            # Dependency order
            self._create_countries_table(conn)
            self._create_categories_table(conn)
            self._create_fallback_images_table(conn)
            self._create_news_sources_table(conn)
            self._create_news_items_table(conn, "news_items")
            self._create_news_items_table(conn, "news_items_staging")

            self._run_migrations(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_countries_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS countries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL
            )
        """
        )

    def _create_categories_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL
            )
        """
        )

    def _create_fallback_images_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS fallback_images (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                category_code TEXT NOT NULL,
                language_code TEXT NOT NULL,
                filename TEXT NOT NULL,
                original_name TEXT NOT NULL,
                mime_type TEXT NOT NULL,
                file_size INTEGER NOT NULL CHECK (file_size >= 0),
                created_at TEXT NOT NULL
            )
        """
        )

    def _create_news_sources_table(self, conn: sqlite3.Connection) -> None:
        """Create news_sources; pattern and field overrides are optional."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS news_sources (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                rss_url TEXT NOT NULL,
                pattern TEXT,
                title_field TEXT,
                image_field TEXT,
                link_field TEXT,
                date_field TEXT,
                category_id INTEGER NOT NULL,
                language_id INTEGER NOT NULL,
                active BOOLEAN DEFAULT TRUE,
                user_added BOOLEAN DEFAULT FALSE,
                fallback_image_id INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY (category_id) REFERENCES categories(id),
                FOREIGN KEY (language_id) REFERENCES countries(id),
                FOREIGN KEY (fallback_image_id) REFERENCES fallback_images(id) ON DELETE SET NULL,
                UNIQUE(rss_url, category_id, language_id)
            )
        """
        )

    def _create_news_items_table(self, conn: sqlite3.Connection, table: str) -> None:
        conn.execute(f"CREATE TABLE IF NOT EXISTS {table} ({_NEWS_ITEM_COLUMNS})")

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_sources_active ON news_sources(active)",
            "CREATE INDEX IF NOT EXISTS idx_sources_group ON news_sources(category_id, language_id)",
            "CREATE INDEX IF NOT EXISTS idx_news_pub_date ON news_items(pub_date)",
            "CREATE INDEX IF NOT EXISTS idx_news_group ON news_items(language_code, category_code)",
            "CREATE INDEX IF NOT EXISTS idx_news_source ON news_items(source_id)",
            "CREATE INDEX IF NOT EXISTS idx_fallback_group ON fallback_images(category_code, language_code)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        """Bring databases created by older releases up to date."""
        cursor = conn.execute("PRAGMA table_info(news_sources)")
        source_columns = [column[1] for column in cursor.fetchall()]

        if "fallback_image_id" not in source_columns:
            logger.info("Adding fallback_image_id column to news_sources table")
            conn.execute("ALTER TABLE news_sources ADD COLUMN fallback_image_id INTEGER")

        if "user_added" not in source_columns:
            logger.info("Adding user_added column to news_sources table")
            conn.execute("ALTER TABLE news_sources ADD COLUMN user_added BOOLEAN DEFAULT FALSE")

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in [
                "news_items_staging",
                "news_items",
                "news_sources",
                "fallback_images",
                "categories",
                "countries",
            ]:
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.commit()
            logger.info("All database tables dropped")

    def get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        return conn

    def verify_schema(self) -> bool:
        """Verify every expected table exists."""
        try:
            conn = self.get_connection()
            try:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}
                expected_tables = {
                    "countries",
                    "categories",
                    "fallback_images",
                    "news_sources",
                    "news_items",
                    "news_items_staging",
                }

                missing = expected_tables - tables
                if missing:
                    logger.error(f"Missing tables: {sorted(missing)}")
                    return False

                conn.execute("PRAGMA foreign_key_check")
                logger.info("Database schema verification passed")
                return True
            finally:
                conn.close()

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False


def create_tables(db_path: str = "data/dailynews.db") -> None:
    """Convenience function to create database tables."""
    DatabaseSchema(db_path).create_tables()

"""
News Repository
===============

Storage for admitted news items: purge and insert for the ingestion
pipeline, a staging table for atomic refreshes, and filtered listings for
the delivery layer.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional, Tuple

from ..database.connection import DatabaseConnection
from ..database.models import NewsItem, NewsFilters, to_db_timestamp
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import StorageError, ErrorCode

LIVE_TABLE = "news_items"
STAGING_TABLE = "news_items_staging"

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

_ITEM_COLUMNS = (
    "source_id, title, link, image, pub_date, language_code, category_code, created_at"
)


class NewsRepository:
    """Repository for news item data."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("news_repository")

    def create_item(self, item: NewsItem, staging: bool = False) -> int:
        """Insert one admitted item.

        Args:
            item: Item to store
            staging: Write into the staging table instead of the live table

        Returns:
            New row ID

        Raises:
            StorageError: If the insert fails
        """
        table = STAGING_TABLE if staging else LIVE_TABLE
        try:
            return self.db.execute_insert(
                f"INSERT INTO {table} ({_ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    item.source_id,
                    item.title,
                    item.link,
                    item.image,
                    to_db_timestamp(item.pub_date),
                    item.language_code,
                    item.category_code,
                    to_db_timestamp(item.created_at),
                ),
            )
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to store news item '{item.title[:60]}': {e}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={"link": item.link, "table": table},
            )

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete live items created at or before ``cutoff``.

        Passing the current time purges every stored item.
        """
        try:
            deleted = self.db.execute_update(
                f"DELETE FROM {LIVE_TABLE} WHERE created_at <= ?",
                (to_db_timestamp(cutoff),),
            )
            self.logger.info(f"Purged {deleted} news items older than {cutoff.isoformat()}")
            return deleted

        except sqlite3.Error as e:
            raise StorageError(f"Failed to purge news items: {e}")

    def clear_staging(self) -> int:
        """Empty the staging table left behind by an earlier run."""
        try:
            return self.db.execute_update(f"DELETE FROM {STAGING_TABLE}")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear staging table: {e}")

    def publish_staging(self) -> int:
        """Replace the live items with the staged ones in one transaction.

        Returns:
            Number of items published
        """
        try:
            with self.db.transaction() as conn:
                conn.execute(f"DELETE FROM {LIVE_TABLE}")
                cursor = conn.execute(
                    f"INSERT INTO {LIVE_TABLE} ({_ITEM_COLUMNS}) "
                    f"SELECT {_ITEM_COLUMNS} FROM {STAGING_TABLE} ORDER BY id"
                )
                published = cursor.rowcount
                conn.execute(f"DELETE FROM {STAGING_TABLE}")

            self.logger.info(f"Published {published} staged news items")
            return published

        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to publish staged news items: {e}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
            )

    def delete_by_source(self, source_id: int) -> int:
        try:
            deleted = 0
            with self.db.transaction() as conn:
                for table in (LIVE_TABLE, STAGING_TABLE):
                    cursor = conn.execute(
                        f"DELETE FROM {table} WHERE source_id = ?", (source_id,)
                    )
                    deleted += cursor.rowcount
            return deleted

        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete news for source {source_id}: {e}")

    def count_items(self, staging: bool = False) -> int:
        table = STAGING_TABLE if staging else LIVE_TABLE
        row = self.db.execute_one(f"SELECT COUNT(*) FROM {table}")
        return row[0] if row else 0

    @staticmethod
    def _build_filters(filters: NewsFilters) -> Tuple[str, list]:
        conditions = []
        params: list = []

        if filters.language:
            conditions.append("n.language_code = ?")
            params.append(filters.language)
        if filters.category:
            conditions.append("n.category_code = ?")
            params.append(filters.category)
        if filters.sources:
            placeholders = ", ".join("?" for _ in filters.sources)
            conditions.append(f"s.name IN ({placeholders})")
            params.extend(filters.sources)
        if filters.exclude_categories:
            placeholders = ", ".join("?" for _ in filters.exclude_categories)
            conditions.append(f"n.category_code NOT IN ({placeholders})")
            params.extend(filters.exclude_categories)
        if filters.date_from:
            conditions.append("n.pub_date >= ?")
            params.append(to_db_timestamp(filters.date_from))
        if filters.date_to:
            conditions.append("n.pub_date <= ?")
            params.append(to_db_timestamp(filters.date_to))
        if filters.search:
            conditions.append("n.title LIKE ?")
            params.append(f"%{filters.search.strip()}%")

        where = " WHERE " + " AND ".join(conditions) if conditions else ""
        return where, params

    def get_filtered_news(
        self,
        filters: Optional[NewsFilters] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> List[NewsItem]:
        """List live items matching ``filters``, newest first."""
        filters = filters or NewsFilters()
        if limit <= 0:
            limit = DEFAULT_PAGE_SIZE
        limit = min(limit, MAX_PAGE_SIZE)
        offset = max(offset, 0)

        where, params = self._build_filters(filters)
        query = (
            f"SELECT n.*, s.name AS source_name FROM {LIVE_TABLE} n "
            f"JOIN news_sources s ON s.id = n.source_id{where} "
            "ORDER BY n.pub_date DESC, n.id DESC LIMIT ? OFFSET ?"
        )

        try:
            rows = self.db.execute_query(query, tuple(params + [limit, offset]))
            return [NewsItem.from_db_row(row) for row in rows]
        except sqlite3.Error as e:
            self.logger.error(f"Failed to list news: {e}")
            raise StorageError(f"Failed to list news: {e}", query=query)

    def count_filtered_news(self, filters: Optional[NewsFilters] = None) -> int:
        where, params = self._build_filters(filters or NewsFilters())
        query = (
            f"SELECT COUNT(*) FROM {LIVE_TABLE} n "
            f"JOIN news_sources s ON s.id = n.source_id{where}"
        )
        try:
            row = self.db.execute_one(query, tuple(params))
            return row[0] if row else 0
        except sqlite3.Error as e:
            raise StorageError(f"Failed to count news: {e}", query=query)

    def get_latest_news(self, limit: int = DEFAULT_PAGE_SIZE) -> List[NewsItem]:
        return self.get_filtered_news(NewsFilters(), limit=limit)

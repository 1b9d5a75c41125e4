"""
Source Repository
=================

Database access for configured news sources. Rows are always returned with
their category and language codes joined in.
"""

import sqlite3
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import NewsSource, ExtractionPattern, to_db_timestamp, utc_now
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import StorageError, ErrorCode

_SELECT_SOURCES = """
    SELECT s.*, c.code AS category_code, l.code AS language_code
    FROM news_sources s
    JOIN categories c ON c.id = s.category_id
    JOIN countries l ON l.id = s.language_id
"""

_UPDATABLE_FIELDS = {
    "name",
    "active",
    "pattern",
    "title_field",
    "image_field",
    "link_field",
    "date_field",
    "fallback_image_id",
}


class SourceRepository:
    """Repository for news source data."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("source_repository")

    def list_active_sources(self) -> List[NewsSource]:
        """Get all active sources ordered by group.

        Raises:
            StorageError: If the sources cannot be read
        """
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    _SELECT_SOURCES
                    + " WHERE s.active = ? ORDER BY c.code, l.code, s.id",
                    (True,),
                ).fetchall()
                return [NewsSource.from_db_row(row) for row in rows]

        except sqlite3.Error as e:
            self.logger.error(f"Failed to list active sources: {e}")
            raise StorageError(
                f"Failed to list active sources: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            )

    def list_sources(
        self,
        category_code: Optional[str] = None,
        language_code: Optional[str] = None,
        user_added: Optional[bool] = None,
    ) -> List[NewsSource]:
        """List sources, optionally filtered by group or origin."""
        conditions = []
        params: list = []
        if category_code:
            conditions.append("c.code = ?")
            params.append(category_code)
        if language_code:
            conditions.append("l.code = ?")
            params.append(language_code)
        if user_added is not None:
            conditions.append("s.user_added = ?")
            params.append(user_added)

        query = _SELECT_SOURCES
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY c.code, l.code, s.name"

        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(query, tuple(params)).fetchall()
                return [NewsSource.from_db_row(row) for row in rows]

        except sqlite3.Error as e:
            self.logger.error(f"Failed to list sources: {e}")
            raise StorageError(f"Failed to list sources: {e}")

    def get_source(self, source_id: int) -> Optional[NewsSource]:
        """Get a source by ID, or None if it does not exist."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    _SELECT_SOURCES + " WHERE s.id = ?", (source_id,)
                ).fetchone()
                return NewsSource.from_db_row(row) if row else None

        except sqlite3.Error as e:
            self.logger.error(f"Failed to get source {source_id}: {e}")
            raise StorageError(f"Failed to get source {source_id}: {e}")

    def exists(self, rss_url: str, category_code: str, language_code: str) -> bool:
        """Check whether a source with this URL already exists in the group."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    """
                    SELECT 1 FROM news_sources s
                    JOIN categories c ON c.id = s.category_id
                    JOIN countries l ON l.id = s.language_id
                    WHERE s.rss_url = ? AND c.code = ? AND l.code = ?
                    LIMIT 1
                    """,
                    (rss_url.strip(), category_code, language_code),
                ).fetchone()
                return row is not None

        except sqlite3.Error as e:
            self.logger.error(f"Failed duplicate check for {rss_url}: {e}")
            raise StorageError(f"Failed duplicate check: {e}")

    def create_source(self, source: NewsSource) -> int:
        """Insert a new source and return its ID.

        Raises:
            StorageError: If the insert fails (including constraint violations)
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO news_sources (
                        name, rss_url, pattern, title_field, image_field, link_field,
                        date_field, category_id, language_id, active, user_added,
                        fallback_image_id, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        source.name,
                        source.rss_url,
                        source.pattern.value if source.pattern else None,
                        source.title_field,
                        source.image_field,
                        source.link_field,
                        source.date_field,
                        source.category_id,
                        source.language_id,
                        source.active,
                        source.user_added,
                        source.fallback_image_id,
                        to_db_timestamp(source.created_at or utc_now()),
                    ),
                )
                source_id = cursor.lastrowid
                conn.commit()

                self.logger.info(f"Created source {source_id}: {source.name} ({source.rss_url})")
                return source_id

        except sqlite3.IntegrityError as e:
            self.logger.error(f"Constraint violation creating source {source.name}: {e}")
            raise StorageError(
                f"Failed to create source: {e}",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
            )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to create source {source.name}: {e}")
            raise StorageError(f"Failed to create source: {e}")

    def update_source(self, source_id: int, **kwargs) -> bool:
        """Update whitelisted source fields.

        Returns:
            True if a row was updated
        """
        if not kwargs:
            return True

        fields = []
        values = []
        for name, value in kwargs.items():
            if name not in _UPDATABLE_FIELDS:
                self.logger.warning(f"Ignoring non-updatable source field: {name}")
                continue
            if name == "pattern" and value is not None:
                value = ExtractionPattern.parse(value).value
            fields.append(f"{name} = ?")
            values.append(value)

        if not fields:
            return False

        values.append(source_id)
        try:
            updated = self.db.execute_update(
                f"UPDATE news_sources SET {', '.join(fields)} WHERE id = ?",
                tuple(values),
            )
            return updated > 0

        except sqlite3.Error as e:
            self.logger.error(f"Failed to update source {source_id}: {e}")
            raise StorageError(f"Failed to update source {source_id}: {e}")

    def delete_source(self, source_id: int) -> bool:
        try:
            deleted = self.db.execute_update(
                "DELETE FROM news_sources WHERE id = ?", (source_id,)
            )
            if deleted:
                self.logger.info(f"Deleted source {source_id}")
            return deleted > 0

        except sqlite3.Error as e:
            self.logger.error(f"Failed to delete source {source_id}: {e}")
            raise StorageError(f"Failed to delete source {source_id}: {e}")

"""
Fallback Image Repository
=========================

Records of uploaded fallback images, looked up by category and language.
"""

import sqlite3
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import FallbackImage, to_db_timestamp
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import StorageError


class FallbackImageRepository:
    """Repository for fallback image records."""

    # Images linked to one source are owned by it, not by the group
    _UNLINKED = """
        id NOT IN (
            SELECT fallback_image_id FROM news_sources WHERE fallback_image_id IS NOT NULL
        )
    """

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("fallback_image_repository")

    def get_by_group(self, category_code: str, language_code: str) -> Optional[FallbackImage]:
        """Most recent group fallback image for a category+language pair.

        Images linked to a single source through ``news_sources.fallback_image_id``
        belong to that source and are never returned here.
        """
        try:
            row = self.db.execute_one(
                f"""
                SELECT * FROM fallback_images
                WHERE category_code = ? AND language_code = ? AND {self._UNLINKED}
                ORDER BY created_at DESC, id DESC LIMIT 1
                """,
                (category_code, language_code),
            )
            return FallbackImage.from_db_row(row) if row else None

        except sqlite3.Error as e:
            self.logger.error(
                f"Failed to look up fallback image: {e}",
                extra={"category": category_code, "language": language_code},
            )
            raise StorageError(f"Failed to look up fallback image: {e}")

    def list_group_images(self, category_code: str, language_code: str) -> List[FallbackImage]:
        """Group fallback images for a category+language pair, excluding source-linked ones."""
        try:
            rows = self.db.execute_query(
                f"""
                SELECT * FROM fallback_images
                WHERE category_code = ? AND language_code = ? AND {self._UNLINKED}
                ORDER BY created_at, id
                """,
                (category_code, language_code),
            )
            return [FallbackImage.from_db_row(row) for row in rows]

        except sqlite3.Error as e:
            raise StorageError(f"Failed to list fallback images: {e}")

    def get_by_id(self, image_id: int) -> Optional[FallbackImage]:
        try:
            row = self.db.execute_one(
                "SELECT * FROM fallback_images WHERE id = ?", (image_id,)
            )
            return FallbackImage.from_db_row(row) if row else None

        except sqlite3.Error as e:
            raise StorageError(f"Failed to get fallback image {image_id}: {e}")

    def list_images(self) -> List[FallbackImage]:
        try:
            rows = self.db.execute_query(
                "SELECT * FROM fallback_images ORDER BY category_code, language_code, created_at"
            )
            return [FallbackImage.from_db_row(row) for row in rows]

        except sqlite3.Error as e:
            raise StorageError(f"Failed to list fallback images: {e}")

    def create(self, image: FallbackImage) -> int:
        try:
            image_id = self.db.execute_insert(
                """
                INSERT INTO fallback_images (
                    category_code, language_code, filename, original_name,
                    mime_type, file_size, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    image.category_code,
                    image.language_code,
                    image.filename,
                    image.original_name,
                    image.mime_type,
                    image.file_size,
                    to_db_timestamp(image.created_at),
                ),
            )
            self.logger.info(
                f"Created fallback image {image_id}: {image.filename}",
                extra={"category": image.category_code, "language": image.language_code},
            )
            return image_id

        except sqlite3.Error as e:
            raise StorageError(f"Failed to create fallback image: {e}")

    def delete(self, image_id: int) -> bool:
        try:
            return self.db.execute_update(
                "DELETE FROM fallback_images WHERE id = ?", (image_id,)
            ) > 0

        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete fallback image {image_id}: {e}")

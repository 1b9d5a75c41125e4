"""
Catalog Repository
==================

Read access to the category and language catalogs.
"""

import sqlite3
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Category, Country
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import StorageError


class CatalogRepository:
    """Repository for categories and countries."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("catalog_repository")

    def _fetch(self, query: str, params: tuple = ()):
        try:
            return self.db.execute_query(query, params)
        except sqlite3.Error as e:
            self.logger.error(f"Catalog query failed: {e}")
            raise StorageError(f"Catalog query failed: {e}", query=query)

    def get_category(self, code: str) -> Optional[Category]:
        rows = self._fetch("SELECT * FROM categories WHERE code = ?", (code,))
        return Category(**dict(rows[0])) if rows else None

    def get_country(self, code: str) -> Optional[Country]:
        rows = self._fetch("SELECT * FROM countries WHERE code = ?", (code,))
        return Country(**dict(rows[0])) if rows else None

    def list_categories(self) -> List[Category]:
        return [Category(**dict(row)) for row in self._fetch("SELECT * FROM categories ORDER BY code")]

    def list_countries(self) -> List[Country]:
        return [Country(**dict(row)) for row in self._fetch("SELECT * FROM countries ORDER BY code")]

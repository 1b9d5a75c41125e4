"""
DailyNews Storage Layer
=======================

Repository implementations for sources, news items, fallback images and
the category/language catalogs.
"""

from .source_repository import SourceRepository
from .news_repository import NewsRepository
from .fallback_image_repository import FallbackImageRepository
from .catalog_repository import CatalogRepository

__all__ = [
    "SourceRepository",
    "NewsRepository",
    "FallbackImageRepository",
    "CatalogRepository",
]

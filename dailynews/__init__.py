"""
DailyNews - RSS News Ingestion
==============================

Periodic ingestion of RSS/Atom feeds into a news store, grouped by
category and language.

Main Components:
- Database: SQLite with connection pooling and a staging table for atomic refreshes
- Configuration: environment variables with Pydantic validation and per-group quotas
- Ingestion: feed fetching, field extraction patterns and image qualification
- Processing: layered admission (blacklist, length, duplicates, age, image)
- Services: source and fallback image management
"""

__version__ = "1.0.0"
__author__ = "DailyNews Development Team"
__description__ = "RSS news ingestion and admission pipeline"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import DailyNewsError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "DailyNewsError",
]

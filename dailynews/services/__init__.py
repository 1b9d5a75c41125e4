"""
DailyNews Services
==================

Service layer for source and fallback image management used by the CLI.
"""

from .fallback_image_service import FallbackImageService
from .source_service import AddSourceResult, SourceService

__all__ = [
    'AddSourceResult',
    'FallbackImageService',
    'SourceService',
]

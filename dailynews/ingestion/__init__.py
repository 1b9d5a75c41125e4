"""
DailyNews Ingestion Module
==========================

Feed reading and image qualification components.

This module handles:
- Field extraction with the fixed pattern table
- Feed download and candidate normalization
- Image qualification and fallback image import
- Pattern detection for new sources
"""

from .feed_fetcher import FeedFetcher
from .image_qualifier import ImageQualifier
from .pattern_detector import PatternDetector, PatternTestResult

__all__ = ["FeedFetcher", "ImageQualifier", "PatternDetector", "PatternTestResult"]

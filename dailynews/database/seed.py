"""
Initial catalog and source data.

Every insert is idempotent so ``seed_database`` can run on each start-up.
"""

import logging
from typing import Dict, List, Tuple

from .connection import DatabaseConnection
from .models import ExtractionPattern, to_db_timestamp, utc_now

logger = logging.getLogger(__name__)

COUNTRIES: List[Tuple[str, str]] = [
    ("es", "Español"),
    ("en", "English"),
    ("fr", "Français"),
]

CATEGORIES: List[Tuple[str, str]] = [
    ("technology", "Technology"),
    ("health", "Health"),
    ("sports", "Sports"),
    ("culture", "Culture"),
    ("international", "International"),
    ("entertainment", "Entertainment"),
    ("economy", "Economy"),
    ("breaking", "Breaking News"),
]

# (name, url, pattern, category, language)
SOURCES: List[Tuple[str, str, str, str, str]] = [
    ("El País Deportes", "https://feeds.elpais.com/mrss-s/pages/ep/site/elpais.com/section/deportes/portada", "pattern1", "sports", "es"),
    ("ABC Fútbol", "https://www.abc.es/rss/2.0/deportes/futbol/", "pattern1", "sports", "es"),
    ("La Vanguardia Deportes", "https://www.lavanguardia.com/rss/deportes.xml", "pattern2", "sports", "es"),
    ("El País Tecnología", "https://feeds.elpais.com/mrss-s/pages/ep/site/elpais.com/section/tecnologia/portada", "pattern1", "technology", "es"),
    ("Xataka", "https://www.xataka.com/feedburner.xml", "pattern3", "technology", "es"),
    ("La Vanguardia Salud", "https://www.lavanguardia.com/rss/vida/salud.xml", "pattern2", "health", "es"),
    ("El País América", "https://feeds.elpais.com/mrss-s/pages/ep/site/elpais.com/section/america/portada", "pattern1", "international", "es"),
    ("El País Cultura", "https://feeds.elpais.com/mrss-s/pages/ep/site/elpais.com/section/cultura/portada", "pattern1", "culture", "es"),
    ("El País Economía", "https://feeds.elpais.com/mrss-s/pages/ep/site/elpais.com/section/economia/portada", "pattern1", "economy", "es"),
    ("ABC Cine", "https://www.abc.es/rss/2.0/play/cine/", "pattern1", "entertainment", "es"),
    ("El País Últimas Noticias", "https://feeds.elpais.com/mrss-s/pages/ep/site/elpais.com/section/ultimas-noticias/portada", "pattern1", "breaking", "es"),
    ("The New York Times Technology", "https://rss.nytimes.com/services/xml/rss/nyt/Technology.xml", "pattern1", "technology", "en"),
    ("BBC Entertainment & Arts", "https://feeds.bbci.co.uk/news/entertainment_and_arts/rss.xml", "pattern1", "entertainment", "en"),
    ("MedPage Today", "https://www.medpagetoday.com/rss/headlines.xml", "pattern3", "health", "en"),
    ("Sky News World", "https://feeds.skynews.com/feeds/rss/world.xml", "pattern2", "international", "en"),
    ("Sky News Home", "https://feeds.skynews.com/feeds/rss/home.xml", "pattern2", "breaking", "en"),
]


def _code_map(conn, table: str) -> Dict[str, int]:
    return {row["code"]: row["id"] for row in conn.execute(f"SELECT id, code FROM {table}")}


def seed_database(db: DatabaseConnection, include_sources: bool = True) -> Dict[str, int]:
    """Insert catalogs and starter sources that are not present yet.

    Returns:
        Number of rows inserted per table
    """
    inserted = {"countries": 0, "categories": 0, "news_sources": 0}

    with db.transaction() as conn:
        for code, name in COUNTRIES:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO countries (code, name) VALUES (?, ?)", (code, name)
            )
            inserted["countries"] += cursor.rowcount

        for code, name in CATEGORIES:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO categories (code, name) VALUES (?, ?)", (code, name)
            )
            inserted["categories"] += cursor.rowcount

        if include_sources:
            languages = _code_map(conn, "countries")
            categories = _code_map(conn, "categories")
            created_at = to_db_timestamp(utc_now())

            for name, url, pattern, category, language in SOURCES:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO news_sources
                        (name, rss_url, pattern, category_id, language_id,
                         active, user_added, created_at)
                    VALUES (?, ?, ?, ?, ?, TRUE, FALSE, ?)
                    """,
                    (
                        name,
                        url,
                        ExtractionPattern.parse(pattern).value,
                        categories[category],
                        languages[language],
                        created_at,
                    ),
                )
                inserted["news_sources"] += cursor.rowcount

    logger.info(f"Seed data applied: {inserted}")
    return inserted

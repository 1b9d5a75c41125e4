"""
DailyNews Configuration System
==============================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.

Quota maps are nested by language and category, e.g.::

    DAILYNEWS_QUOTAS__NEWS_COUNT='{"default": 10, "es": {"sports": 12, "default": 8}}'

and are resolved through the chain ``lang.category -> lang.default -> default``.
"""

from pathlib import Path
from typing import List, Dict, Optional, Any, Union
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


DEFAULT_NEWS_COUNT = 10
DEFAULT_MAX_PER_SOURCE = 7
DEFAULT_MAX_DAYS = 5

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

QuotaValue = Union[int, float, Dict[str, Union[int, float]]]


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ImageScanner(str, Enum):
    """Strategies for locating an image inside an HTML description."""
    LENIENT = "lenient"   # linear <img ... src= scan
    SOUP = "soup"         # BeautifulSoup parse


class FilterSettings(BaseModel):
    """Admission thresholds shared by every group."""
    min_title: int = Field(default=10, ge=1, description="Minimum cleaned title length")
    max_title: int = Field(default=200, ge=1, description="Maximum cleaned title length")
    blacklist: List[str] = Field(
        default_factory=lambda: ["oróscopo", "horóscopo"],
        description="Banned title substrings (case-insensitive)",
    )
    max_days_few_sources: int = Field(
        default=10, ge=0, description="Extended max age for groups with few sources"
    )
    few_sources_threshold: int = Field(
        default=3, ge=0, description="Groups with at most this many sources get the extended age"
    )
    image_scanner: ImageScanner = Field(
        default=ImageScanner.LENIENT, description="How description_img locates the <img> tag"
    )

    @field_validator('blacklist')
    @classmethod
    def normalize_blacklist(cls, v):
        """Lowercase and drop empty terms."""
        return [term.strip().lower() for term in v if term and term.strip()]


class QuotaSettings(BaseModel):
    """Per-language/per-category quotas."""
    news_count: Dict[str, QuotaValue] = Field(
        default_factory=lambda: {"default": DEFAULT_NEWS_COUNT},
        description="Cap on admitted items per category+language group",
    )
    max_per_source: Dict[str, QuotaValue] = Field(
        default_factory=lambda: {"default": DEFAULT_MAX_PER_SOURCE},
        description="Cap on admitted items per source within a group",
    )
    max_days: Dict[str, QuotaValue] = Field(
        default_factory=lambda: {"default": DEFAULT_MAX_DAYS},
        description="Maximum item age in days",
    )

    @staticmethod
    def resolve(
        mapping: Dict[str, QuotaValue], language: str, category: str, fallback: int
    ) -> int:
        """Resolve a quota through lang.category -> lang.default -> default.

        Args:
            mapping: Nested quota map
            language: Language code of the group
            category: Category code of the group
            fallback: Value used when nothing is configured

        Returns:
            Resolved quota as an integer
        """
        lang_value = mapping.get(language)
        if isinstance(lang_value, dict):
            if category in lang_value:
                return int(lang_value[category])
            if "default" in lang_value:
                return int(lang_value["default"])
        elif lang_value is not None:
            return int(lang_value)

        default_value = mapping.get("default")
        if default_value is not None and not isinstance(default_value, dict):
            return int(default_value)
        return fallback

    def get_news_count(self, language: str, category: str) -> int:
        return self.resolve(self.news_count, language, category, DEFAULT_NEWS_COUNT)

    def get_max_per_source(self, language: str, category: str) -> int:
        return self.resolve(self.max_per_source, language, category, DEFAULT_MAX_PER_SOURCE)

    def get_max_days(self, language: str, category: str) -> int:
        return self.resolve(self.max_days, language, category, DEFAULT_MAX_DAYS)


class ImageSettings(BaseModel):
    """Image qualification and fallback storage."""
    target_aspect: float = Field(default=16 / 9, gt=0, description="Target width/height ratio")
    aspect_tolerance: float = Field(default=0.25, ge=0.0, lt=1.0, description="Relative tolerance around target aspect")
    min_width: int = Field(default=400, ge=1, description="Minimum image width in pixels")
    min_height: int = Field(default=225, ge=1, description="Minimum image height in pixels")
    target_width: int = Field(default=800, ge=1, description="Width of stored fallback images")
    target_height: int = Field(default=450, ge=1, description="Height of stored fallback images")
    user_agent: str = Field(default=BROWSER_USER_AGENT, description="User-Agent for image downloads")
    fallback_dir: str = Field(
        default="frontend/assets/images/fallback", description="Directory holding fallback image files"
    )
    fallback_url_prefix: str = Field(
        default="/images/fallback/", description="Public URL prefix of fallback images"
    )
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, ge=1, description="Maximum fallback upload size")

    @property
    def aspect_bounds(self) -> tuple:
        low = self.target_aspect * (1 - self.aspect_tolerance)
        high = self.target_aspect * (1 + self.aspect_tolerance)
        return low, high


class LimitsSettings(BaseModel):
    """Timeouts and concurrency limits."""
    request_timeout: int = Field(default=30, ge=1, le=300, description="Per-request timeout in seconds")
    parallel_feeds: int = Field(default=4, ge=1, le=20, description="Concurrent feed fetches within a group")
    manual_refresh_timeout: int = Field(default=120, ge=10, le=3600, description="Deadline for manual refresh in seconds")


class IngestionSettings(BaseModel):
    """Refresh behaviour and pattern detection thresholds."""
    atomic_refresh: bool = Field(default=True, description="Build into a staging table and swap at the end of a run")
    detection_min_valid_items: int = Field(default=2, ge=1, description="Valid items needed for a pattern to pass")
    detection_min_title_length: int = Field(default=10, ge=0, description="Titles must be longer than this during detection")


class SchedulerSettings(BaseModel):
    """Periodic refresh configuration."""
    interval_minutes: int = Field(default=1440, ge=1, description="Minutes between full refreshes")
    run_on_startup: bool = Field(default=True, description="Run a refresh as soon as the scheduler starts")


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/dailynews.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/dailynews.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class DailyNewsSettings(BaseSettings):
    """Main application settings."""

    filters: FilterSettings = Field(default_factory=FilterSettings)
    quotas: QuotaSettings = Field(default_factory=QuotaSettings)
    images: ImageSettings = Field(default_factory=ImageSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="DailyNews", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "DAILYNEWS_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if self.filters.min_title > self.filters.max_title:
            errors.append(
                f"filters.min_title ({self.filters.min_title}) exceeds "
                f"filters.max_title ({self.filters.max_title})"
            )

        for name in ("news_count", "max_per_source", "max_days"):
            mapping = getattr(self.quotas, name)
            default_value = mapping.get("default")
            if isinstance(default_value, dict):
                errors.append(f"quotas.{name}.default must be a number")

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                errors.append(f"Invalid log file path: {e}")

        try:
            Path(self.images.fallback_dir).mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Invalid fallback image directory: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> DailyNewsSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = DailyNewsSettings()
        settings.validate_configuration()
        return settings

    except Exception as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


_settings: Optional[DailyNewsSettings] = None


def get_settings(reload: bool = False) -> DailyNewsSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings

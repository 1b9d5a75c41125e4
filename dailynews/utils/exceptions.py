"""
DailyNews Custom Exceptions
===========================

Exception hierarchy for the ingestion pipeline with error codes, context
information, and user-facing messages for the source management flows.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"
    CONFIG_PARSE_ERROR = "C003"

    # Storage errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_TRANSACTION = "D004"
    DATABASE_ERROR = "D005"

    # Feed errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_HTTP_STATUS = "F005"

    # Image errors (I001-I099)
    IMAGE_FETCH_FAILED = "I001"
    IMAGE_DECODE_FAILED = "I002"
    IMAGE_UNSUPPORTED_TYPE = "I003"
    IMAGE_REJECTED = "I004"
    IMAGE_WRITE_FAILED = "I005"

    # Pattern errors (P001-P099)
    PATTERN_NOT_MATCHED = "P001"
    PATTERN_UNKNOWN = "P002"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_OUT_OF_RANGE = "V003"
    VALIDATION_DUPLICATE = "V004"
    VALIDATION_NOT_PERMITTED = "V005"

    # Ingestion and resource errors (R001-R099)
    RESOURCE_NOT_FOUND = "R001"
    INGESTION_TIMEOUT = "R002"
    INGESTION_IN_PROGRESS = "R003"
    INGESTION_FAILED = "R004"

    # System errors (S001-S099)
    SYSTEM_PERMISSION_DENIED = "S001"
    SYSTEM_DISK_FULL = "S002"
    SYSTEM_MEMORY_ERROR = "S003"


class DailyNewsError(Exception):
    """Base exception for all DailyNews errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize DailyNews error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(DailyNewsError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error
            **kwargs: Additional arguments for DailyNewsError
        """
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class StorageError(DailyNewsError):
    """Persistence errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        """Initialize storage error.

        Args:
            message: Error message
            query: SQL statement that caused the error
            **kwargs: Additional arguments for DailyNewsError
        """
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "Storage operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedError(DailyNewsError):
    """Feed retrieval and parsing errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for DailyNewsError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get("user_message", f"Feed could not be read: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedUnavailableError(FeedError):
    """Feed could not be retrieved or parsed; the source is skipped for the run."""

    pass


class ImageError(DailyNewsError):
    """Image download and qualification errors."""

    def __init__(self, message: str, image_url: Optional[str] = None, **kwargs):
        """Initialize image error.

        Args:
            message: Error message
            image_url: Image URL that caused the error
            **kwargs: Additional arguments for DailyNewsError
        """
        context = kwargs.get("context", {})
        if image_url:
            context["image_url"] = image_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.IMAGE_FETCH_FAILED),
            context=context,
            user_message=kwargs.get("user_message", f"Image is not usable: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ImageFetchError(ImageError):
    """Network failure or non-success status downloading an image."""

    def __init__(self, message: str, image_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.IMAGE_FETCH_FAILED)
        super().__init__(message, image_url=image_url, **kwargs)


class ImageDecodeError(ImageError):
    """Downloaded bytes are not a decodable image."""

    def __init__(self, message: str, image_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.IMAGE_DECODE_FAILED)
        super().__init__(message, image_url=image_url, **kwargs)


class UnsupportedImageTypeError(ImageError):
    """Image MIME type outside the accepted set."""

    def __init__(
        self,
        message: str,
        image_url: Optional[str] = None,
        content_type: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.get("context", {})
        if content_type:
            context["content_type"] = content_type
        kwargs["context"] = context
        kwargs.setdefault("error_code", ErrorCode.IMAGE_UNSUPPORTED_TYPE)
        kwargs.setdefault("recoverable", False)
        super().__init__(message, image_url=image_url, **kwargs)


class ImageRejectedError(ImageError):
    """Image decoded fine but failed size or aspect requirements."""

    def __init__(self, message: str, image_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.IMAGE_REJECTED)
        kwargs.setdefault("recoverable", False)
        super().__init__(message, image_url=image_url, **kwargs)


class PatternError(DailyNewsError):
    """Extraction pattern errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize pattern error.

        Args:
            message: Error message
            feed_url: Feed URL being probed
            **kwargs: Additional arguments for DailyNewsError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.PATTERN_NOT_MATCHED),
            context=context,
            user_message=kwargs.get(
                "user_message",
                "The feed format is not supported by any extraction pattern",
            ),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class NoPatternMatchedError(PatternError):
    """No extraction pattern produced enough valid items for a feed."""

    pass


class ValidationError(DailyNewsError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for DailyNewsError
        """
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class DuplicateSourceError(ValidationError):
    """A source with the same URL, category and language already exists."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.VALIDATION_DUPLICATE)
        kwargs.setdefault(
            "user_message",
            "This feed already exists for the selected category and language",
        )
        super().__init__(message, field_name="rss_url", **kwargs)


class SourceNotFoundError(DailyNewsError):
    """Referenced source does not exist."""

    def __init__(self, source_id: int, **kwargs):
        super().__init__(
            message=f"Source {source_id} not found",
            error_code=ErrorCode.RESOURCE_NOT_FOUND,
            context={"source_id": source_id},
            user_message="Source not found",
            **kwargs,
        )
        self.source_id = source_id


class IngestionError(DailyNewsError):
    """Run-level ingestion failures."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.INGESTION_FAILED),
            context=kwargs.get("context", {}),
            user_message=kwargs.get("user_message", "News refresh failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class IngestionTimeoutError(IngestionError):
    """Run-level deadline exceeded."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.INGESTION_TIMEOUT)
        kwargs.setdefault("user_message", "News refresh took too long and was stopped")
        super().__init__(message, **kwargs)


class IngestionInProgressError(IngestionError):
    """Another process holds the ingestion lock."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.INGESTION_IN_PROGRESS)
        kwargs.setdefault("user_message", "A news refresh is already running")
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> DailyNewsError:
    """Convert generic exceptions to DailyNews exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        DailyNews exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, DailyNewsError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = DailyNewsError(
            message=f"Network error during {operation}: {str(exception)}",
            error_code=ErrorCode.FEED_NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
            recoverable=True,
        )

    elif isinstance(exception, PermissionError):
        error = DailyNewsError(
            message=f"Permission denied during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_PERMISSION_DENIED,
            context=context,
            user_message="Access denied",
            recoverable=False,
        )

    elif isinstance(exception, FileNotFoundError):
        error = ConfigurationError(
            message=f"Required file not found during {operation}: {str(exception)}",
            error_code=ErrorCode.CONFIG_MISSING,
            context=context,
            user_message="Required file missing",
        )

    elif isinstance(exception, MemoryError):
        error = DailyNewsError(
            message=f"Memory exhausted during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_MEMORY_ERROR,
            context=context,
            user_message="System resources exhausted",
            recoverable=True,
        )

    else:
        error = DailyNewsError(
            message=f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: DailyNewsError) -> bool:
    """Check if an error is worth retrying on the next run.

    Args:
        exception: DailyNews exception to check

    Returns:
        True if the error is potentially retryable
    """
    if not exception.recoverable:
        return False

    retryable_codes = {
        ErrorCode.FEED_NETWORK_ERROR,
        ErrorCode.FEED_FETCH_TIMEOUT,
        ErrorCode.IMAGE_FETCH_FAILED,
        ErrorCode.DATABASE_CONNECTION,
        ErrorCode.INGESTION_TIMEOUT,
    }

    return exception.error_code in retryable_codes


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception.

    Args:
        exception: Exception to get message for

    Returns:
        User-friendly error message
    """
    if isinstance(exception, DailyNewsError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."

"""
Fallback Image Service
======================

Stores the images shown for news items of sources whose feeds carry no
image. Files live under ``images.fallback_dir`` and are named
``{category}_{language}_{YYYYmmdd_HHMMSS}{ext}``; one record per file is
kept in ``fallback_images``.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..config.settings import DailyNewsSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.models import FallbackImage
from ..ingestion.image_qualifier import ImageQualifier
from ..storage.catalog_repository import CatalogRepository
from ..storage.fallback_image_repository import FallbackImageRepository
from ..utils.exceptions import ErrorCode, ImageError, StorageError, ValidationError
from ..utils.logging import get_logger_for_component
from ..utils.validators import ImageUploadValidator, SourceInputValidator


class FallbackImageService:
    """Upload, import and removal of fallback images."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[DailyNewsSettings] = None,
        image_qualifier: Optional[ImageQualifier] = None,
    ):
        """Initialize the fallback image service.

        Args:
            db_connection: Database connection manager
            settings: Application settings (default: global settings)
            image_qualifier: Qualifier used by URL imports
        """
        self.db = db_connection
        self.settings = settings or get_settings()
        self.repository = FallbackImageRepository(db_connection)
        self.catalog = CatalogRepository(db_connection)
        self.image_qualifier = image_qualifier or ImageQualifier(self.settings)
        self.fallback_dir = Path(self.settings.images.fallback_dir)
        self.logger = get_logger_for_component("fallback_images")

    @staticmethod
    def build_filename(
        category_code: str, language_code: str, extension: str, now: Optional[datetime] = None
    ) -> str:
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        return f"{category_code}_{language_code}_{stamp}{extension}"

    def file_path(self, filename: str) -> Path:
        return self.fallback_dir / filename

    def public_url(self, image: FallbackImage) -> str:
        return image.public_url(self.settings.images.fallback_url_prefix)

    def _validate_group(self, category_code: str, language_code: str) -> tuple:
        category_code = SourceInputValidator.validate_code(category_code, "category")
        language_code = SourceInputValidator.validate_code(language_code, "language")

        if self.catalog.get_category(category_code) is None:
            raise ValidationError(f"Unknown category: {category_code}", field_name="category")
        if self.catalog.get_country(language_code) is None:
            raise ValidationError(f"Unknown language: {language_code}", field_name="language")
        return category_code, language_code

    def _register(self, image: FallbackImage, path: Path) -> FallbackImage:
        """Create the record for a written file, removing the file if that fails."""
        try:
            image.id = self.repository.create(image)
        except StorageError:
            path.unlink(missing_ok=True)
            raise
        return image

    def _remove_file(self, filename: str) -> None:
        path = self.file_path(filename)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Failed to remove fallback image file {path}: {e}")

    def _replace_group(self, keep: FallbackImage) -> None:
        """Delete older group images of the same category+language, keeping source-linked ones."""
        for image in self.repository.list_group_images(keep.category_code, keep.language_code):
            if image.id != keep.id:
                self.delete_image(image.id)

    def save_upload(
        self,
        content: bytes,
        original_name: str,
        content_type: str,
        category_code: str,
        language_code: str,
        replace_existing: bool = True,
    ) -> FallbackImage:
        """Validate and store an uploaded fallback image.

        Args:
            content: Raw image bytes
            original_name: Client-side file name
            content_type: Declared MIME type
            category_code: Category the image serves
            language_code: Language the image serves
            replace_existing: Delete older images of the same group afterwards

        Returns:
            The stored FallbackImage record

        Raises:
            ValidationError: Bad type, size, category or language
            StorageError: If the record cannot be created
        """
        category_code, language_code = self._validate_group(category_code, language_code)
        extension = ImageUploadValidator.validate_upload(
            original_name, content_type, len(content), self.settings.images.max_upload_bytes
        )

        filename = self.build_filename(category_code, language_code, extension)
        path = self.file_path(filename)
        try:
            self.fallback_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            raise ImageError(
                f"Cannot write fallback image {path}: {e}",
                error_code=ErrorCode.IMAGE_WRITE_FAILED,
            )

        image = self._register(
            FallbackImage(
                category_code=category_code,
                language_code=language_code,
                filename=filename,
                original_name=original_name or "",
                mime_type=(content_type or "").split(";")[0].strip().lower(),
                file_size=len(content),
            ),
            path,
        )
        self.logger.info(
            f"Stored fallback image {filename}",
            extra={"category": category_code, "language": language_code},
        )

        if replace_existing:
            self._replace_group(image)
        return image

    def import_from_url(
        self, url: str, category_code: str, language_code: str, replace_existing: bool = True
    ) -> FallbackImage:
        """Download, qualify, resize and store a remote image as a fallback.

        Raises:
            ValidationError: Unknown category or language
            ImageError: Download, type, decode, aspect or write failure
        """
        category_code, language_code = self._validate_group(category_code, language_code)

        base = self.build_filename(category_code, language_code, "")
        written = Path(self.image_qualifier.download_and_validate(url, str(self.file_path(base))))

        image = self._register(
            FallbackImage(
                category_code=category_code,
                language_code=language_code,
                filename=written.name,
                original_name=url,
                mime_type="image/webp",
                file_size=written.stat().st_size,
            ),
            written,
        )
        self.logger.info(
            f"Imported fallback image {written.name} from {url}",
            extra={"category": category_code, "language": language_code},
        )

        if replace_existing:
            self._replace_group(image)
        return image

    def get_for_group(self, category_code: str, language_code: str) -> Optional[FallbackImage]:
        return self.repository.get_by_group(category_code, language_code)

    def list_images(self) -> List[FallbackImage]:
        return self.repository.list_images()

    def delete_image(self, image_id: int) -> bool:
        """Delete a fallback image record and its file.

        Returns:
            False if no such image exists
        """
        image = self.repository.get_by_id(image_id)
        if image is None:
            return False

        self.repository.delete(image_id)
        self._remove_file(image.filename)
        self.logger.info(
            f"Deleted fallback image {image.filename}",
            extra={"category": image.category_code, "language": image.language_code},
        )
        return True

    def delete_for_group(self, category_code: str, language_code: str) -> int:
        """Delete the group images of a category+language; source-linked images stay."""
        deleted = 0
        for image in self.repository.list_group_images(category_code, language_code):
            deleted += int(self.delete_image(image.id))
        return deleted

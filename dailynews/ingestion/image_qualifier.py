"""
Image Qualifier
===============

Decides whether an image URL is good enough to publish with a news item:
accepted MIME type, decodable, at least the minimum resolution, and an
aspect ratio within tolerance of the target.

Soft rejections (size, aspect) return False. Hard failures (network,
decode, type) raise ``ImageError`` subclasses. Local fallback images are
only checked for existence on disk.
"""

import asyncio
import mimetypes
import ssl
from contextlib import asynccontextmanager
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple
from urllib.parse import urlparse

import aiohttp
import certifi
import requests
from PIL import Image, UnidentifiedImageError

from ..config.settings import DailyNewsSettings, get_settings
from ..utils.exceptions import (
    ErrorCode,
    ImageDecodeError,
    ImageError,
    ImageFetchError,
    ImageRejectedError,
    UnsupportedImageTypeError,
)
from ..utils.logging import get_logger_for_component

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}

mimetypes.add_type("image/webp", ".webp")


def media_type(content_type: Optional[str]) -> str:
    """Lowercased media type without parameters."""
    return (content_type or "").split(";")[0].strip().lower()


class ImageQualifier:
    """Downloads and qualifies candidate images."""

    def __init__(self, settings: Optional[DailyNewsSettings] = None, timeout: Optional[int] = None):
        """Initialize image qualifier.

        Args:
            settings: Application settings (default: global settings)
            timeout: Request timeout in seconds (default from config)
        """
        self.settings = settings or get_settings()
        self.images = self.settings.images
        self.timeout = timeout or self.settings.limits.request_timeout
        self.logger = get_logger_for_component("image_qualifier")
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._session: Optional[aiohttp.ClientSession] = None
        self._http: Optional[requests.Session] = None

    # Session management

    def _create_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(ssl=self.ssl_context, limit_per_host=4),
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": self.images.user_agent},
        )

    async def open(self) -> None:
        if self._session is None or self._session.closed:
            self._session = self._create_session()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "ImageQualifier":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @asynccontextmanager
    async def _session_scope(self):
        if self._session is not None and not self._session.closed:
            yield self._session
        else:
            async with self._create_session() as session:
                yield session

    @property
    def http(self) -> requests.Session:
        if self._http is None:
            self._http = requests.Session()
            self._http.headers.update({"User-Agent": self.images.user_agent})
        return self._http

    # Local fallback images

    def is_local_fallback(self, url: str) -> bool:
        return bool(url) and self.images.fallback_url_prefix in url

    def local_fallback_path(self, url: str) -> Path:
        filename = PurePosixPath(urlparse(url).path).name
        return Path(self.images.fallback_dir) / filename

    # Checks

    def check_content_type(self, content_type: Optional[str], url: str = "") -> str:
        """Map a Content-Type to a supported file extension.

        Raises:
            UnsupportedImageTypeError: If the type maps to no supported extension
        """
        mime = media_type(content_type)
        for extension in mimetypes.guess_all_extensions(mime) if mime else []:
            if extension.lower() in SUPPORTED_EXTENSIONS:
                return extension.lower()

        raise UnsupportedImageTypeError(
            f"Unsupported image type: {content_type or 'missing'}",
            image_url=url,
            content_type=content_type,
        )

    def decode(self, content: bytes, url: str = "") -> Image.Image:
        """Decode image bytes.

        Raises:
            ImageDecodeError: If the bytes are not a readable image
        """
        try:
            image = Image.open(BytesIO(content))
            image.load()
            return image
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageDecodeError(f"Cannot decode image: {e}", image_url=url)

    def aspect_ok(self, width: int, height: int) -> bool:
        if height <= 0:
            return False
        low, high = self.images.aspect_bounds
        return low <= width / height <= high

    def assess(self, content: bytes, content_type: Optional[str], url: str = "") -> bool:
        """Qualify downloaded image bytes.

        Returns:
            True if the image passes size and aspect checks

        Raises:
            UnsupportedImageTypeError: Type outside jpeg/png/webp/gif
            ImageDecodeError: Undecodable content
        """
        self.check_content_type(content_type, url)
        image = self.decode(content, url)
        width, height = image.size

        if width < self.images.min_width or height < self.images.min_height:
            self.logger.debug(
                f"Image too small ({width}x{height}): {url}",
                extra={"reason": "image_too_small"},
            )
            return False

        if not self.aspect_ok(width, height):
            self.logger.debug(
                f"Image aspect {width / height:.2f} outside tolerance: {url}",
                extra={"reason": "image_aspect"},
            )
            return False

        return True

    # Hot path

    async def _download(self, url: str) -> Tuple[bytes, str]:
        try:
            async with self._session_scope() as session:
                async with session.get(url) as response:
                    if not 200 <= response.status < 300:
                        raise ImageFetchError(
                            f"HTTP {response.status}: {response.reason}", image_url=url
                        )
                    content_type = response.headers.get("Content-Type", "")
                    return await response.read(), content_type

        except asyncio.TimeoutError:
            raise ImageFetchError(f"Request timeout after {self.timeout}s", image_url=url)
        except aiohttp.ClientError as e:
            raise ImageFetchError(f"Network error: {e}", image_url=url)

    async def validate(self, url: str) -> bool:
        """Qualify an image URL.

        Returns:
            True if the image qualifies, False on a size or aspect rejection

        Raises:
            ImageFetchError, ImageDecodeError, UnsupportedImageTypeError
        """
        if self.is_local_fallback(url):
            exists = self.local_fallback_path(url).is_file()
            if not exists:
                self.logger.debug(f"Fallback image file missing: {url}")
            return exists

        content, content_type = await self._download(url)
        return self.assess(content, content_type, url)

    # Administrative path

    def download_and_validate(self, url: str, save_path: str) -> str:
        """Download an image, check it, resize it to the target size and store it.

        Args:
            url: Image URL
            save_path: Destination path; the extension is normalized to ``.webp``

        Returns:
            Path of the written file

        Raises:
            ImageFetchError, UnsupportedImageTypeError, ImageDecodeError,
            ImageRejectedError, ImageError (write failure)
        """
        try:
            response = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise ImageFetchError(f"Network error: {e}", image_url=url)

        if not 200 <= response.status_code < 300:
            raise ImageFetchError(f"HTTP {response.status_code}", image_url=url)

        self.check_content_type(response.headers.get("Content-Type"), url)
        image = self.decode(response.content, url)

        width, height = image.size
        if not self.aspect_ok(width, height):
            raise ImageRejectedError(
                f"Aspect ratio {width}x{height} outside tolerance", image_url=url
            )

        target = (self.images.target_width, self.images.target_height)
        if image.size != target:
            image = image.resize(target, Image.Resampling.NEAREST)

        if image.mode not in ("RGB", "RGBA"):
            has_alpha = "A" in image.mode or "transparency" in image.info
            image = image.convert("RGBA" if has_alpha else "RGB")

        final_path = Path(save_path).with_suffix(".webp")
        try:
            final_path.parent.mkdir(parents=True, exist_ok=True)
            image.save(final_path, format="WEBP", lossless=True)
        except OSError as e:
            raise ImageError(
                f"Cannot write image to {final_path}: {e}",
                image_url=url,
                error_code=ErrorCode.IMAGE_WRITE_FAILED,
                recoverable=False,
            )

        self.logger.info(f"Stored qualified image {final_path} ({width}x{height} -> {target[0]}x{target[1]})")
        return str(final_path)


async def validate_image(url: str, settings: Optional[DailyNewsSettings] = None) -> bool:
    """Qualify a single image URL outside of a pipeline run."""
    async with ImageQualifier(settings) as qualifier:
        return await qualifier.validate(url)

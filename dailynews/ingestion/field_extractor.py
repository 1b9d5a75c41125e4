"""
Field Extractor
===============

Resolves logical fields (title, image, link, date) from a feedparser entry
using syntactic field specs such as ``"enclosure|media:content"``.

Alternatives are tried left to right and the first non-empty value wins.
Unknown field names resolve to an empty string.
"""

import time
from typing import Any, Callable, Dict, Mapping, Optional

from bs4 import BeautifulSoup

ImageScannerFunc = Callable[[str], str]

CDATA_PREFIX = "<![CDATA["
CDATA_SUFFIX = "]]>"


def find_img_src(html: str) -> str:
    """Return the ``src`` of the first ``<img>`` tag using a linear scan.

    Looks for ``<img ``, then the closing ``>``, then ``src=`` inside the tag;
    the character after ``src=`` is taken as the quote. Malformed tags give
    an empty string.
    """
    if not html:
        return ""

    start = html.find("<img ")
    if start == -1:
        return ""

    end = html.find(">", start)
    if end == -1:
        return ""

    tag = html[start:end]
    src_at = tag.find("src=")
    if src_at == -1:
        return ""

    value_at = src_at + len("src=")
    if value_at >= len(tag):
        return ""

    quote = tag[value_at]
    rest = tag[value_at + 1:]
    close = rest.find(quote)
    if close == -1:
        return ""

    return rest[:close]


def find_img_src_soup(html: str) -> str:
    """Return the ``src`` of the first ``<img>`` tag using an HTML parser."""
    if not html or not html.strip():
        return ""

    soup = BeautifulSoup(html, "html.parser")
    img_tag = soup.find("img", src=True)
    if img_tag is None:
        return ""
    return img_tag.get("src", "").strip()


def clean_cdata(value: str) -> str:
    """Strip CDATA wrapper markers and surrounding whitespace."""
    value = (value or "").strip()
    if value.startswith(CDATA_PREFIX):
        value = value[len(CDATA_PREFIX):]
    if value.endswith(CDATA_SUFFIX):
        value = value[: -len(CDATA_SUFFIX)]
    return value.strip()


def format_struct_time(value: Optional[time.struct_time]) -> str:
    """Format a feedparser UTC ``struct_time`` as an RFC 3339 timestamp."""
    if not value:
        return ""
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", value)


class FieldExtractor:
    """Extracts syntactic fields from feedparser entries."""

    def __init__(self, image_scanner: Optional[ImageScannerFunc] = None):
        """Initialize field extractor.

        Args:
            image_scanner: Function locating an image URL in HTML descriptions
        """
        self.image_scanner = image_scanner or find_img_src
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], str]] = {
            "title": self._title,
            "media:content": self._media_content,
            "media:thumbnail": self._media_thumbnail,
            "enclosure": self._enclosure,
            "description_img": self._description_img,
            "link": self._link,
            "pubDate": self._pub_date,
        }

    def extract(self, entry: Mapping[str, Any], field_spec: Optional[str]) -> str:
        """Resolve ``field_spec`` against ``entry``.

        Args:
            entry: feedparser entry
            field_spec: Single field name or ``|``-separated alternatives

        Returns:
            First non-empty alternative, or an empty string
        """
        if not field_spec:
            return ""

        for alternative in field_spec.split("|"):
            handler = self._handlers.get(alternative.strip())
            if handler is None:
                continue
            value = handler(entry)
            if value:
                return value
        return ""

    @staticmethod
    def _title(entry: Mapping[str, Any]) -> str:
        return entry.get("title") or ""

    @staticmethod
    def _first_media_url(entry: Mapping[str, Any], key: str) -> str:
        media = entry.get(key) or []
        if not media:
            return ""
        return (media[0].get("url") or "").strip()

    def _media_content(self, entry: Mapping[str, Any]) -> str:
        return self._first_media_url(entry, "media_content")

    def _media_thumbnail(self, entry: Mapping[str, Any]) -> str:
        return self._first_media_url(entry, "media_thumbnail")

    @staticmethod
    def _enclosure(entry: Mapping[str, Any]) -> str:
        for enclosure in entry.get("enclosures") or []:
            if (enclosure.get("type") or "").lower().startswith("image/"):
                return (enclosure.get("href") or enclosure.get("url") or "").strip()
        return ""

    def _description_img(self, entry: Mapping[str, Any]) -> str:
        html = entry.get("description") or entry.get("summary") or ""
        return self.image_scanner(html)

    @staticmethod
    def _link(entry: Mapping[str, Any]) -> str:
        return (entry.get("link") or "").strip()

    @staticmethod
    def _pub_date(entry: Mapping[str, Any]) -> str:
        return format_struct_time(
            entry.get("published_parsed") or entry.get("updated_parsed")
        )

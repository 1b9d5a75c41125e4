"""
Title text normalization and blacklist matching.
"""

import html
import re
from typing import Iterable, Optional

TAG_PATTERN = re.compile(r"<[^>]*>")


def clean_text(text: str) -> str:
    """Strip HTML tags, decode HTML entities and collapse whitespace.

    Entities are decoded in a single pass, so ``&amp;lt;`` becomes ``&lt;``.
    Non-breaking spaces count as whitespace.
    """
    if not text:
        return ""
    text = TAG_PATTERN.sub("", text)
    text = html.unescape(text)
    return " ".join(text.split())


def find_blacklisted_term(title: str, terms: Iterable[str]) -> Optional[str]:
    """Return the first banned term contained in ``title`` (case-insensitive)."""
    lowered = (title or "").lower()
    for term in terms:
        if term and term.lower() in lowered:
            return term
    return None

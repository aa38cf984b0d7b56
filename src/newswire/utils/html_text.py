"""
HTML to plain text for feed fields.

Feed summaries often carry markup, inline images and tracking pixels. Only
the readable text is kept.
"""

import logging
import re
import warnings
from typing import Optional, Set

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

logger = logging.getLogger(__name__)

# Elements whose content is never article text
REMOVE_TAGS: Set[str] = {
    "script", "style", "noscript", "iframe",
    "svg", "img", "video", "audio", "object", "embed",
    "form", "button",
}

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(value: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Strip tags and decode entities, collapsing whitespace.

    Args:
        value: Raw (possibly HTML) text
        max_length: Truncate to this many characters, adding "..."
    """
    if not value:
        return ""

    if "<" not in value and "&" not in value:
        text = value
    else:
        with warnings.catch_warnings():
            # A bare URL or file name as summary is plain text, not a locator
            warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
            soup = BeautifulSoup(value, "html.parser")
        for tag in soup.find_all(sorted(REMOVE_TAGS)):
            tag.decompose()
        text = soup.get_text(separator=" ")

    text = _WHITESPACE_RE.sub(" ", text).strip()
    if max_length and len(text) > max_length:
        text = text[:max_length].rstrip() + "..."
    return text

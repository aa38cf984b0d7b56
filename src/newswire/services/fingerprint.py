# src/newswire/services/fingerprint.py
"""
Fingerprinting & Deduplication
Canonical identity for articles and stable first-seen-wins dedup
"""

import hashlib
import logging
import re
from typing import Iterable, List, Optional, Set, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from newswire.schemas.article import Article

logger = logging.getLogger(__name__)


TRACKING_PARAMS = frozenset({
    "fbclid", "gclid", "dclid", "yclid", "msclkid", "igshid",
    "mc_cid", "mc_eid", "_ga", "_gl", "ref", "ref_src", "ocid", "cmpid",
    "smid", "spm",
})
TRACKING_PREFIXES = ("utm_",)

# Hosts whose links are redirects, not the article itself
PROXY_HOSTS = frozenset({
    "news.google.com",
    "feedproxy.google.com",
    "rss.app",
})

DEFAULT_PORTS = {"http": 80, "https": 443}

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]


def _is_tracking_param(name: str) -> bool:
    name = name.lower()
    return name in TRACKING_PARAMS or name.startswith(TRACKING_PREFIXES)


def normalize_url(url: Optional[str]) -> Optional[str]:
    """
    Canonical form of an article URL.

    Lowercases scheme and host, drops default ports, fragments and tracking
    parameters, sorts the remaining parameters and strips the trailing slash.
    Returns None for values that are not absolute http(s) URLs.
    """
    if not url:
        return None

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if scheme not in ("http", "https") or not host:
        return None

    netloc = host
    if port and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"

    query = sorted(
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(k)
    )

    path = parts.path.rstrip("/")

    return urlunsplit((scheme, netloc, path, urlencode(query), ""))


def normalize_title(title: Optional[str]) -> str:
    """Lowercase, strip punctuation and collapse whitespace"""
    if not title:
        return ""
    text = _PUNCT_RE.sub(" ", title.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_proxy_url(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return False
    return host in PROXY_HOSTS


def domain_of(url: Optional[str]) -> str:
    """Lowercase host without www., empty when unknown"""
    if not url:
        return ""
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def fingerprint_url(url: Optional[str]) -> Optional[str]:
    """URL identity (`u:` prefix), or None when the URL cannot serve as one"""
    if is_proxy_url(url):
        return None
    canonical = normalize_url(url)
    return f"u:{_digest(canonical)}" if canonical else None


def fingerprint(title: Optional[str], url: Optional[str], source_domain: str = "") -> str:
    """
    Identity string for an article.

    Primary identity is the normalized URL (`u:` prefix). When the URL is
    missing, unparseable or provider-proxied, falls back to the normalized
    title plus the source domain (`t:` prefix).
    """
    url_identity = fingerprint_url(url)
    if url_identity:
        return url_identity

    title_key = normalize_title(title)
    return f"t:{_digest(f'{title_key}|{source_domain.lower()}')}"


class Deduplicator:
    """
    Removes articles whose fingerprint was already seen.

    Single linear pass; the output keeps input order minus the removed
    duplicates, so dedupe(dedupe(x)) == dedupe(x).
    """

    def dedupe(self, articles: Iterable[Article]) -> Tuple[List[Article], int]:
        """
        Returns:
            Tuple of (unique articles, number removed)
        """
        seen: Set[str] = set()
        unique: List[Article] = []
        removed = 0

        for article in articles:
            if article.fingerprint in seen:
                removed += 1
                continue
            seen.add(article.fingerprint)
            unique.append(article)

        if removed:
            logger.info(f"[Dedup] Input: {len(unique) + removed}, Output: {len(unique)}, Removed: {removed}")

        return unique, removed


def dedupe(articles: Iterable[Article]) -> List[Article]:
    """Convenience wrapper returning only the unique articles"""
    unique, _ = Deduplicator().dedupe(articles)
    return unique

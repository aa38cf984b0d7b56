# src/newswire/schemas/provider_responses.py
"""
Provider Response Models

Each provider's payload is parsed into its own typed response. The response
keeps items as raw dicts so that each item can be validated on its own: one
malformed item is skipped and counted, never fatal for the batch.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# SerpAPI (Google News engine)
# =============================================================================

class SerpApiSource(BaseModel):
    name: Optional[str] = None
    icon: Optional[str] = None
    authors: List[str] = Field(default_factory=list)


class SerpApiNewsItem(BaseModel):
    """
    One entry of `news_results`.

    Example:
    {
        "position": 1,
        "title": "Markets rally on rate cut hopes",
        "source": {"name": "Reuters", "icon": "https://..."},
        "link": "https://www.reuters.com/markets/...",
        "thumbnail": "https://...",
        "date": "08/14/2024, 07:00 AM, +0000 UTC",
        "snippet": "Stocks rose..."
    }
    Older payloads carry `source` as a plain string and `date` as "2 hours ago".
    """
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    position: Optional[int] = None
    title: str = Field(..., min_length=1)
    link: Optional[str] = None
    snippet: Optional[str] = None
    source: Optional[Union[SerpApiSource, str]] = None
    thumbnail: Optional[str] = None
    date: Optional[str] = None
    iso_date: Optional[str] = None

    @property
    def source_name(self) -> str:
        if isinstance(self.source, SerpApiSource):
            return self.source.name or "Unknown"
        return self.source or "Unknown"


class SerpApiResponse(BaseModel):
    news_results: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None

    @field_validator("news_results", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []


# =============================================================================
# MediaStack (/v1/news)
# =============================================================================

class MediaStackArticle(BaseModel):
    """
    One entry of `data`.

    Example:
    {
        "author": "TMZ Staff",
        "title": "Rafael Nadal Pulls Out Of U.S. Open",
        "description": "Rafael Nadal is officially OUT of the U.S. Open ...",
        "url": "https://www.tmz.com/2020/08/04/rafael-nadal-us-open/",
        "source": "TMZ.com",
        "image": "https://imagez.tmz.com/image/fa/4by3/2020/08/04/fad55ee236fc4033ba324e941bb8c8b7_md.jpg",
        "category": "general",
        "language": "en",
        "country": "us",
        "published_at": "2020-08-05T05:47:24+00:00"
    }
    """
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    description: Optional[str] = None
    author: Optional[str] = None
    source: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    language: Optional[str] = None
    country: Optional[str] = None
    published_at: Optional[str] = None


class MediaStackPagination(BaseModel):
    limit: int = 0
    offset: int = 0
    count: int = 0
    total: int = 0


class MediaStackError(BaseModel):
    code: Optional[str] = None
    message: Optional[str] = None
    info: Optional[str] = None


class MediaStackResponse(BaseModel):
    data: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: Optional[MediaStackPagination] = None
    error: Optional[MediaStackError] = None

    @field_validator("data", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []


# =============================================================================
# RSS / Atom feeds (parsed by feedparser)
# =============================================================================

class RssFeed(BaseModel):
    """A configured feed with its static credibility."""
    name: str
    url: str
    category: str = "general"
    credibility: float = Field(default=0.75, ge=0.0, le=1.0)


class RssEntry(BaseModel):
    """Fields we read from a feedparser entry."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    link: Optional[str] = None
    id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    content: List[Dict[str, Any]] = Field(default_factory=list)
    published: Optional[str] = None
    updated: Optional[str] = None
    author: Optional[str] = None
    media_thumbnail: List[Dict[str, Any]] = Field(default_factory=list)
    media_content: List[Dict[str, Any]] = Field(default_factory=list)
    enclosures: List[Dict[str, Any]] = Field(default_factory=list)
    tags: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def image_url(self) -> Optional[str]:
        for enclosure in self.enclosures:
            if str(enclosure.get("type", "")).startswith("image") and enclosure.get("href"):
                return enclosure["href"]
        for media in self.media_thumbnail + self.media_content:
            if media.get("url"):
                return media["url"]
        return None

    @property
    def body(self) -> str:
        if self.content:
            return str(self.content[0].get("value", ""))
        return self.description or self.summary or ""


class RssFeedResponse(BaseModel):
    feed: RssFeed
    feed_title: Optional[str] = None
    language: Optional[str] = None
    entries: List[Dict[str, Any]] = Field(default_factory=list)

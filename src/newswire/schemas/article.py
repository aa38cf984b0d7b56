# src/newswire/schemas/article.py
"""
Canonical Article Schema
Normalized format that all providers convert to
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ArticleSource(BaseModel):
    """Where an article came from."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(default="Unknown", description="Publisher name (e.g., Reuters)")
    url: Optional[str] = Field(None, description="Publisher or feed URL")
    provider_id: str = Field(..., description="Provider that supplied the article: serpapi, mediastack, rss")
    credibility: float = Field(default=0.5, ge=0.0, le=1.0, description="Static credibility score 0-1")

    @property
    def domain(self) -> str:
        """Lowercase host of the source URL, without www."""
        if not self.url:
            return ""
        host = (urlparse(self.url).hostname or "").lower()
        return host[4:] if host.startswith("www.") else host


class Article(BaseModel):
    """
    Canonical news article.

    Immutable once built by a provider adapter. `fingerprint` is the identity
    key for deduplication and change detection; `provider_metadata` is opaque
    and never takes part in identity.
    """
    model_config = ConfigDict(frozen=True)

    # Identification
    fingerprint: str = Field(..., description="Canonical identity (u:<hash> or t:<hash>)")

    # Content
    title: str = Field(..., description="Headline")
    description: str = Field(default="", description="Summary/snippet")
    content: str = Field(default="", description="Article body or snippet")
    url: str = Field(default="", description="Original article URL")
    image_url: Optional[str] = Field(None, description="Thumbnail/image URL")

    # Metadata
    published_at: datetime = Field(..., description="Publication datetime (UTC)")
    source: ArticleSource

    # Pass-through fields, never interpreted by the engine
    category: Optional[str] = None
    language: Optional[str] = None
    country: Optional[str] = None
    author: Optional[str] = None

    provider_metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("published_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive datetimes are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def provider_id(self) -> str:
        return self.source.provider_id

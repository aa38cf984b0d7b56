# src/newswire/schemas/request.py
"""
Aggregation Request Schemas
Stateless design - callers provide the whole query on every call
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class SourcePriority(str, Enum):
    """Provider ordering policy for one aggregation round"""
    BALANCED = "balanced"
    QUALITY = "quality"
    SPEED = "speed"
    COST = "cost"


class SortBy(str, Enum):
    """Optional reordering of the merged list"""
    NONE = "none"
    PUBLISHED_AT = "published_at"
    QUALITY = "quality"


class AggregateQuery(BaseModel):
    """
    Canonical query every provider translates into its own request shape.

    Example:
    {
        "text": "artificial intelligence",
        "category": "technology",
        "country": "us",
        "language": "en",
        "limit": 20
    }
    """
    text: Optional[str] = Field(None, description="Free-text search")
    category: Optional[str] = Field(None, description="general, business, technology, science, health, ...")
    country: Optional[str] = Field("us", description="Two-letter country code")
    language: Optional[str] = Field("en", description="Two-letter language code")
    limit: int = Field(default=20, ge=1, le=100, description="Articles requested per provider")

    @field_validator("text", "category", "country", "language", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("category", "country", "language")
    @classmethod
    def lowercase(cls, v):
        return v.lower() if v else v

    def search_terms(self) -> str:
        """Free text, falling back to category, for search-style providers"""
        return self.text or self.category or "latest news"


class AggregateOptions(BaseModel):
    use_cache: bool = Field(default=True, description="Serve from / store to the cache layer")
    source_priority: SourcePriority = Field(default=SourcePriority.BALANCED)
    min_credibility: float = Field(default=0.0, ge=0.0, le=1.0)
    enabled_sources: Optional[List[str]] = Field(
        default=None,
        description="Restrict the round to these provider ids (None = all)"
    )
    deduplicate: bool = Field(default=True)
    sort_by: SortBy = Field(default=SortBy.NONE)
    max_articles: Optional[int] = Field(default=None, ge=1, description="Truncate the final list")

    def cache_fields(self) -> dict:
        """Options that change the result, and so belong in the cache key"""
        return self.model_dump(mode="json", exclude={"use_cache"})

# src/newswire/schemas/response.py
"""
Aggregation Result Schemas
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from newswire.schemas.article import Article
from newswire.schemas.request import SourcePriority


class ProviderStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"      # Excluded before the call (quota, open circuit)


class SkipReason(str, Enum):
    QUOTA_EXHAUSTED = "quota_exhausted"
    CIRCUIT_OPEN = "circuit_open"


class ProviderResult(BaseModel):
    """
    What one provider contributed to a round.
    `quota_remaining` is None for providers without a quota.
    """
    provider_id: str
    count: int = 0
    status: ProviderStatus = ProviderStatus.SUCCESS
    quota_remaining: Optional[int] = None
    skipped_items: int = Field(default=0, description="Malformed items dropped by the adapter")
    response_time_ms: int = 0
    error: Optional[str] = None
    reason: Optional[SkipReason] = None
    credibility: Optional[float] = None
    priority: Optional[int] = None


class AggregateError(BaseModel):
    source: str
    error: str
    timestamp: str


class AggregateMetadata(BaseModel):
    """
    Metadata about the aggregation process.
    Callers inspect `sources` to detect degraded rounds.
    """
    sources: Dict[str, ProviderResult] = Field(default_factory=dict)
    errors: List[AggregateError] = Field(default_factory=list)

    # Counts
    total_fetched: int = 0
    deduplicated: int = 0
    filtered: int = 0
    returned: int = 0

    # Round info
    from_cache: bool = False
    cache_key: Optional[str] = None
    source_priority: SourcePriority = SourcePriority.BALANCED
    selected_sources: int = 0
    aggregation_time_ms: int = 0

    @property
    def succeeded(self) -> List[str]:
        return [pid for pid, r in self.sources.items() if r.status == ProviderStatus.SUCCESS]

    @property
    def all_failed(self) -> bool:
        """True when no provider completed successfully this round"""
        return not self.succeeded

    @property
    def degraded(self) -> bool:
        """True when at least one selected provider did not succeed"""
        return any(r.status != ProviderStatus.SUCCESS for r in self.sources.values())


class AggregateResult(BaseModel):
    articles: List[Article] = Field(default_factory=list)
    metadata: AggregateMetadata = Field(default_factory=AggregateMetadata)

    @property
    def fingerprints(self) -> List[str]:
        return [a.fingerprint for a in self.articles]

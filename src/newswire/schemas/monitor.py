# src/newswire/schemas/monitor.py
"""
Monitor Schemas
===============

- MonitorOptions: what a monitor polls and how often
- MonitorStats / MonitorStatus: runtime counters exposed to callers
- NewArticlesEvent / MonitorErrorEvent: delivered to callbacks
- WebhookPayload: JSON body POSTed to webhook URLs
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from newswire.schemas.article import Article
from newswire.schemas.request import AggregateOptions, AggregateQuery, SourcePriority
from newswire.utils.time import utc_now


class MonitorState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class MonitorOptions(BaseModel):
    """
    Example:
    {
        "query": {"text": "climate change", "limit": 10},
        "interval_ms": 60000,
        "webhooks": ["https://hooks.example.com/news"]
    }
    """
    query: AggregateQuery = Field(default_factory=AggregateQuery)
    interval_ms: Optional[int] = Field(
        default=None,
        ge=1,
        description="Polling interval; None uses MONITOR_DEFAULT_INTERVAL_MS"
    )
    source_priority: SourcePriority = SourcePriority.BALANCED
    min_credibility: float = Field(default=0.0, ge=0.0, le=1.0)
    enabled_sources: Optional[List[str]] = None
    webhooks: List[str] = Field(default_factory=list)
    emit_initial: bool = Field(
        default=True,
        description="Report the initial check's articles as new; False baselines silently"
    )
    max_tracked: Optional[int] = Field(
        default=None,
        ge=1,
        description="Bound the seen set with LRU eviction. An evicted fingerprint can be reported again."
    )

    def aggregate_options(self) -> AggregateOptions:
        """Monitors always bypass the cache"""
        return AggregateOptions(
            use_cache=False,
            source_priority=self.source_priority,
            min_credibility=self.min_credibility,
            enabled_sources=self.enabled_sources,
        )


class MonitorStats(BaseModel):
    started_at: datetime = Field(default_factory=utc_now)
    checks_performed: int = 0
    articles_found: int = 0
    errors: int = 0
    last_check_at: Optional[datetime] = None
    last_error: Optional[str] = None
    stopped_at: Optional[datetime] = None
    uptime_ms: int = 0
    tracked_articles: int = 0


class MonitorStatus(BaseModel):
    id: str
    state: MonitorState
    options: MonitorOptions
    interval_ms: int
    stats: MonitorStats


class NewArticlesEvent(BaseModel):
    monitor_id: str
    articles: List[Article]
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def count(self) -> int:
        return len(self.articles)


class MonitorErrorEvent(BaseModel):
    monitor_id: str
    error: str
    error_type: str
    timestamp: datetime = Field(default_factory=utc_now)


class WebhookPayload(BaseModel):
    """
    Body POSTed to every webhook URL.

    {"type": "new_articles", "count": 3, "articles": [...], "timestamp": "..."}
    {"type": "error", "error": "...", "timestamp": "..."}
    """
    type: Literal["new_articles", "error"]
    monitor_id: Optional[str] = None
    count: Optional[int] = None
    articles: Optional[List[dict]] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

    @classmethod
    def new_articles(cls, event: NewArticlesEvent) -> "WebhookPayload":
        return cls(
            type="new_articles",
            monitor_id=event.monitor_id,
            count=event.count,
            articles=[a.model_dump(mode="json") for a in event.articles],
            timestamp=event.timestamp,
        )

    @classmethod
    def from_error(cls, event: MonitorErrorEvent) -> "WebhookPayload":
        return cls(
            type="error",
            monitor_id=event.monitor_id,
            error=event.error,
            timestamp=event.timestamp,
        )


class WebhookDeliveryStatus(BaseModel):
    url: str
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    elapsed_ms: int = 0

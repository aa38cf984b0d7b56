"""
Newswire
========

Multi-provider news aggregation and monitoring.

Pipeline: providers (SerpAPI, MediaStack, RSS) -> merge -> dedup ->
credibility filter -> cache -> caller. Monitors poll the same pipeline and
emit only articles they have not seen before.
"""

from newswire.engine import NewsEngine, build_engine
from newswire.exceptions import (
    NewswireError,
    ConfigurationError,
    MonitorNotFoundError,
)
from newswire.schemas import (
    Article,
    ArticleSource,
    AggregateQuery,
    AggregateOptions,
    AggregateResult,
    MonitorOptions,
    MonitorStats,
    MonitorStatus,
    NewArticlesEvent,
    MonitorErrorEvent,
    SourcePriority,
    SortBy,
)

__version__ = "1.0.0"

__all__ = [
    "NewsEngine",
    "build_engine",
    "NewswireError",
    "ConfigurationError",
    "MonitorNotFoundError",
    "Article",
    "ArticleSource",
    "AggregateQuery",
    "AggregateOptions",
    "AggregateResult",
    "MonitorOptions",
    "MonitorStats",
    "MonitorStatus",
    "NewArticlesEvent",
    "MonitorErrorEvent",
    "SourcePriority",
    "SortBy",
]

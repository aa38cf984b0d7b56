from newswire.schemas.article import Article, ArticleSource
from newswire.schemas.request import AggregateQuery, AggregateOptions, SourcePriority, SortBy
from newswire.schemas.response import (
    AggregateResult,
    AggregateMetadata,
    AggregateError,
    ProviderResult,
    ProviderStatus,
    SkipReason,
)
from newswire.schemas.monitor import (
    MonitorState,
    MonitorOptions,
    MonitorStats,
    MonitorStatus,
    NewArticlesEvent,
    MonitorErrorEvent,
    WebhookPayload,
    WebhookDeliveryStatus,
)

__all__ = [
    "Article",
    "ArticleSource",
    "AggregateQuery",
    "AggregateOptions",
    "SourcePriority",
    "SortBy",
    "AggregateResult",
    "AggregateMetadata",
    "AggregateError",
    "ProviderResult",
    "ProviderStatus",
    "SkipReason",
    "MonitorState",
    "MonitorOptions",
    "MonitorStats",
    "MonitorStatus",
    "NewArticlesEvent",
    "MonitorErrorEvent",
    "WebhookPayload",
    "WebhookDeliveryStatus",
]

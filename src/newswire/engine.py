# src/newswire/engine.py
"""
Engine composition.

build_engine() wires providers, quota tracker, cache, circuit breaker,
aggregator, webhook service and monitor registry from Settings. NewsEngine
is the one object an application holds:

    engine = build_engine()
    result = await engine.aggregate(AggregateQuery(text="climate"))
    handle = await engine.start_monitoring({"query": {"text": "climate"}}, on_new_articles=print)
    ...
    await engine.close()
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

import httpx

from newswire.config import Settings, get_settings
from newswire.exceptions import ConfigurationError
from newswire.providers.base_provider import BaseNewsProvider
from newswire.providers.mediastack_provider import MediaStackNewsProvider
from newswire.providers.rss_provider import RssNewsProvider
from newswire.providers.serpapi_provider import SerpApiNewsProvider
from newswire.schemas.monitor import MonitorOptions, MonitorStats, MonitorStatus
from newswire.schemas.request import AggregateOptions, AggregateQuery
from newswire.schemas.response import AggregateResult
from newswire.services.aggregator_service import NewsAggregatorService
from newswire.services.monitor_service import (
    ErrorCallback,
    MonitorHandle,
    MonitorRegistry,
    NewArticlesCallback,
)
from newswire.services.news_cache import NewsCache, create_news_cache
from newswire.services.provider_health import ProviderHealth
from newswire.services.quota_tracker import QuotaTracker
from newswire.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)


class NewsEngine:
    """Pull API (aggregate) and push API (monitors) over one set of providers"""

    def __init__(
        self,
        aggregator: NewsAggregatorService,
        registry: MonitorRegistry,
        webhook_service: WebhookService,
    ):
        self.aggregator = aggregator
        self.registry = registry
        self.webhook_service = webhook_service

    @property
    def providers(self) -> Dict[str, BaseNewsProvider]:
        return self.aggregator.providers

    async def aggregate(
        self,
        query: Optional[AggregateQuery] = None,
        options: Optional[AggregateOptions] = None,
    ) -> AggregateResult:
        return await self.aggregator.aggregate(query, options)

    async def start_monitoring(
        self,
        options: Union[MonitorOptions, Dict[str, Any], None] = None,
        on_new_articles: Optional[NewArticlesCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> MonitorHandle:
        return await self.registry.start_monitoring(options, on_new_articles, on_error)

    def stop_monitoring(self, monitor_id: str) -> MonitorStats:
        return self.registry.stop_monitoring(monitor_id)

    def stop_all_monitors(self) -> int:
        return self.registry.stop_all_monitors()

    def get_monitor_status(self) -> List[MonitorStatus]:
        return self.registry.get_monitor_status()

    def get_stats(self) -> Dict[str, Any]:
        stats = self.aggregator.get_stats()
        stats["active_monitors"] = self.registry.active_count
        return stats

    def get_source_info(self) -> List[Dict[str, Any]]:
        return self.aggregator.get_source_info()

    async def health_check(self) -> Dict[str, Dict[str, Any]]:
        """health_check() of every provider, concurrently"""
        providers = list(self.providers.values())
        results = await asyncio.gather(*(p.health_check() for p in providers))
        return {p.provider_id: r for p, r in zip(providers, results)}

    async def close(self) -> None:
        await self.registry.close()
        await self.webhook_service.close()
        await self.aggregator.close()

    async def __aenter__(self) -> "NewsEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


def build_providers(
    settings: Settings,
    quota_tracker: QuotaTracker,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[BaseNewsProvider]:
    """Providers enabled by settings. API providers without a key are left out."""
    providers: List[BaseNewsProvider] = []
    timeout = settings.PROVIDER_TIMEOUT_SECONDS

    if settings.SERPAPI_API_KEY:
        providers.append(SerpApiNewsProvider(
            SerpApiNewsProvider.default_config(
                api_key=settings.SERPAPI_API_KEY,
                base_url=settings.SERPAPI_BASE_URL,
                quota_limit=settings.SERPAPI_QUOTA_LIMIT,
                timeout=timeout,
            ),
            quota_tracker=quota_tracker,
            transport=transport,
        ))
    else:
        logger.info("[Engine] SerpAPI disabled: SERPAPI_API_KEY not set")

    if settings.MEDIASTACK_API_KEY:
        providers.append(MediaStackNewsProvider(
            MediaStackNewsProvider.default_config(
                api_key=settings.MEDIASTACK_API_KEY,
                base_url=settings.MEDIASTACK_BASE_URL,
                quota_limit=settings.MEDIASTACK_QUOTA_LIMIT,
                timeout=timeout,
            ),
            quota_tracker=quota_tracker,
            transport=transport,
        ))
    else:
        logger.info("[Engine] MediaStack disabled: MEDIASTACK_API_KEY not set")

    if settings.RSS_ENABLED:
        providers.append(RssNewsProvider(
            RssNewsProvider.default_config(timeout=timeout),
            quota_tracker=quota_tracker,
            transport=transport,
        ))

    return providers


def build_engine(
    settings: Optional[Settings] = None,
    cache: Optional[NewsCache] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> NewsEngine:
    """
    Compose a NewsEngine from settings.

    Raises:
        ConfigurationError: no provider is enabled
    """
    settings = settings or get_settings()
    quota_tracker = QuotaTracker()

    providers = build_providers(settings, quota_tracker, transport)
    if not providers:
        raise ConfigurationError(
            "No news providers enabled: set SERPAPI_API_KEY, MEDIASTACK_API_KEY or RSS_ENABLED=true"
        )

    aggregator = NewsAggregatorService(
        providers,
        quota_tracker=quota_tracker,
        cache=cache or create_news_cache(settings),
        health=ProviderHealth(
            failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
            reset_timeout=settings.CIRCUIT_RESET_TIMEOUT_SECONDS,
        ),
        round_timeout=settings.AGGREGATION_TIMEOUT_SECONDS,
        cache_ttl=settings.CACHE_TTL_NEWS,
    )
    webhook_service = WebhookService(timeout=settings.WEBHOOK_TIMEOUT_SECONDS, transport=transport)
    registry = MonitorRegistry(
        aggregator,
        webhook_service=webhook_service,
        default_interval_ms=settings.MONITOR_DEFAULT_INTERVAL_MS,
        min_interval_ms=settings.MONITOR_MIN_INTERVAL_MS,
    )

    logger.info(f"[Engine] Ready with providers: {[p.provider_id for p in providers]}")
    return NewsEngine(aggregator, registry, webhook_service)

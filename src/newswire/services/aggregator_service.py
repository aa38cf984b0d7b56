# src/newswire/services/aggregator_service.py
"""
News Aggregator Service
Fans one canonical query out to every eligible provider and merges the results
"""

import time
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from newswire.providers.base_provider import BaseNewsProvider
from newswire.schemas.article import Article
from newswire.schemas.request import AggregateOptions, AggregateQuery, SortBy, SourcePriority
from newswire.schemas.response import (
    AggregateError,
    AggregateMetadata,
    AggregateResult,
    ProviderResult,
    ProviderStatus,
    SkipReason,
)
from newswire.services.fingerprint import Deduplicator
from newswire.services.news_cache import (
    DEFAULT_TTL_SECONDS,
    NEWS_KEY_PREFIX,
    NewsCache,
    NullNewsCache,
    generate_news_key,
)
from newswire.services.provider_health import ProviderHealth
from newswire.services.quota_tracker import QuotaTracker
from newswire.utils.time import utc_now

logger = logging.getLogger(__name__)

DEFAULT_ROUND_TIMEOUT_SECONDS = 15.0


class NewsAggregatorService:
    """
    Main service for news aggregation.

    Pipeline:
    1. Serve from cache (when allowed and fresh)
    2. Select providers: enabled, capable, ordered by source_priority
    3. Exclude open circuits, reserve quota
    4. Fetch concurrently, bounded by the round timeout
    5. Concatenate in provider order
    6. Deduplicate
    7. Filter by credibility
    8. Sort / limit (optional)
    9. Store in cache

    aggregate() never raises; failures are reported per provider in
    metadata.sources and metadata.errors.
    """

    def __init__(
        self,
        providers: Sequence[BaseNewsProvider],
        quota_tracker: Optional[QuotaTracker] = None,
        cache: Optional[NewsCache] = None,
        health: Optional[ProviderHealth] = None,
        round_timeout: float = DEFAULT_ROUND_TIMEOUT_SECONDS,
        cache_ttl: int = DEFAULT_TTL_SECONDS,
    ):
        """
        Args:
            providers: Provider clients; ids must be unique
            quota_tracker: Shared quota counters (a private one is created if omitted)
            cache: Result cache (disabled if omitted)
            health: Circuit breaker (disabled if omitted)
            round_timeout: Seconds before pending providers are cancelled
            cache_ttl: Seconds a cached result stays fresh
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.quota_tracker = quota_tracker or QuotaTracker()
        self.cache = cache or NullNewsCache()
        self.health = health
        self.round_timeout = round_timeout
        self.cache_ttl = cache_ttl
        self.dedup_service = Deduplicator()

        self.providers: Dict[str, BaseNewsProvider] = {}
        for provider in providers:
            self.add_provider(provider)

        self._stats: Dict[str, Any] = {
            "total_requests": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "degraded_rounds": 0,
            "failed_rounds": 0,
            "articles_fetched": 0,
            "articles_returned": 0,
            "duplicates_removed": 0,
            "filtered_out": 0,
            "source_usage": {},
            "last_aggregation_at": None,
        }

    def add_provider(self, provider: BaseNewsProvider) -> None:
        """Register a provider and its quota; providers share this service's tracker"""
        if provider.provider_id in self.providers:
            raise ValueError(f"Duplicate provider id: {provider.provider_id}")
        if provider.quota_tracker is None:
            provider.quota_tracker = self.quota_tracker
        self.quota_tracker.register(
            provider.provider_id,
            provider.config.quota_limit,
            provider.config.quota_window,
        )
        self.providers[provider.provider_id] = provider
        self.logger.info(
            f"[Aggregator] Provider '{provider.provider_id}' registered "
            f"(priority={provider.priority}, quota={provider.config.quota_limit or 'unlimited'})"
        )

    # =========================================================================
    # Provider selection
    # =========================================================================

    def _order_key(self, provider: BaseNewsProvider, policy: SourcePriority):
        tie_break = (-provider.priority, provider.provider_id)
        if policy == SourcePriority.QUALITY:
            return (-provider.credibility,) + tie_break
        if policy == SourcePriority.SPEED:
            speed = self.health.avg_response_time_ms(provider.provider_id) if self.health else 0.0
            return (speed,) + tie_break
        if policy == SourcePriority.COST:
            return (provider.cost_per_request,) + tie_break
        return tie_break

    def select_providers(self, query: AggregateQuery, options: AggregateOptions) -> List[BaseNewsProvider]:
        """Enabled providers that support the query, in round order"""
        candidates = list(self.providers.values())
        if options.enabled_sources is not None:
            enabled = set(options.enabled_sources)
            unknown = enabled - set(self.providers)
            if unknown:
                self.logger.warning(f"[Aggregator] Ignoring unknown sources: {sorted(unknown)}")
            candidates = [p for p in candidates if p.provider_id in enabled]

        supported = [p for p in candidates if p.supports(query)]
        if len(supported) < len(candidates):
            dropped = [p.provider_id for p in candidates if p not in supported]
            self.logger.debug(f"[Aggregator] Providers without capability for query: {dropped}")

        return sorted(supported, key=lambda p: self._order_key(p, options.source_priority))

    def _admit(self, provider: BaseNewsProvider) -> Optional[ProviderResult]:
        """
        Circuit and quota gate for one provider.

        Returns:
            None when the provider may be called, else its skipped result
        """
        pid = provider.provider_id
        if self.health is not None and not self.health.allow_request(pid):
            self.logger.info(f"[Aggregator] Skipping {pid}: circuit open")
            return ProviderResult(
                provider_id=pid,
                status=ProviderStatus.SKIPPED,
                reason=SkipReason.CIRCUIT_OPEN,
                quota_remaining=self.quota_tracker.remaining(pid),
                credibility=provider.credibility,
                priority=provider.priority,
            )

        if not self.quota_tracker.reserve(pid):
            if self.health is not None:
                self.health.release(pid)
            self.logger.info(f"[Aggregator] Skipping {pid}: quota exhausted")
            return ProviderResult(
                provider_id=pid,
                status=ProviderStatus.SKIPPED,
                reason=SkipReason.QUOTA_EXHAUSTED,
                quota_remaining=0,
                credibility=provider.credibility,
                priority=provider.priority,
            )
        return None

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def _fetch_all(
        self,
        providers: List[BaseNewsProvider],
        query: AggregateQuery,
    ) -> List[Tuple[List[Article], ProviderResult]]:
        """
        Call every provider concurrently.

        Results come back in `providers` order regardless of completion order.
        Providers still running at the round timeout are cancelled and
        reported as errors.
        """
        if not providers:
            return []

        tasks = [asyncio.create_task(p.fetch(query)) for p in providers]
        done, pending = await asyncio.wait(tasks, timeout=self.round_timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: List[Tuple[List[Article], ProviderResult]] = []
        for provider, task in zip(providers, tasks):
            pid = provider.provider_id
            if task in done and not task.cancelled() and task.exception() is None:
                outcomes.append(task.result())
                continue

            if task in done:
                error = f"Unexpected error: {task.exception()}"
                self.logger.error(f"[Aggregator] {pid} raised: {task.exception()}")
            else:
                error = "timeout"
                self.logger.warning(f"[Aggregator] {pid} timed out after {self.round_timeout}s, cancelled")

            outcomes.append((
                [],
                ProviderResult(
                    provider_id=pid,
                    status=ProviderStatus.ERROR,
                    error=error,
                    response_time_ms=int(self.round_timeout * 1000),
                    quota_remaining=self.quota_tracker.remaining(pid),
                    credibility=provider.credibility,
                    priority=provider.priority,
                ),
            ))
        return outcomes

    # =========================================================================
    # Aggregate
    # =========================================================================

    def cache_key(self, query: AggregateQuery, options: AggregateOptions) -> str:
        return generate_news_key({
            "query": query.model_dump(mode="json"),
            "options": options.cache_fields(),
        })

    async def aggregate(
        self,
        query: Optional[AggregateQuery] = None,
        options: Optional[AggregateOptions] = None,
    ) -> AggregateResult:
        """
        Main aggregation method.

        Args:
            query: Canonical query (defaults to latest US English news)
            options: Round options (cache, ordering, filters)

        Returns:
            AggregateResult with merged articles and per-provider metadata
        """
        query = query or AggregateQuery()
        options = options or AggregateOptions()
        total_start = time.time()
        self._stats["total_requests"] += 1

        key = self.cache_key(query, options)

        # ========================================
        # PHASE 1: CACHE
        # ========================================

        if options.use_cache:
            cached = await self._read_cache(key)
            if cached is not None:
                self._stats["cache_hits"] += 1
                return cached
            self._stats["cache_misses"] += 1

        metadata = AggregateMetadata(source_priority=options.source_priority, cache_key=key)

        # ========================================
        # PHASE 2: SELECT + ADMIT PROVIDERS
        # ========================================

        selected = self.select_providers(query, options)
        metadata.selected_sources = len(selected)

        runnable: List[BaseNewsProvider] = []
        for provider in selected:
            skipped = self._admit(provider)
            if skipped is None:
                runnable.append(provider)
            else:
                metadata.sources[provider.provider_id] = skipped

        self.logger.info(
            f"[Aggregator] Starting round: '{query.search_terms()}' "
            f"policy={options.source_priority.value}, providers={[p.provider_id for p in runnable]}"
        )

        # ========================================
        # PHASE 3: FETCH + MERGE IN PROVIDER ORDER
        # ========================================

        all_items: List[Article] = []
        for articles, result in await self._fetch_all(runnable, query):
            pid = result.provider_id
            metadata.sources[pid] = result
            self._record_usage(pid, result)

            if result.status == ProviderStatus.SUCCESS:
                all_items.extend(articles)
            else:
                metadata.errors.append(AggregateError(
                    source=pid,
                    error=result.error or "unknown error",
                    timestamp=utc_now().isoformat(),
                ))

        metadata.total_fetched = len(all_items)

        # ========================================
        # PHASE 4: DEDUPLICATE
        # ========================================

        if options.deduplicate:
            unique_items, metadata.deduplicated = self.dedup_service.dedupe(all_items)
        else:
            unique_items = all_items

        # ========================================
        # PHASE 5: CREDIBILITY FILTER
        # ========================================

        if options.min_credibility > 0:
            credible = [a for a in unique_items if a.source.credibility >= options.min_credibility]
            metadata.filtered = len(unique_items) - len(credible)
        else:
            credible = unique_items

        # ========================================
        # PHASE 6: SORT AND LIMIT
        # ========================================

        final_items = self._sort(credible, options.sort_by)
        if options.max_articles is not None:
            final_items = final_items[:options.max_articles]
        metadata.returned = len(final_items)
        metadata.aggregation_time_ms = int((time.time() - total_start) * 1000)

        result = AggregateResult(articles=final_items, metadata=metadata)

        # ========================================
        # PHASE 7: CACHE STORE
        # ========================================

        if options.use_cache and not metadata.all_failed:
            await self.cache.set(key, result.model_dump_json(), ttl=self.cache_ttl)

        self._record_round(metadata)
        log = self.logger.warning if metadata.degraded else self.logger.info
        log(
            f"[Aggregator] Complete: fetched={metadata.total_fetched}, "
            f"deduplicated={metadata.deduplicated}, filtered={metadata.filtered}, "
            f"returned={metadata.returned} in {metadata.aggregation_time_ms}ms"
            + (f" (degraded: {len(metadata.errors)} errors)" if metadata.degraded else "")
        )
        return result

    async def _read_cache(self, key: str) -> Optional[AggregateResult]:
        raw = await self.cache.get(key)
        if raw is None:
            return None
        try:
            cached = AggregateResult.model_validate_json(raw)
        except ValidationError as e:
            self.logger.warning(f"[Aggregator] Discarding unreadable cache entry {key}: {e.error_count()} errors")
            return None
        cached.metadata.from_cache = True
        cached.metadata.cache_key = key
        self.logger.info(f"[Aggregator] Serving {len(cached.articles)} articles from cache")
        return cached

    @staticmethod
    def _sort(articles: List[Article], sort_by: SortBy) -> List[Article]:
        if sort_by == SortBy.PUBLISHED_AT:
            return sorted(articles, key=lambda a: a.published_at, reverse=True)
        if sort_by == SortBy.QUALITY:
            return sorted(articles, key=lambda a: a.source.credibility, reverse=True)
        return list(articles)

    # =========================================================================
    # Statistics
    # =========================================================================

    def _record_usage(self, provider_id: str, result: ProviderResult) -> None:
        usage = self._stats["source_usage"].setdefault(
            provider_id, {"requests": 0, "articles": 0, "errors": 0}
        )
        usage["requests"] += 1
        usage["articles"] += result.count

        if result.status == ProviderStatus.SUCCESS:
            if self.health is not None:
                self.health.record_success(provider_id, result.response_time_ms)
        else:
            usage["errors"] += 1
            if self.health is not None:
                self.health.record_failure(provider_id, result.error)

    def _record_round(self, metadata: AggregateMetadata) -> None:
        self._stats["articles_fetched"] += metadata.total_fetched
        self._stats["articles_returned"] += metadata.returned
        self._stats["duplicates_removed"] += metadata.deduplicated
        self._stats["filtered_out"] += metadata.filtered
        if metadata.all_failed:
            self._stats["failed_rounds"] += 1
        elif metadata.degraded:
            self._stats["degraded_rounds"] += 1
        self._stats["last_aggregation_at"] = utc_now().isoformat()

    def get_stats(self) -> Dict[str, Any]:
        """Running counters since startup, plus quota and circuit state"""
        stats = dict(self._stats)
        stats["source_usage"] = {pid: dict(u) for pid, u in self._stats["source_usage"].items()}
        lookups = stats["cache_hits"] + stats["cache_misses"]
        stats["cache_hit_rate"] = round(stats["cache_hits"] / lookups, 3) if lookups else 0.0
        stats["quotas"] = self.quota_tracker.snapshot()
        stats["health"] = self.health.get_stats() if self.health is not None else {}
        return stats

    def get_source_info(self) -> List[Dict[str, Any]]:
        """Static and live description of each registered provider"""
        info = []
        for provider in self.providers.values():
            pid = provider.provider_id
            entry = {
                "id": pid,
                "priority": provider.priority,
                "credibility": provider.credibility,
                "cost_per_request": provider.cost_per_request,
                "quota_limit": provider.config.quota_limit,
                "quota_remaining": self.quota_tracker.remaining(pid),
                "quota_window": provider.config.quota_window.value,
                "configured": provider.is_configured(),
                **provider.capabilities,
            }
            if self.health is not None:
                entry["circuit_state"] = self.health.get_state(pid).value
                entry["avg_response_time_ms"] = round(self.health.avg_response_time_ms(pid), 1)
            info.append(entry)
        return info

    async def invalidate_cache(self) -> int:
        """Drop every cached aggregation result"""
        removed = await self.cache.invalidate(f"{NEWS_KEY_PREFIX}*")
        self.logger.info(f"[Aggregator] Invalidated {removed} cached results")
        return removed

    async def close(self):
        """Cleanup resources"""
        for provider in self.providers.values():
            await provider.close()
        await self.cache.close()

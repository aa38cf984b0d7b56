# src/newswire/services/monitor_service.py
"""
Monitor Service
Polls the aggregator on an interval and reports only articles not seen before

Lifecycle: CREATED -> RUNNING -> STOPPED (terminal)

Each tick:
1. aggregate(query, use_cache=False)
2. Every provider failed or was excluded -> tick error
3. New = result fingerprints not in the seen set
4. Commit all result fingerprints to the seen set (one update)
5. Deliver: on_new_articles callback + webhooks (only when New is non-empty)

Seen-state is committed before delivery, so a failing consumer never gets
the same batch twice (at-most-once).
"""

import inspect
import logging
import secrets
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from newswire.core.logging.context import MonitorContext
from newswire.exceptions import AggregationEmptyError, MonitorNotFoundError, MonitorTickError
from newswire.scheduler.scheduler_config import MonitorJobConfig, create_scheduler
from newswire.schemas.article import Article
from newswire.schemas.monitor import (
    MonitorErrorEvent,
    MonitorOptions,
    MonitorState,
    MonitorStats,
    MonitorStatus,
    NewArticlesEvent,
    WebhookPayload,
)
from newswire.services.aggregator_service import NewsAggregatorService
from newswire.services.webhook_service import WebhookService
from newswire.utils.time import utc_now

logger = logging.getLogger(__name__)

NewArticlesCallback = Callable[[NewArticlesEvent], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[MonitorErrorEvent], Union[None, Awaitable[None]]]

DEFAULT_INTERVAL_MS = 5 * 60 * 1000
MIN_INTERVAL_MS = 1000
STOPPED_HISTORY_SIZE = 1000


async def _invoke(callback: Callable[[Any], Any], event: Any) -> None:
    """Call a sync or async callback"""
    result = callback(event)
    if inspect.isawaitable(result):
        await result


class Monitor:
    """
    One polling monitor.

    Owns its seen set and stats; nothing is shared with other monitors.
    Scheduling is done by MonitorRegistry.
    """

    def __init__(
        self,
        monitor_id: str,
        options: MonitorOptions,
        interval_ms: int,
        aggregator: NewsAggregatorService,
        webhook_service: Optional[WebhookService] = None,
        on_new_articles: Optional[NewArticlesCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.id = monitor_id
        self.options = options
        self.interval_ms = interval_ms
        self.aggregator = aggregator
        self.webhook_service = webhook_service
        self.on_new_articles = on_new_articles
        self.on_error = on_error

        self.state = MonitorState.CREATED
        self.stats = MonitorStats()
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self.logger = logging.getLogger(self.__class__.__name__)

    def start(self) -> None:
        self.state = MonitorState.RUNNING
        self.stats.started_at = utc_now()

    # =========================================================================
    # Tick
    # =========================================================================

    async def tick(self) -> Optional[NewArticlesEvent]:
        """
        Run one check.

        Returns:
            The delivered event, or None (no new articles, error, or stopped)
        """
        if self.state != MonitorState.RUNNING:
            return None

        async with MonitorContext(self.id):
            is_initial = self.stats.checks_performed == 0
            self.stats.checks_performed += 1
            self.stats.last_check_at = utc_now()

            try:
                result = await self.aggregator.aggregate(
                    self.options.query,
                    self.options.aggregate_options(),
                )
                if result.metadata.all_failed:
                    raise AggregationEmptyError({
                        pid: r.model_dump(mode="json") for pid, r in result.metadata.sources.items()
                    })
            except Exception as e:
                await self._handle_error(e, notify_webhooks=True)
                return None

            # Stopped while the round was in flight: drop the result
            if self.state != MonitorState.RUNNING:
                self.logger.info(f"[Monitor] {self.id}: stopped during check, result dropped")
                return None

            new_articles = self._commit(result.articles)
            self.stats.tracked_articles = len(self._seen)

            if is_initial and not self.options.emit_initial:
                self.logger.info(f"[Monitor] {self.id}: baseline of {len(self._seen)} articles recorded")
                return None

            if not new_articles:
                self.logger.debug(f"[Monitor] {self.id}: no new articles")
                return None

            self.stats.articles_found += len(new_articles)
            event = NewArticlesEvent(monitor_id=self.id, articles=new_articles)
            self.logger.info(f"[Monitor] {self.id}: {event.count} new articles")

            if self.options.webhooks and self.webhook_service is not None:
                self.webhook_service.dispatch_background(
                    self.options.webhooks, WebhookPayload.new_articles(event)
                )

            if self.on_new_articles is not None:
                try:
                    await _invoke(self.on_new_articles, event)
                except Exception as e:
                    # Seen-state stays committed; the batch is not redelivered
                    await self._handle_error(
                        MonitorTickError(self.id, f"on_new_articles callback failed: {e}", cause=e),
                        notify_webhooks=False,
                    )
            return event

    def _commit(self, articles: List[Article]) -> List[Article]:
        """Add every fingerprint to the seen set; return the ones that were new"""
        new_articles: List[Article] = []
        for article in articles:
            fp = article.fingerprint
            if fp in self._seen:
                self._seen.move_to_end(fp)
                continue
            self._seen[fp] = None
            new_articles.append(article)

        max_tracked = self.options.max_tracked
        if max_tracked is not None:
            while len(self._seen) > max_tracked:
                self._seen.popitem(last=False)
        return new_articles

    async def _handle_error(self, error: Exception, notify_webhooks: bool) -> None:
        tick_error = error if isinstance(error, MonitorTickError) else MonitorTickError(self.id, str(error), cause=error)
        cause = tick_error.cause or tick_error

        self.stats.errors += 1
        self.stats.last_error = tick_error.message
        self.logger.error(f"[Monitor] {self.id}: check failed: {tick_error.message}")

        if self.state != MonitorState.RUNNING:
            return

        event = MonitorErrorEvent(
            monitor_id=self.id,
            error=tick_error.message,
            error_type=type(cause).__name__,
        )

        if notify_webhooks and self.options.webhooks and self.webhook_service is not None:
            self.webhook_service.dispatch_background(self.options.webhooks, WebhookPayload.from_error(event))

        if self.on_error is not None:
            try:
                await _invoke(self.on_error, event)
            except Exception:
                self.logger.exception(f"[Monitor] {self.id}: on_error callback raised")

    # =========================================================================
    # Status
    # =========================================================================

    def stop(self) -> MonitorStats:
        if self.state != MonitorState.STOPPED:
            self.state = MonitorState.STOPPED
            self.stats.stopped_at = utc_now()
        return self.snapshot_stats()

    def snapshot_stats(self) -> MonitorStats:
        end = self.stats.stopped_at or utc_now()
        stats = self.stats.model_copy()
        stats.uptime_ms = max(0, int((end - self.stats.started_at).total_seconds() * 1000))
        stats.tracked_articles = len(self._seen)
        return stats

    def status(self) -> MonitorStatus:
        return MonitorStatus(
            id=self.id,
            state=self.state,
            options=self.options,
            interval_ms=self.interval_ms,
            stats=self.snapshot_stats(),
        )


@dataclass
class MonitorHandle:
    """Returned by start_monitoring"""
    monitor_id: str
    interval_ms: int
    registry: "MonitorRegistry"

    def stop(self) -> MonitorStats:
        return self.registry.stop_monitoring(self.monitor_id)

    def status(self) -> MonitorStatus:
        return self.registry.get_monitor(self.monitor_id)


class MonitorRegistry:
    """
    Owns every running monitor and the scheduler that drives them.

    Created by the application; close() stops all monitors, drains pending
    webhook deliveries and shuts the scheduler down.
    """

    def __init__(
        self,
        aggregator: NewsAggregatorService,
        webhook_service: Optional[WebhookService] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        default_interval_ms: int = DEFAULT_INTERVAL_MS,
        min_interval_ms: int = MIN_INTERVAL_MS,
    ):
        self.aggregator = aggregator
        self.webhook_service = webhook_service
        self.scheduler = scheduler
        self.default_interval_ms = default_interval_ms
        self.min_interval_ms = min_interval_ms

        self._monitors: Dict[str, Monitor] = {}
        self._stopped: "OrderedDict[str, MonitorStats]" = OrderedDict()
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def active_count(self) -> int:
        return len(self._monitors)

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        # Created lazily so it binds to the running event loop
        if self.scheduler is None:
            self.scheduler = create_scheduler()
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info("[Monitor] Scheduler started")
        return self.scheduler

    def _resolve_interval(self, options: MonitorOptions) -> int:
        interval = options.interval_ms or self.default_interval_ms
        if interval < self.min_interval_ms:
            self.logger.warning(
                f"[Monitor] interval_ms={interval} below minimum, using {self.min_interval_ms}"
            )
            interval = self.min_interval_ms
        return interval

    async def start_monitoring(
        self,
        options: Union[MonitorOptions, Dict[str, Any], None] = None,
        on_new_articles: Optional[NewArticlesCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> MonitorHandle:
        """
        Start a monitor: run the initial check now, then every interval.

        Args:
            options: MonitorOptions (or a dict of its fields)
            on_new_articles: Called with NewArticlesEvent; sync or async
            on_error: Called with MonitorErrorEvent; sync or async

        Returns:
            MonitorHandle
        """
        if options is None:
            options = MonitorOptions()
        elif isinstance(options, dict):
            options = MonitorOptions.model_validate(options)

        monitor_id = f"mon_{secrets.token_hex(8)}"
        interval_ms = self._resolve_interval(options)
        monitor = Monitor(
            monitor_id=monitor_id,
            options=options,
            interval_ms=interval_ms,
            aggregator=self.aggregator,
            webhook_service=self.webhook_service,
            on_new_articles=on_new_articles,
            on_error=on_error,
        )
        self._monitors[monitor_id] = monitor
        monitor.start()

        self.logger.info(
            f"[Monitor] Starting {monitor_id}: '{options.query.search_terms()}' every {interval_ms}ms"
        )
        await monitor.tick()

        # A callback may have stopped it during the initial check
        if monitor.state == MonitorState.RUNNING:
            self._ensure_scheduler().add_job(
                monitor.tick,
                MonitorJobConfig.trigger(interval_ms),
                id=MonitorJobConfig.job_id(monitor_id),
                name=f"monitor {monitor_id}",
            )

        return MonitorHandle(monitor_id=monitor_id, interval_ms=interval_ms, registry=self)

    def stop_monitoring(self, monitor_id: str) -> MonitorStats:
        """
        Stop a monitor and return its final stats.

        Stopping an already stopped monitor returns the same final stats.

        Raises:
            MonitorNotFoundError: the id was never issued by this registry
        """
        if monitor_id in self._stopped:
            return self._stopped[monitor_id].model_copy()

        monitor = self._monitors.pop(monitor_id, None)
        if monitor is None:
            raise MonitorNotFoundError(monitor_id)

        if self.scheduler is not None:
            try:
                self.scheduler.remove_job(MonitorJobConfig.job_id(monitor_id))
            except JobLookupError:
                pass

        stats = monitor.stop()
        self._stopped[monitor_id] = stats
        while len(self._stopped) > STOPPED_HISTORY_SIZE:
            self._stopped.popitem(last=False)

        self.logger.info(
            f"[Monitor] Stopped {monitor_id}: checks={stats.checks_performed}, "
            f"found={stats.articles_found}, errors={stats.errors}"
        )
        return stats.model_copy()

    def stop_all_monitors(self) -> int:
        """Stop every running monitor; returns how many were stopped"""
        monitor_ids = list(self._monitors)
        for monitor_id in monitor_ids:
            self.stop_monitoring(monitor_id)
        if monitor_ids:
            self.logger.info(f"[Monitor] Stopped all monitors ({len(monitor_ids)})")
        return len(monitor_ids)

    def get_monitor_status(self) -> List[MonitorStatus]:
        """Status of every running monitor"""
        return [monitor.status() for monitor in self._monitors.values()]

    def get_monitor(self, monitor_id: str) -> MonitorStatus:
        monitor = self._monitors.get(monitor_id)
        if monitor is None:
            raise MonitorNotFoundError(monitor_id)
        return monitor.status()

    async def check_now(self, monitor_id: str) -> Optional[NewArticlesEvent]:
        """Run a check outside the schedule"""
        monitor = self._monitors.get(monitor_id)
        if monitor is None:
            raise MonitorNotFoundError(monitor_id)
        return await monitor.tick()

    async def close(self) -> None:
        """Stop all monitors, drain webhooks, shut down the scheduler"""
        self.stop_all_monitors()
        if self.webhook_service is not None:
            await self.webhook_service.drain()
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("[Monitor] Scheduler shut down")

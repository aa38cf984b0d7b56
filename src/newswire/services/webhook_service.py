"""
Webhook Service
===============

POSTs monitor events to external webhook URLs.

Delivery rules:
- Every URL is posted in parallel with its own timeout (5s default)
- No retry: a failed delivery is logged and dropped (at-most-once)
- One failing URL never affects the others

Payloads:
    {"type": "new_articles", "monitor_id": "...", "count": 3, "articles": [...], "timestamp": "..."}
    {"type": "error", "monitor_id": "...", "error": "...", "timestamp": "..."}

Usage:
    service = WebhookService()
    statuses = await service.dispatch(["https://hooks.example.com/news"], payload)

    # From a monitor tick: returns immediately, delivery runs in background
    service.dispatch_background(urls, payload)
    ...
    await service.close()   # waits for in-flight deliveries
"""

import asyncio
import logging
import time
from typing import List, Optional, Set

import httpx

from newswire.exceptions import WebhookDeliveryError
from newswire.schemas.monitor import WebhookDeliveryStatus, WebhookPayload

logger = logging.getLogger(__name__)


class WebhookService:
    """
    Fire-and-forget JSON webhook delivery.
    """

    DEFAULT_TIMEOUT = 5.0
    DRAIN_TIMEOUT = 10.0  # Seconds close() waits for in-flight deliveries

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            timeout: Per-URL request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._background: Set[asyncio.Task] = set()
        self.logger = logger

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def _post(self, url: str, body: str) -> WebhookDeliveryStatus:
        """POST one payload; failures come back as a status, never raised"""
        start = time.time()
        client = await self._get_client()
        error: Optional[WebhookDeliveryError] = None
        status_code: Optional[int] = None

        try:
            response = await client.post(
                url,
                content=body,
                headers={"Content-Type": "application/json"},
            )
            status_code = response.status_code
            if not 200 <= status_code < 300:
                error = WebhookDeliveryError(url, f"HTTP {status_code}", status_code)
        except httpx.TimeoutException:
            error = WebhookDeliveryError(url, f"Timeout after {self.timeout}s")
        except httpx.RequestError as e:
            error = WebhookDeliveryError(url, f"Request error: {e.__class__.__name__}")

        elapsed_ms = int((time.time() - start) * 1000)
        if error is not None:
            self.logger.warning(f"[Webhook] Delivery failed | url={url} | {error.message}")
            return WebhookDeliveryStatus(
                url=url,
                success=False,
                status_code=status_code,
                error=error.message,
                elapsed_ms=elapsed_ms,
            )

        self.logger.info(f"[Webhook] Delivered | url={url} | status={status_code} | {elapsed_ms}ms")
        return WebhookDeliveryStatus(url=url, success=True, status_code=status_code, elapsed_ms=elapsed_ms)

    async def dispatch(self, urls: List[str], payload: WebhookPayload) -> List[WebhookDeliveryStatus]:
        """
        Send `payload` to every URL in parallel.

        Returns:
            One status per URL, in `urls` order
        """
        if not urls:
            return []

        body = payload.model_dump_json(exclude_none=True)
        self.logger.info(
            f"[Webhook] Dispatching '{payload.type}' to {len(urls)} url(s) | monitor={payload.monitor_id}"
        )
        return list(await asyncio.gather(*(self._post(url, body) for url in urls)))

    def dispatch_background(self, urls: List[str], payload: WebhookPayload) -> Optional[asyncio.Task]:
        """Schedule dispatch() without awaiting it; close() drains pending tasks"""
        if not urls:
            return None
        task = asyncio.create_task(self.dispatch(urls, payload))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"[Webhook] Background dispatch crashed: {task.exception()}")

    @property
    def pending(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait for in-flight background deliveries"""
        if not self._background:
            return
        done, pending = await asyncio.wait(set(self._background), timeout=self.DRAIN_TIMEOUT)
        for task in pending:
            task.cancel()
        if pending:
            self.logger.warning(f"[Webhook] Cancelled {len(pending)} deliveries still running at shutdown")

    async def close(self):
        """Drain pending deliveries and close the HTTP client."""
        await self.drain()
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import time

import httpx
from pydantic import BaseModel, Field

from newswire.exceptions import ProviderError
from newswire.schemas.article import Article
from newswire.schemas.request import AggregateQuery
from newswire.schemas.response import ProviderResult, ProviderStatus
from newswire.services.quota_tracker import QuotaTracker, QuotaWindow

logger = logging.getLogger(__name__)

# A provider listing this country accepts any country
GLOBAL_COUNTRY = "global"


class ProviderConfig(BaseModel):
    """
    Static description of one provider.

    Capability lists are empty when the provider accepts any value.
    """
    provider_id: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    quota_limit: Optional[int] = Field(None, ge=0, description="None = unlimited")
    quota_window: QuotaWindow = QuotaWindow.MONTHLY
    priority: int = Field(50, description="Higher runs first under the balanced policy")
    credibility: float = Field(0.75, ge=0.0, le=1.0)
    cost_per_request: float = Field(0.0, ge=0.0)
    timeout: float = Field(10.0, gt=0)
    categories: List[str] = Field(default_factory=list)
    countries: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=list)


@dataclass
class FetchOutcome:
    """What a provider's _fetch produced before bookkeeping"""
    articles: List[Article] = field(default_factory=list)
    skipped_items: int = 0
    requests_used: int = 1


class BaseNewsProvider(ABC):
    """
    Abstract base class for news providers.

    Each provider must:
    1. Translate the canonical query into its own request
    2. Parse the payload into its typed response model
    3. Adapt each item to Article, skipping malformed ones

    fetch() handles timing, quota reporting and error conversion, so a
    provider call never raises.
    """

    DEFAULT_HEADERS: Dict[str, str] = {"Accept": "application/json"}

    def __init__(
        self,
        config: ProviderConfig,
        quota_tracker: Optional[QuotaTracker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.quota_tracker = quota_tracker
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def provider_id(self) -> str:
        return self.config.provider_id

    @property
    def priority(self) -> int:
        return self.config.priority

    @property
    def credibility(self) -> float:
        return self.config.credibility

    @property
    def cost_per_request(self) -> float:
        return self.config.cost_per_request

    @property
    def capabilities(self) -> Dict[str, List[str]]:
        return {
            "categories": list(self.config.categories),
            "countries": list(self.config.countries),
            "languages": list(self.config.languages),
        }

    def supports(self, query: AggregateQuery) -> bool:
        """False when the query asks for a category/country/language this provider lacks"""
        countries = self.config.countries
        if GLOBAL_COUNTRY in countries:
            countries = []
        checks = (
            (query.category, self.config.categories),
            (query.country, countries),
            (query.language, self.config.languages),
        )
        return all(not value or not allowed or value in allowed for value, allowed in checks)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                headers=self.DEFAULT_HEADERS,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        """Close HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # =========================================================================
    # Fetch
    # =========================================================================

    async def fetch(self, query: AggregateQuery) -> tuple[List[Article], ProviderResult]:
        """
        Fetch articles for `query`.

        Returns:
            Tuple of (articles, ProviderResult). On failure the list is empty
            and the result has status=error.
        """
        start_time = time.time()
        self._log_fetch_start(query)

        result = ProviderResult(
            provider_id=self.provider_id,
            credibility=self.credibility,
            priority=self.priority,
        )
        articles: List[Article] = []
        requests_used = 1

        try:
            outcome = await self._fetch(query)
            articles = outcome.articles
            requests_used = outcome.requests_used
            result.count = len(articles)
            result.skipped_items = outcome.skipped_items
        except ProviderError as e:
            result.status = ProviderStatus.ERROR
            result.error = e.message
            self._log_fetch_error(e.message)
        except Exception as e:
            result.status = ProviderStatus.ERROR
            result.error = f"Unexpected error: {e}"
            self.logger.exception(f"[{self.provider_id}] Unexpected error during fetch")

        if self.quota_tracker is not None:
            self.quota_tracker.record(self.provider_id, requests_used)
            result.quota_remaining = self.quota_tracker.remaining(self.provider_id)

        result.response_time_ms = int((time.time() - start_time) * 1000)
        if result.status == ProviderStatus.SUCCESS:
            self._log_fetch_complete(result.count, result.skipped_items, result.response_time_ms)
        return articles, result

    @abstractmethod
    async def _fetch(self, query: AggregateQuery) -> FetchOutcome:
        """
        Provider-specific fetch.

        Raises:
            ProviderError: upstream failure (HTTP status, timeout, bad payload)
        """
        pass

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET `url` and decode JSON, mapping transport failures to ProviderError"""
        client = await self._get_client()
        try:
            response = await client.get(url, params=params)
        except httpx.TimeoutException:
            raise ProviderError(self.provider_id, "Request timeout")
        except httpx.RequestError as e:
            raise ProviderError(self.provider_id, f"Network error: {e.__class__.__name__}")

        self._raise_for_status(response)

        try:
            return response.json()
        except ValueError:
            raise ProviderError(self.provider_id, "Invalid JSON response", response.status_code)

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 401:
            message = "Invalid API key"
        elif status == 403:
            message = "Access forbidden (check plan or API key)"
        elif status == 429:
            message = "Rate limit exceeded"
        elif status >= 500:
            message = "Service temporarily unavailable"
        else:
            message = f"HTTP error {status}"
        raise ProviderError(self.provider_id, message, status)

    async def health_check(self) -> Dict[str, Any]:
        """
        Report whether the provider can be used. Never consumes quota.
        """
        configured = self.is_configured()
        return {
            "provider_id": self.provider_id,
            "healthy": configured,
            "configured": configured,
            "quota_remaining": (
                self.quota_tracker.remaining(self.provider_id) if self.quota_tracker else None
            ),
        }

    def is_configured(self) -> bool:
        return True

    # =========================================================================
    # Logging helpers
    # =========================================================================

    def _log_fetch_start(self, query: AggregateQuery):
        """Log fetch operation start"""
        self.logger.info(
            f"[{self.provider_id}] Fetching '{query.search_terms()}' - "
            f"country={query.country}, language={query.language}, limit={query.limit}"
        )

    def _log_fetch_complete(self, count: int, skipped: int, time_ms: int):
        """Log fetch operation completion"""
        suffix = f" ({skipped} malformed skipped)" if skipped else ""
        self.logger.info(f"[{self.provider_id}] Fetched {count} articles in {time_ms}ms{suffix}")

    def _log_fetch_error(self, error: str):
        """Log fetch error"""
        self.logger.error(f"[{self.provider_id}] Error fetching: {error}")

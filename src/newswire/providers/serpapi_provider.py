# src/newswire/providers/serpapi_provider.py
"""
SerpAPI News Provider
Google News results through SerpAPI's `google_news` engine

Free tier: 100 searches per month. One fetch = one search.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from newswire.exceptions import ProviderError
from newswire.providers.base_provider import BaseNewsProvider, FetchOutcome, ProviderConfig
from newswire.schemas.article import Article, ArticleSource
from newswire.schemas.provider_responses import SerpApiNewsItem, SerpApiResponse
from newswire.schemas.request import AggregateQuery
from newswire.services.fingerprint import domain_of, fingerprint
from newswire.utils.time import parse_datetime, utc_now


class SerpApiNewsProvider(BaseNewsProvider):
    """
    SerpAPI (Google News) provider implementation.

    Broad coverage, search-style: the query text (or category) is sent as `q`.
    """

    BASE_URL = "https://serpapi.com/search.json"
    ENGINE = "google_news"
    MAX_RESULTS = 100

    @staticmethod
    def default_config(**overrides) -> ProviderConfig:
        values = dict(
            provider_id="serpapi",
            base_url=SerpApiNewsProvider.BASE_URL,
            quota_limit=100,
            priority=90,
            credibility=0.85,
            cost_per_request=0.01,
            categories=["general", "business", "technology", "science", "health"],
            countries=["us", "uk", "ca", "au"],
            languages=["en"],
        )
        values.update(overrides)
        return ProviderConfig(**values)

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def build_params(self, query: AggregateQuery) -> Dict[str, Any]:
        params = {
            "engine": self.ENGINE,
            "q": query.search_terms(),
            "num": min(query.limit, self.MAX_RESULTS),
            "api_key": self.config.api_key,
        }
        if query.country:
            params["gl"] = query.country
        if query.language:
            params["hl"] = query.language
        return params

    async def _fetch(self, query: AggregateQuery) -> FetchOutcome:
        if not self.config.api_key:
            raise ProviderError(self.provider_id, "API key not configured")

        data = await self._get_json(self.config.base_url or self.BASE_URL, self.build_params(query))
        try:
            response = SerpApiResponse.model_validate(data)
        except ValidationError as e:
            raise ProviderError(self.provider_id, f"Unexpected response shape: {e.error_count()} errors")

        if response.error:
            # SerpAPI reports "no results" as an error string
            if "hasn't returned any results" in response.error:
                return FetchOutcome()
            raise ProviderError(self.provider_id, response.error)

        return self.adapt(response, query.limit)

    def adapt(self, response: SerpApiResponse, limit: int) -> FetchOutcome:
        """Convert news_results to Articles, skipping malformed items"""
        articles: List[Article] = []
        skipped = 0
        fetched_at = utc_now()

        for raw in response.news_results[:limit]:
            article = self._convert_item(raw, fetched_at)
            if article is None:
                skipped += 1
                continue
            articles.append(article)

        return FetchOutcome(articles=articles, skipped_items=skipped)

    def _convert_item(self, raw: Dict[str, Any], fetched_at) -> Optional[Article]:
        """Convert one Google News result to Article"""
        try:
            item = SerpApiNewsItem.model_validate(raw)
        except ValidationError as e:
            self.logger.warning(f"[{self.provider_id}] Skipping malformed item: {e.error_count()} errors")
            return None

        link = item.link or ""
        domain = domain_of(link)
        source = ArticleSource(
            name=item.source_name,
            url=f"https://{domain}" if domain else None,
            provider_id=self.provider_id,
            credibility=self.credibility,
        )

        return Article(
            fingerprint=fingerprint(item.title, link, source.domain),
            title=item.title,
            description=item.snippet or "",
            content=item.snippet or "",
            url=link,
            image_url=item.thumbnail,
            published_at=parse_datetime(item.iso_date or item.date, now=fetched_at) or fetched_at,
            source=source,
            provider_metadata={"position": item.position, "engine": self.ENGINE},
        )

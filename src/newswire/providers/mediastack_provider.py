# src/newswire/providers/mediastack_provider.py
"""
MediaStack News Provider
Live news from api.mediastack.com/v1/news

Free tier: 500 requests per month, HTTP only. Results are filtered by
`keywords`, `categories`, `countries` and `languages` and sorted newest first.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from newswire.exceptions import ProviderError
from newswire.providers.base_provider import BaseNewsProvider, FetchOutcome, ProviderConfig
from newswire.schemas.article import Article, ArticleSource
from newswire.schemas.provider_responses import MediaStackArticle, MediaStackResponse
from newswire.schemas.request import AggregateQuery
from newswire.services.fingerprint import domain_of, fingerprint
from newswire.utils.time import parse_datetime, utc_now


class MediaStackNewsProvider(BaseNewsProvider):
    """
    MediaStack provider implementation.

    Filter-style API: query text maps to `keywords`, category to `categories`.
    """

    BASE_URL = "http://api.mediastack.com/v1/news"
    MAX_RESULTS = 100

    # MediaStack uses ISO codes where callers commonly say "uk"
    COUNTRY_ALIASES = {"uk": "gb"}

    # Error codes MediaStack returns in a 200 body
    ERROR_MESSAGES = {
        "invalid_access_key": "Invalid API key",
        "missing_access_key": "Invalid API key",
        "usage_limit_reached": "Rate limit exceeded",
        "rate_limit_reached": "Rate limit exceeded",
        "https_access_restricted": "HTTPS not supported on this plan",
    }

    @staticmethod
    def default_config(**overrides) -> ProviderConfig:
        values = dict(
            provider_id="mediastack",
            base_url=MediaStackNewsProvider.BASE_URL,
            quota_limit=500,
            priority=80,
            credibility=0.8,
            cost_per_request=0.005,
            categories=[
                "general", "business", "technology", "science",
                "health", "entertainment", "sports",
            ],
            countries=["us", "gb", "uk", "ca", "au", "de", "fr"],
            languages=["en", "de", "fr"],
        )
        values.update(overrides)
        return ProviderConfig(**values)

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def build_params(self, query: AggregateQuery, offset: int = 0) -> Dict[str, Any]:
        params = {
            "access_key": self.config.api_key,
            "limit": min(query.limit, self.MAX_RESULTS),
            "offset": offset,
            "sort": "published_desc",
        }
        if query.text:
            params["keywords"] = query.text
        if query.category:
            params["categories"] = query.category
        if query.country:
            params["countries"] = self.COUNTRY_ALIASES.get(query.country, query.country)
        if query.language:
            params["languages"] = query.language
        return params

    async def _fetch(self, query: AggregateQuery) -> FetchOutcome:
        if not self.config.api_key:
            raise ProviderError(self.provider_id, "API key not configured")

        data = await self._get_json(self.config.base_url or self.BASE_URL, self.build_params(query))
        try:
            response = MediaStackResponse.model_validate(data)
        except ValidationError as e:
            raise ProviderError(self.provider_id, f"Unexpected response shape: {e.error_count()} errors")

        if response.error:
            code = response.error.code or ""
            message = self.ERROR_MESSAGES.get(code) or response.error.message or f"API error: {code}"
            raise ProviderError(self.provider_id, message)

        if response.pagination:
            self.logger.debug(
                f"[{self.provider_id}] Page offset={response.pagination.offset} "
                f"count={response.pagination.count} total={response.pagination.total}"
            )

        return self.adapt(response, query.limit)

    def adapt(self, response: MediaStackResponse, limit: int) -> FetchOutcome:
        """Convert `data` entries to Articles, skipping malformed items"""
        articles: List[Article] = []
        skipped = 0
        fetched_at = utc_now()

        for raw in response.data[:limit]:
            article = self._convert_item(raw, fetched_at)
            if article is None:
                skipped += 1
                continue
            articles.append(article)

        return FetchOutcome(articles=articles, skipped_items=skipped)

    def _convert_item(self, raw: Dict[str, Any], fetched_at) -> Optional[Article]:
        try:
            item = MediaStackArticle.model_validate(raw)
        except ValidationError as e:
            self.logger.warning(f"[{self.provider_id}] Skipping malformed item: {e.error_count()} errors")
            return None

        domain = domain_of(item.url)
        source = ArticleSource(
            name=item.source or domain or "Unknown",
            url=f"https://{domain}" if domain else None,
            provider_id=self.provider_id,
            credibility=self.credibility,
        )

        return Article(
            fingerprint=fingerprint(item.title, item.url, source.domain),
            title=item.title,
            description=item.description or "",
            content=item.description or "",
            url=item.url,
            image_url=item.image or None,
            published_at=parse_datetime(item.published_at) or fetched_at,
            source=source,
            category=item.category,
            language=item.language,
            country=item.country,
            author=item.author,
        )

# src/newswire/providers/rss_provider.py
"""
RSS News Provider
Curated RSS/Atom feeds, fetched concurrently and parsed with feedparser

No API key and no quota. Each feed carries its own credibility score, which
is what the credibility filter sees for its articles.
"""

import asyncio
from typing import Any, Dict, List, Optional

import feedparser
import httpx
from pydantic import ValidationError

from newswire.exceptions import ProviderError
from newswire.providers.base_provider import BaseNewsProvider, FetchOutcome, ProviderConfig
from newswire.schemas.article import Article, ArticleSource
from newswire.schemas.provider_responses import RssEntry, RssFeed, RssFeedResponse
from newswire.schemas.request import AggregateQuery
from newswire.services.fingerprint import fingerprint
from newswire.services.quota_tracker import QuotaTracker
from newswire.utils.html_text import clean_text
from newswire.utils.time import parse_datetime, utc_now


DEFAULT_FEEDS: List[RssFeed] = [
    RssFeed(name="BBC News", url="http://feeds.bbci.co.uk/news/rss.xml", category="general", credibility=0.95),
    RssFeed(
        name="Reuters Top News",
        url="https://www.reutersagency.com/feed/?taxonomy=best-topics&post_type=best",
        category="general",
        credibility=0.98,
    ),
    RssFeed(name="TechCrunch", url="https://techcrunch.com/feed/", category="technology", credibility=0.85),
    RssFeed(name="Ars Technica", url="http://feeds.arstechnica.com/arstechnica/index", category="technology", credibility=0.9),
    RssFeed(name="The Verge", url="https://www.theverge.com/rss/index.xml", category="technology", credibility=0.85),
    RssFeed(name="Hacker News", url="https://news.ycombinator.com/rss", category="technology", credibility=0.8),
    RssFeed(name="CNBC Top News", url="https://www.cnbc.com/id/100003114/device/rss/rss.html", category="business", credibility=0.9),
    RssFeed(name="Financial Times", url="https://www.ft.com/?format=rss", category="business", credibility=0.95),
    RssFeed(name="NPR News", url="https://feeds.npr.org/1001/rss.xml", category="general", credibility=0.92),
    RssFeed(name="The Guardian World News", url="https://www.theguardian.com/world/rss", category="general", credibility=0.9),
    RssFeed(name="Science Daily", url="https://www.sciencedaily.com/rss/all.xml", category="science", credibility=0.93),
    RssFeed(name="Wired", url="https://www.wired.com/feed/rss", category="technology", credibility=0.87),
]

DESCRIPTION_MAX_LENGTH = 500


class RssNewsProvider(BaseNewsProvider):
    """
    RSS provider implementation.

    One bad feed (timeout, HTTP error, unparseable XML) is logged and left
    out; the provider only fails when every selected feed failed.
    """

    DEFAULT_HEADERS = {
        "User-Agent": "Newswire/1.0 (News Aggregator)",
        "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
    }

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        quota_tracker: Optional[QuotaTracker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        feeds: Optional[List[RssFeed]] = None,
    ):
        super().__init__(config or self.default_config(), quota_tracker, transport)
        self.feeds: List[RssFeed] = list(DEFAULT_FEEDS if feeds is None else feeds)

    @staticmethod
    def default_config(**overrides) -> ProviderConfig:
        values = dict(
            provider_id="rss",
            quota_limit=None,
            priority=70,
            credibility=0.9,
            cost_per_request=0.0,
            countries=["us", "uk", "gb", "global"],
            languages=["en"],
        )
        values.update(overrides)
        return ProviderConfig(**values)

    # =========================================================================
    # Feed management
    # =========================================================================

    def add_feed(self, name: str, url: str, category: str = "general", credibility: float = 0.75) -> RssFeed:
        """Register a custom feed. A feed with the same URL is replaced."""
        feed = RssFeed(name=name, url=url, category=category.lower(), credibility=credibility)
        self.feeds = [f for f in self.feeds if f.url != url] + [feed]
        self.logger.info(f"[{self.provider_id}] Added feed '{name}' ({feed.category}, credibility={credibility})")
        return feed

    def remove_feed(self, url: str) -> bool:
        before = len(self.feeds)
        self.feeds = [f for f in self.feeds if f.url != url]
        return len(self.feeds) < before

    @property
    def capabilities(self) -> Dict[str, List[str]]:
        caps = super().capabilities
        caps["categories"] = sorted({f.category for f in self.feeds})
        return caps

    def supports(self, query: AggregateQuery) -> bool:
        if query.category and not self._feeds_for(query.category):
            return False
        return super().supports(query)

    def _feeds_for(self, category: Optional[str]) -> List[RssFeed]:
        if not category:
            return list(self.feeds)
        return [f for f in self.feeds if f.category == category]

    # =========================================================================
    # Fetch
    # =========================================================================

    async def _fetch(self, query: AggregateQuery) -> FetchOutcome:
        feeds = self._feeds_for(query.category)
        if not feeds:
            return FetchOutcome(requests_used=0)

        client = await self._get_client()
        results = await asyncio.gather(
            *(self._fetch_feed(client, feed) for feed in feeds),
            return_exceptions=True,
        )

        responses: List[RssFeedResponse] = []
        failed = 0
        for feed, result in zip(feeds, results):
            if isinstance(result, BaseException):
                failed += 1
                self.logger.warning(f"[{self.provider_id}] Feed '{feed.name}' failed: {result}")
                continue
            responses.append(result)

        if not responses:
            raise ProviderError(self.provider_id, f"All {failed} RSS feeds failed")

        outcome = self.adapt(responses, query)
        outcome.requests_used = len(feeds)
        return outcome

    async def _fetch_feed(self, client: httpx.AsyncClient, feed: RssFeed) -> RssFeedResponse:
        try:
            response = await client.get(feed.url)
        except httpx.TimeoutException:
            raise ProviderError(self.provider_id, "Request timeout")
        except httpx.RequestError as e:
            raise ProviderError(self.provider_id, f"Network error: {e.__class__.__name__}")
        self._raise_for_status(response)

        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            raise ProviderError(self.provider_id, f"Unparseable feed: {parsed.get('bozo_exception')}")

        return RssFeedResponse(
            feed=feed,
            feed_title=parsed.feed.get("title"),
            language=parsed.feed.get("language"),
            entries=[{**entry, "enclosures": entry.get("enclosures", [])} for entry in parsed.entries],
        )

    def adapt(self, responses: List[RssFeedResponse], query: AggregateQuery) -> FetchOutcome:
        """
        Convert parsed feeds to Articles.

        Entries are merged in feed order, filtered by the query text, then
        sorted newest first and truncated to the query limit.
        """
        articles: List[Article] = []
        skipped = 0
        fetched_at = utc_now()
        terms = query.text.lower().split() if query.text else []

        for response in responses:
            for raw in response.entries[:query.limit]:
                article = self._convert_entry(raw, response, fetched_at)
                if article is None:
                    skipped += 1
                    continue
                if terms and not self._matches(article, terms):
                    continue
                articles.append(article)

        articles.sort(key=lambda a: a.published_at, reverse=True)
        return FetchOutcome(articles=articles[:query.limit], skipped_items=skipped)

    @staticmethod
    def _matches(article: Article, terms: List[str]) -> bool:
        haystack = f"{article.title} {article.description}".lower()
        return all(term in haystack for term in terms)

    def _convert_entry(
        self,
        raw: Dict[str, Any],
        response: RssFeedResponse,
        fetched_at,
    ) -> Optional[Article]:
        try:
            entry = RssEntry.model_validate(raw)
        except ValidationError as e:
            self.logger.warning(
                f"[{self.provider_id}] Skipping malformed entry in '{response.feed.name}': {e.error_count()} errors"
            )
            return None

        title = clean_text(entry.title)
        if not title:
            return None

        feed = response.feed
        link = entry.link or ""
        source = ArticleSource(
            name=feed.name,
            url=feed.url,
            provider_id=self.provider_id,
            credibility=feed.credibility,
        )
        language = (response.language or "")[:2].lower() or None

        return Article(
            fingerprint=fingerprint(title, link, source.domain),
            title=title,
            description=clean_text(entry.summary or entry.description, DESCRIPTION_MAX_LENGTH),
            content=clean_text(entry.body),
            url=link,
            image_url=entry.image_url,
            published_at=parse_datetime(entry.published or entry.updated) or fetched_at,
            source=source,
            category=feed.category,
            language=language,
            author=entry.author,
            provider_metadata={"feed": feed.name, "guid": entry.id},
        )

    async def health_check(self) -> Dict[str, Any]:
        """Fetch the first feed; RSS has no quota to spend"""
        status = await super().health_check()
        if not self.feeds:
            status.update(healthy=False, error="No feeds configured")
            return status
        try:
            await self._fetch_feed(await self._get_client(), self.feeds[0])
        except ProviderError as e:
            status.update(healthy=False, error=e.message)
        status["feeds"] = len(self.feeds)
        return status

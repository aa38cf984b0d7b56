"""
Shared fixtures: article factory and a scripted in-memory provider.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Union

import pytest

from newswire.providers.base_provider import BaseNewsProvider, FetchOutcome, ProviderConfig
from newswire.schemas.article import Article, ArticleSource
from newswire.schemas.request import AggregateQuery
from newswire.services.fingerprint import fingerprint

BASE_TIME = datetime(2024, 8, 14, 12, 0, tzinfo=timezone.utc)


def make_article(
    title: str,
    url: Optional[str] = None,
    provider_id: str = "fake",
    credibility: float = 0.8,
    published_at: Optional[datetime] = None,
    domain: str = "example.com",
) -> Article:
    if url is None:
        slug = title.lower().replace(" ", "-")
        url = f"https://{domain}/news/{slug}"
    source = ArticleSource(
        name=domain,
        url=f"https://{domain}",
        provider_id=provider_id,
        credibility=credibility,
    )
    return Article(
        fingerprint=fingerprint(title, url, source.domain),
        title=title,
        url=url,
        published_at=published_at or BASE_TIME,
        source=source,
    )


Batch = Union[Sequence[Article], Exception]


class ScriptedProvider(BaseNewsProvider):
    """
    Returns one scripted batch per call; the last batch repeats.
    A batch that is an exception is raised from _fetch.
    """

    def __init__(
        self,
        provider_id: str,
        batches: Optional[List[Batch]] = None,
        priority: int = 50,
        credibility: float = 0.8,
        quota_limit: Optional[int] = None,
        cost_per_request: float = 0.0,
        categories: Optional[List[str]] = None,
        delay: float = 0.0,
    ):
        super().__init__(ProviderConfig(
            provider_id=provider_id,
            priority=priority,
            credibility=credibility,
            quota_limit=quota_limit,
            cost_per_request=cost_per_request,
            categories=categories or [],
        ))
        self.batches: List[Batch] = list(batches or [[]])
        self.delay = delay
        self.calls = 0
        self.queries: List[AggregateQuery] = []

    async def _fetch(self, query: AggregateQuery) -> FetchOutcome:
        self.calls += 1
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        batch = self.batches[min(self.calls, len(self.batches)) - 1]
        if isinstance(batch, Exception):
            raise batch
        return FetchOutcome(articles=list(batch))


@pytest.fixture
def article_factory():
    """Build an Article whose fingerprint matches its title/url"""
    return make_article


@pytest.fixture
def provider_factory():
    """Build a ScriptedProvider"""
    return ScriptedProvider


@pytest.fixture
def articles():
    """Ten distinct articles, one minute apart"""
    return [
        make_article(f"Story {i}", published_at=BASE_TIME + timedelta(minutes=i))
        for i in range(10)
    ]

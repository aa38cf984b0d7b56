"""
Unit tests for the provider adapters.

Upstream APIs are replaced with httpx.MockTransport; nothing touches the network.
"""

import httpx
import pytest

from newswire.providers.mediastack_provider import MediaStackNewsProvider
from newswire.providers.rss_provider import RssNewsProvider
from newswire.providers.serpapi_provider import SerpApiNewsProvider
from newswire.schemas.provider_responses import RssFeed
from newswire.schemas.request import AggregateQuery
from newswire.schemas.response import ProviderStatus
from newswire.services.quota_tracker import QuotaTracker


def json_transport(payload, status_code=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)
    return httpx.MockTransport(handler)


# ============================================================================
# SERPAPI
# ============================================================================

SERPAPI_PAYLOAD = {
    "search_metadata": {"status": "Success"},
    "news_results": [
        {
            "position": 1,
            "title": "Markets rally on rate cut hopes",
            "source": {"name": "Reuters", "icon": "https://reuters.test/icon.png"},
            "link": "https://www.reuters.com/markets/rally-2024-08-14/",
            "snippet": "Stocks rose on Wednesday...",
            "thumbnail": "https://img.test/1.jpg",
            "iso_date": "2024-08-14T07:00:00Z",
        },
        {"position": 2, "link": "https://example.com/no-title"},
        {
            "position": 3,
            "title": "Chipmakers lead gains",
            "source": "CNBC",
            "link": "https://www.cnbc.com/2024/08/14/chips.html",
            "date": "2 hours ago",
        },
    ],
}


class TestSerpApiProvider:

    def make(self, transport, api_key="test-key", tracker=None):
        return SerpApiNewsProvider(
            SerpApiNewsProvider.default_config(api_key=api_key),
            quota_tracker=tracker,
            transport=transport,
        )

    @pytest.mark.asyncio
    async def test_fetch_adapts_items_and_skips_malformed(self):
        seen = []
        provider = self.make(json_transport(SERPAPI_PAYLOAD, seen=seen))

        articles, result = await provider.fetch(AggregateQuery(text="stock market", limit=10))
        await provider.close()

        assert result.status == ProviderStatus.SUCCESS
        assert result.count == 2
        assert result.skipped_items == 1
        assert [a.title for a in articles] == ["Markets rally on rate cut hopes", "Chipmakers lead gains"]

        first = articles[0]
        assert first.source.name == "Reuters"
        assert first.source.domain == "reuters.com"
        assert first.source.provider_id == "serpapi"
        assert first.source.credibility == 0.85
        assert first.published_at.year == 2024
        assert first.provider_metadata == {"position": 1, "engine": "google_news"}
        assert articles[1].source.name == "CNBC"

        params = seen[0].url.params
        assert params["engine"] == "google_news"
        assert params["q"] == "stock market"
        assert params["num"] == "10"
        assert params["api_key"] == "test-key"
        assert params["gl"] == "us"
        assert params["hl"] == "en"

    @pytest.mark.asyncio
    async def test_category_used_when_no_text(self):
        seen = []
        provider = self.make(json_transport({"news_results": []}, seen=seen))

        await provider.fetch(AggregateQuery(category="technology"))
        await provider.close()

        assert seen[0].url.params["q"] == "technology"

    @pytest.mark.asyncio
    async def test_quota_remaining_reported(self):
        tracker = QuotaTracker()
        tracker.register("serpapi", 100)
        provider = self.make(json_transport(SERPAPI_PAYLOAD), tracker=tracker)

        assert tracker.reserve("serpapi")
        _, result = await provider.fetch(AggregateQuery(text="ai"))
        await provider.close()

        assert result.quota_remaining == 99

    @pytest.mark.parametrize("status_code,message", [
        (401, "Invalid API key"),
        (429, "Rate limit exceeded"),
        (503, "Service temporarily unavailable"),
        (404, "HTTP error 404"),
    ])
    @pytest.mark.asyncio
    async def test_http_errors_become_results(self, status_code, message):
        provider = self.make(json_transport({}, status_code=status_code))

        articles, result = await provider.fetch(AggregateQuery(text="ai"))
        await provider.close()

        assert articles == []
        assert result.status == ProviderStatus.ERROR
        assert result.error == message

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ConnectTimeout("slow", request=request)

        provider = self.make(httpx.MockTransport(handler))
        _, result = await provider.fetch(AggregateQuery(text="ai"))
        await provider.close()

        assert result.error == "Request timeout"

    @pytest.mark.asyncio
    async def test_error_in_body(self):
        provider = self.make(json_transport({"error": "Invalid API key. Your API key should be here"}))
        _, result = await provider.fetch(AggregateQuery(text="ai"))
        await provider.close()

        assert result.status == ProviderStatus.ERROR
        assert result.error.startswith("Invalid API key")

    @pytest.mark.asyncio
    async def test_no_results_error_is_empty_success(self):
        provider = self.make(json_transport({"error": "Google hasn't returned any results for this query."}))
        articles, result = await provider.fetch(AggregateQuery(text="zzzz"))
        await provider.close()

        assert articles == []
        assert result.status == ProviderStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_missing_key(self):
        provider = self.make(json_transport(SERPAPI_PAYLOAD), api_key=None)

        _, result = await provider.fetch(AggregateQuery(text="ai"))
        health = await provider.health_check()

        assert result.error == "API key not configured"
        assert health["configured"] is False
        assert health["healthy"] is False

    def test_supports(self):
        provider = self.make(None)
        assert provider.supports(AggregateQuery(category="technology"))
        assert not provider.supports(AggregateQuery(category="sports"))
        assert not provider.supports(AggregateQuery(country="de"))

    @pytest.mark.asyncio
    async def test_blank_title_is_skipped(self):
        payload = {"news_results": [
            {"title": "   ", "link": "https://example.com/blank"},
            {"title": "  Padded title  ", "link": "https://example.com/padded"},
        ]}
        provider = self.make(json_transport(payload))

        articles, result = await provider.fetch(AggregateQuery(text="ai"))
        await provider.close()

        assert result.skipped_items == 1
        assert [a.title for a in articles] == ["Padded title"]


# ============================================================================
# MEDIASTACK
# ============================================================================

MEDIASTACK_PAYLOAD = {
    "pagination": {"limit": 2, "offset": 0, "count": 2, "total": 250},
    "data": [
        {
            "author": "TMZ Staff",
            "title": "Rafael Nadal Pulls Out Of U.S. Open",
            "description": "Rafael Nadal is officially OUT of the U.S. Open",
            "url": "https://www.tmz.com/2020/08/04/rafael-nadal-us-open/",
            "source": "TMZ.com",
            "image": "https://imagez.tmz.com/nadal.jpg",
            "category": "sports",
            "language": "en",
            "country": "us",
            "published_at": "2020-08-05T05:47:24+00:00",
        },
        {"title": "No url here", "source": "Nowhere"},
    ],
}


class TestMediaStackProvider:

    def make(self, transport, api_key="ms-key"):
        return MediaStackNewsProvider(
            MediaStackNewsProvider.default_config(api_key=api_key),
            transport=transport,
        )

    @pytest.mark.asyncio
    async def test_fetch_maps_params_and_fields(self):
        seen = []
        provider = self.make(json_transport(MEDIASTACK_PAYLOAD, seen=seen))

        articles, result = await provider.fetch(
            AggregateQuery(text="tennis", category="sports", country="uk", limit=5)
        )
        await provider.close()

        params = seen[0].url.params
        assert params["access_key"] == "ms-key"
        assert params["keywords"] == "tennis"
        assert params["categories"] == "sports"
        assert params["countries"] == "gb"
        assert params["languages"] == "en"
        assert params["limit"] == "5"
        assert params["sort"] == "published_desc"

        assert result.count == 1
        assert result.skipped_items == 1
        [article] = articles
        assert article.source.name == "TMZ.com"
        assert article.source.domain == "tmz.com"
        assert article.author == "TMZ Staff"
        assert article.category == "sports"
        assert article.published_at.isoformat() == "2020-08-05T05:47:24+00:00"

    @pytest.mark.parametrize("code,message", [
        ("usage_limit_reached", "Rate limit exceeded"),
        ("invalid_access_key", "Invalid API key"),
    ])
    @pytest.mark.asyncio
    async def test_error_body_mapping(self, code, message):
        payload = {"error": {"code": code, "message": "upstream says no"}}
        provider = self.make(json_transport(payload))

        _, result = await provider.fetch(AggregateQuery(text="ai"))
        await provider.close()

        assert result.status == ProviderStatus.ERROR
        assert result.error == message

    @pytest.mark.asyncio
    async def test_unknown_error_code_uses_upstream_message(self):
        payload = {"error": {"code": "validation_error", "message": "Bad date"}}
        provider = self.make(json_transport(payload))

        _, result = await provider.fetch(AggregateQuery(text="ai"))
        await provider.close()

        assert result.error == "Bad date"

    @pytest.mark.asyncio
    async def test_blank_title_is_skipped(self):
        payload = {"data": [
            {"title": "  ", "url": "https://x.test/a", "source": "X"},
            {"title": "Real headline", "url": "https://x.test/b", "source": "X"},
        ]}
        provider = self.make(json_transport(payload))

        articles, result = await provider.fetch(AggregateQuery(text="ai"))
        await provider.close()

        assert result.skipped_items == 1
        assert [a.title for a in articles] == ["Real headline"]


# ============================================================================
# RSS
# ============================================================================

GOOD_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Tech Wire</title>
    <link>https://techwire.test</link>
    <language>en-us</language>
    <item>
      <title>New AI chip unveiled</title>
      <link>https://techwire.test/ai-chip</link>
      <guid>ai-chip-1</guid>
      <description><![CDATA[<p>The <b>chip</b> doubles AI throughput.</p><script>track()</script>]]></description>
      <pubDate>Wed, 14 Aug 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Battery startup raises funds</title>
      <link>https://techwire.test/battery</link>
      <guid>battery-1</guid>
      <description>A new round for solid state batteries.</description>
      <pubDate>Wed, 14 Aug 2024 11:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

TECH_FEED = RssFeed(name="Tech Wire", url="https://techwire.test/rss", category="technology", credibility=0.9)
DOWN_FEED = RssFeed(name="Down Daily", url="https://down.test/rss", category="technology", credibility=0.6)
BIZ_FEED = RssFeed(name="Biz Wire", url="https://biz.test/rss", category="business", credibility=0.7)


def feed_transport():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "techwire.test":
            return httpx.Response(200, content=GOOD_FEED, headers={"Content-Type": "application/rss+xml"})
        return httpx.Response(500)
    return httpx.MockTransport(handler)


class TestRssProvider:

    def make(self, feeds):
        return RssNewsProvider(feeds=feeds, transport=feed_transport())

    @pytest.mark.asyncio
    async def test_one_bad_feed_is_left_out(self):
        provider = self.make([TECH_FEED, DOWN_FEED])

        articles, result = await provider.fetch(AggregateQuery(category="technology"))
        await provider.close()

        assert result.status == ProviderStatus.SUCCESS
        # Newest first
        assert [a.title for a in articles] == ["Battery startup raises funds", "New AI chip unveiled"]
        chip = articles[1]
        assert chip.description == "The chip doubles AI throughput."
        assert chip.source.name == "Tech Wire"
        assert chip.source.credibility == 0.9
        assert chip.category == "technology"
        assert chip.language == "en"
        assert chip.provider_metadata == {"feed": "Tech Wire", "guid": "ai-chip-1"}

    @pytest.mark.asyncio
    async def test_all_feeds_failed(self):
        provider = self.make([DOWN_FEED])

        articles, result = await provider.fetch(AggregateQuery())
        await provider.close()

        assert articles == []
        assert result.status == ProviderStatus.ERROR
        assert result.error == "All 1 RSS feeds failed"

    @pytest.mark.asyncio
    async def test_text_query_filters_entries(self):
        provider = self.make([TECH_FEED])

        articles, _ = await provider.fetch(AggregateQuery(text="AI chip"))
        await provider.close()

        assert [a.title for a in articles] == ["New AI chip unveiled"]

    @pytest.mark.asyncio
    async def test_limit(self):
        provider = self.make([TECH_FEED])

        articles, _ = await provider.fetch(AggregateQuery(limit=1))
        await provider.close()

        assert len(articles) == 1

    def test_category_support_follows_feeds(self):
        provider = self.make([TECH_FEED, BIZ_FEED])

        assert provider.capabilities["categories"] == ["business", "technology"]
        assert provider.supports(AggregateQuery(category="business"))
        assert not provider.supports(AggregateQuery(category="sports"))

    def test_global_country_accepts_any_country(self):
        provider = self.make([TECH_FEED])

        assert "global" in provider.capabilities["countries"]
        assert provider.supports(AggregateQuery(country="de"))
        assert provider.supports(AggregateQuery(country="jp", category="technology"))
        assert not provider.supports(AggregateQuery(country="de", language="fr"))

    def test_add_feed_replaces_same_url(self):
        provider = self.make([TECH_FEED])

        provider.add_feed("Tech Wire Renamed", TECH_FEED.url, category="Science", credibility=0.5)

        assert len(provider.feeds) == 1
        assert provider.feeds[0].name == "Tech Wire Renamed"
        assert provider.feeds[0].category == "science"
        assert provider.remove_feed(TECH_FEED.url)
        assert provider.feeds == []

    @pytest.mark.asyncio
    async def test_health_check(self):
        healthy = self.make([TECH_FEED])
        broken = self.make([DOWN_FEED])

        good, bad = await healthy.health_check(), await broken.health_check()
        await healthy.close()
        await broken.close()

        assert good["healthy"] is True
        assert good["quota_remaining"] is None
        assert bad["healthy"] is False
        assert bad["error"] == "Service temporarily unavailable"

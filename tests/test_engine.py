"""
Tests for engine composition from Settings
"""

import httpx
import pytest

from newswire.config import Settings
from newswire.engine import build_engine
from newswire.exceptions import ConfigurationError
from newswire.services.news_cache import MemoryNewsCache

FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Wire</title>
    <item>
      <title>Rates held steady</title>
      <link>https://wire.test/rates</link>
      <pubDate>Wed, 14 Aug 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Chip exports rise</title>
      <link>https://wire.test/chips</link>
      <pubDate>Wed, 14 Aug 2024 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""


def settings(**overrides):
    values = dict(
        SERPAPI_API_KEY=None,
        MEDIASTACK_API_KEY=None,
        RSS_ENABLED=True,
        NEWS_CACHE_BACKEND="memory",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def transport():
    return httpx.MockTransport(lambda request: httpx.Response(200, content=FEED))


class TestBuildEngine:

    def test_no_providers_enabled(self):
        with pytest.raises(ConfigurationError):
            build_engine(settings(RSS_ENABLED=False))

    def test_keys_enable_api_providers(self):
        engine = build_engine(settings(SERPAPI_API_KEY="k1", MEDIASTACK_API_KEY="k2"))
        assert list(engine.providers) == ["serpapi", "mediastack", "rss"]

    @pytest.mark.asyncio
    async def test_rss_only_round(self, transport):
        async with build_engine(settings(), cache=MemoryNewsCache(), transport=transport) as engine:
            result = await engine.aggregate()
            cached = await engine.aggregate()
            stats = engine.get_stats()

        # Every default feed serves the same two links; dedup collapses them
        assert [a.title for a in result.articles] == ["Rates held steady", "Chip exports rise"]
        assert result.metadata.sources["rss"].status == "success"
        assert cached.metadata.from_cache is True
        assert stats["active_monitors"] == 0

    @pytest.mark.asyncio
    async def test_monitor_through_engine(self, transport):
        batches = []
        engine = build_engine(settings(), cache=MemoryNewsCache(), transport=transport)

        handle = await engine.start_monitoring(
            {"query": {"text": "rates"}, "interval_ms": 3_600_000},
            on_new_articles=lambda event: batches.append(event.count),
        )
        assert [s.id for s in engine.get_monitor_status()] == [handle.monitor_id]
        stats = engine.stop_monitoring(handle.monitor_id)
        await engine.close()

        assert batches == [1]
        assert stats.articles_found == 1

    @pytest.mark.asyncio
    async def test_health_check(self, transport):
        engine = build_engine(settings(), transport=transport)
        health = await engine.health_check()
        await engine.close()

        assert health["rss"]["healthy"] is True

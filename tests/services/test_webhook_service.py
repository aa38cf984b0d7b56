"""
Unit tests for WebhookService using httpx.MockTransport
"""

import asyncio
import json

import httpx
import pytest

from newswire.schemas.monitor import MonitorErrorEvent, NewArticlesEvent, WebhookPayload
from newswire.services.webhook_service import WebhookService

from conftest import make_article


@pytest.fixture
def payload():
    event = NewArticlesEvent(
        monitor_id="mon_test",
        articles=[make_article("First"), make_article("Second")],
    )
    return WebhookPayload.new_articles(event)


class TestDispatch:

    @pytest.mark.asyncio
    async def test_posts_json_to_every_url(self, payload):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append((str(request.url), request.headers["content-type"], json.loads(request.content)))
            return httpx.Response(200)

        service = WebhookService(transport=httpx.MockTransport(handler))
        statuses = await service.dispatch(["https://a.test/hook", "https://b.test/hook"], payload)
        await service.close()

        assert [s.success for s in statuses] == [True, True]
        assert sorted(url for url, _, _ in received) == ["https://a.test/hook", "https://b.test/hook"]
        _, content_type, body = received[0]
        assert content_type == "application/json"
        assert body["type"] == "new_articles"
        assert body["count"] == 2
        assert [a["title"] for a in body["articles"]] == ["First", "Second"]
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_one_failing_url_does_not_affect_others(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "down.test":
                return httpx.Response(500)
            if request.url.host == "slow.test":
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(204)

        service = WebhookService(transport=httpx.MockTransport(handler))
        statuses = await service.dispatch(
            ["https://down.test/h", "https://ok.test/h", "https://slow.test/h"], payload
        )
        await service.close()

        assert [s.url for s in statuses] == ["https://down.test/h", "https://ok.test/h", "https://slow.test/h"]
        assert [s.success for s in statuses] == [False, True, False]
        assert statuses[0].status_code == 500
        assert statuses[0].error == "HTTP 500"
        assert statuses[2].error.startswith("Timeout")

    @pytest.mark.asyncio
    async def test_connection_error_is_reported(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        service = WebhookService(transport=httpx.MockTransport(handler))
        [status] = await service.dispatch(["https://gone.test/h"], payload)
        await service.close()

        assert not status.success
        assert status.error == "Request error: ConnectError"

    @pytest.mark.asyncio
    async def test_error_payload_shape(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200)

        event = MonitorErrorEvent(monitor_id="mon_x", error="All providers failed", error_type="AggregationEmptyError")
        service = WebhookService(transport=httpx.MockTransport(handler))
        await service.dispatch(["https://a.test/h"], WebhookPayload.from_error(event))
        await service.close()

        assert bodies[0]["type"] == "error"
        assert bodies[0]["error"] == "All providers failed"
        assert "articles" not in bodies[0]

    @pytest.mark.asyncio
    async def test_no_urls(self, payload):
        service = WebhookService()
        assert await service.dispatch([], payload) == []
        assert service.dispatch_background([], payload) is None


class TestBackground:

    @pytest.mark.asyncio
    async def test_background_dispatch_drained_on_close(self, payload):
        delivered = []

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.01)
            delivered.append(str(request.url))
            return httpx.Response(200)

        service = WebhookService(transport=httpx.MockTransport(handler))
        task = service.dispatch_background(["https://a.test/h"], payload)

        assert task is not None
        assert service.pending == 1
        await service.close()

        assert delivered == ["https://a.test/h"]
        assert service.pending == 0

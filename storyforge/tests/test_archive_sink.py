"""
Unit tests for the HTTP archive sink.
"""

import json

import httpx
import pytest

from storyforge.services.archive_sink import HttpArchiveSink


class TestHttpArchiveSink:
    """Tests for HttpArchiveSink."""

    def test_disabled_without_url(self):
        assert HttpArchiveSink(None).enabled is False
        assert HttpArchiveSink("").enabled is False

    @pytest.mark.asyncio
    async def test_disabled_sink_posts_nothing(self):
        assert await HttpArchiveSink(None).archive("s1", "text", 1) is False

    @pytest.mark.asyncio
    async def test_posts_round_payload(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            sink = HttpArchiveSink("https://archive.test/rounds", http_client=http_client)
            accepted = await sink.archive("2024-01-01_12-00-00", "Round text.", 3)

        assert accepted is True
        assert json.loads(requests[0].content) == {
            "sessionId": "2024-01-01_12-00-00",
            "content": "Round text.",
            "round": 3,
        }

    @pytest.mark.asyncio
    async def test_http_failure_is_swallowed(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))

        async with httpx.AsyncClient(transport=transport) as http_client:
            sink = HttpArchiveSink("https://archive.test/rounds", http_client=http_client)
            accepted = await sink.archive("s1", "Round text.", 1)

        assert accepted is False

    @pytest.mark.asyncio
    async def test_transport_failure_is_swallowed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            sink = HttpArchiveSink("https://archive.test/rounds", http_client=http_client)
            accepted = await sink.archive("s1", "Round text.", 1)

        assert accepted is False

    @pytest.mark.asyncio
    async def test_invalid_url_is_swallowed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.InvalidURL("Invalid port")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            sink = HttpArchiveSink("https://archive.test/rounds", http_client=http_client)
            accepted = await sink.archive("s1", "Round text.", 1)

        assert accepted is False

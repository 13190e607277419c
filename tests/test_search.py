"""Tests for the web search clients and tools."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from toolchat.clients.exa import ExaSearchClient
from toolchat.clients.tavily import TavilySearchClient
from toolchat.errors import BackendUnavailable, OperationTimeout
from toolchat.models.attachments import SearchResult
from toolchat.tools.base import ToolContext
from toolchat.tools.search import SEARCH_FALLBACK_TEXT, SearchInput, create_tavily_search_tool

from .conftest import KOLKATA


def mock_http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def no_throttle() -> AsyncMock:
    throttle = AsyncMock()
    throttle.acquire = AsyncMock()
    return throttle


class TestExaSearchClient:
    @pytest.mark.asyncio
    async def test_request_and_mapping(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["api_key"] = request.headers["x-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "results": [
                        {"title": "Python", "url": "https://python.org", "text": "Python is a language"},
                        {"title": None, "url": "https://example.com", "highlights": ["a highlight"]},
                        {},
                    ]
                },
            )

        client = ExaSearchClient("exa-key", http_client=mock_http(handler))
        results = await client.search("python", num_results=3)

        assert seen["url"] == "https://api.exa.ai/search"
        assert seen["api_key"] == "exa-key"
        assert seen["body"]["numResults"] == 3
        assert seen["body"]["contents"] == {"text": {"maxCharacters": 1000}, "highlights": True}
        assert results == [
            SearchResult(title="Python", url="https://python.org", snippet="Python is a language"),
            SearchResult(title="No title", url="https://example.com", snippet="a highlight"),
            SearchResult(title="No title", url="#", snippet="No content available"),
        ]

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        client = ExaSearchClient("exa-key", http_client=mock_http(lambda r: httpx.Response(200, json={"oops": 1})))

        with pytest.raises(BackendUnavailable, match="Invalid response format"):
            await client.search("python")

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = ExaSearchClient("exa-key", http_client=mock_http(lambda r: httpx.Response(401, text="bad key")))

        with pytest.raises(BackendUnavailable, match="HTTP 401"):
            await client.search("python")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        client = ExaSearchClient(None, http_client=mock_http(lambda r: httpx.Response(200, json={})))

        with pytest.raises(BackendUnavailable, match="not configured"):
            await client.search("python")


class TestTavilySearchClient:
    @pytest.mark.asyncio
    async def test_request_and_mapping(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"answer": "x", "results": [{"title": "T", "url": "https://t.dev", "content": "body"}]}
            )

        throttle = no_throttle()
        client = TavilySearchClient("tv-key", http_client=mock_http(handler), throttle=throttle)
        results = await client.search("news", num_results=2)

        assert seen["auth"] == "Bearer tv-key"
        assert seen["body"]["search_depth"] == "advanced"
        assert seen["body"]["max_results"] == 2
        assert results == [SearchResult(title="T", url="https://t.dev", snippet="body")]
        throttle.acquire.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = TavilySearchClient("tv-key", http_client=mock_http(handler), throttle=no_throttle())

        with pytest.raises(OperationTimeout):
            await client.search("news")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        client = TavilySearchClient("tv-key", http_client=mock_http(handler), throttle=no_throttle())

        with pytest.raises(BackendUnavailable):
            await client.search("news")


class TestSearchTool:
    @pytest.mark.asyncio
    async def test_results_become_payload_and_attachments(self):
        backend = AsyncMock()
        backend.search.return_value = [SearchResult(title="T", url="https://t.dev", snippet="s")]
        context = ToolContext(time_zone=KOLKATA, search_backends={"tavily_search": backend})
        tool = create_tavily_search_tool()

        outcome = await tool.handler(SearchInput(query="news"), context)

        backend.search.assert_awaited_once_with("news", 5)
        assert outcome.payload == [{"title": "T", "url": "https://t.dev", "snippet": "s"}]
        assert outcome.attachments.search_results[0].url == "https://t.dev"
        assert outcome.fallback_text == SEARCH_FALLBACK_TEXT

    @pytest.mark.asyncio
    async def test_backend_failure_degrades_to_placeholder(self):
        backend = AsyncMock()
        backend.search.side_effect = OperationTimeout("Tavily search timed out")
        context = ToolContext(time_zone=KOLKATA, search_backends={"tavily_search": backend})

        outcome = await create_tavily_search_tool().handler(SearchInput(query="news"), context)

        placeholder = outcome.attachments.search_results[0]
        assert placeholder.title == "Search Error"
        assert placeholder.url == "#"
        assert '"news"' in placeholder.snippet

    @pytest.mark.asyncio
    async def test_unconfigured_backend_degrades(self):
        context = ToolContext(time_zone=KOLKATA)

        outcome = await create_tavily_search_tool().handler(SearchInput(query="news"), context)

        assert outcome.payload[0]["title"] == "Search Error"

    def test_schema(self):
        schema = create_tavily_search_tool().get_json_schema()
        assert schema["required"] == ["query"]
        assert schema["properties"]["num_results"]["default"] == 5

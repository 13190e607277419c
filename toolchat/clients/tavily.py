"""Tavily web search client."""

from typing import Any

import httpx

from toolchat.clients.search import HttpSearchClient, to_search_result
from toolchat.clients.throttle import RequestThrottle
from toolchat.models.attachments import SearchResult


class TavilySearchClient(HttpSearchClient):
    """Tavily search with advanced depth; requests are spaced at least a second apart."""

    name = "Tavily"
    endpoint = "https://api.tavily.com/search"

    def __init__(
        self,
        api_key: str | None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        throttle: RequestThrottle | None = None,
    ):
        super().__init__(api_key, http_client, timeout_seconds)
        self.throttle = throttle or RequestThrottle(interval_seconds=1, identifier="tavily")

    async def _before_request(self) -> None:
        await self.throttle.acquire()

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}

    def _body(self, query: str, num_results: int) -> dict[str, Any]:
        return {
            "query": query,
            "search_depth": "advanced",
            "include_answer": True,
            "include_images": False,
            "include_raw_content": False,
            "max_results": num_results,
        }

    def _parse(self, data: dict[str, Any]) -> list[SearchResult]:
        return [
            to_search_result(item.get("title"), item.get("url"), item.get("content"))
            for item in data.get("results", [])
        ]

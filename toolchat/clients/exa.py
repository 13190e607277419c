"""Exa web search client."""

from typing import Any

from toolchat.clients.search import HttpSearchClient, to_search_result
from toolchat.errors import BackendUnavailable
from toolchat.models.attachments import SearchResult


class ExaSearchClient(HttpSearchClient):
    name = "Exa"
    endpoint = "https://api.exa.ai/search"

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-api-key": self.api_key or ""}

    def _body(self, query: str, num_results: int) -> dict[str, Any]:
        return {
            "query": query,
            "numResults": num_results,
            "contents": {"text": {"maxCharacters": 1000}, "highlights": True},
        }

    def _parse(self, data: dict[str, Any]) -> list[SearchResult]:
        items = data.get("results")
        if not isinstance(items, list):
            raise BackendUnavailable("Invalid response format from Exa API")

        results = []
        for item in items:
            highlights = item.get("highlights") or []
            snippet = item.get("text") or (highlights[0] if highlights else None)
            results.append(to_search_result(item.get("title"), item.get("url"), snippet))
        return results

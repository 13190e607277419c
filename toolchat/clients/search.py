"""Shared plumbing for the HTTP web search backends."""

from typing import Any, Protocol

import httpx

from toolchat.errors import BackendUnavailable, OperationTimeout
from toolchat.models.attachments import SearchResult
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


class SearchBackend(Protocol):
    """A web search provider."""

    async def search(self, query: str, num_results: int = 5) -> list[SearchResult]: ...


class HttpSearchClient:
    """POST a JSON query to a search API and map the hits to ``SearchResult``."""

    name: str = "search"
    endpoint: str = ""

    def __init__(
        self,
        api_key: str | None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ):
        self.api_key = api_key
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> dict[str, str]:
        raise NotImplementedError

    def _body(self, query: str, num_results: int) -> dict[str, Any]:
        raise NotImplementedError

    def _parse(self, data: dict[str, Any]) -> list[SearchResult]:
        raise NotImplementedError

    async def _before_request(self) -> None:
        """Hook for per-client pacing."""

    async def search(self, query: str, num_results: int = 5) -> list[SearchResult]:
        """Run one search.

        Raises:
            OperationTimeout: the provider did not answer in time
            BackendUnavailable: any other transport or provider failure
        """
        if not self.api_key:
            raise BackendUnavailable(f"{self.name} API key is not configured")

        await self._before_request()
        logger.info(f"Searching {self.name} with query: {query!r}")

        try:
            response = await self.http_client.post(
                self.endpoint,
                json=self._body(query, num_results),
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise OperationTimeout(f"{self.name} search timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"{self.name} search failed with status {status}: {e.response.text[:200]}")
            raise BackendUnavailable(f"{self.name} search failed: HTTP {status}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise BackendUnavailable(f"{self.name} search failed: {e}") from e

        results = self._parse(data)
        logger.info(f"{self.name} search returned {len(results)} results")
        return results

    async def aclose(self) -> None:
        await self.http_client.aclose()


def to_search_result(title: str | None, url: str | None, snippet: str | None) -> SearchResult:
    return SearchResult(
        title=title or "No title",
        url=url or "#",
        snippet=snippet or "No content available",
    )

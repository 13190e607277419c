"""Web search tools (Exa and Tavily)."""

import asyncio

from pydantic import BaseModel, ConfigDict, Field

from toolchat.errors import BackendUnavailable
from toolchat.models.attachments import MessageAttachments, SearchResult
from toolchat.models.tools import ToolOutcome
from toolchat.tools.base import ToolContext, ToolDefinition
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

SEARCH_DISPLAY_TEXT = (
    "Please provide a comprehensive response that incorporates information from these search results. "
    "Include a detailed explanation or summary before listing the search results."
)
SEARCH_FALLBACK_TEXT = (
    "Here are the search results for your query. Please review them for the information you're looking for."
)


class SearchInput(BaseModel):
    """Input schema for web search tools."""

    model_config = ConfigDict(extra="ignore")

    query: str = Field(..., min_length=1, description="The search query to look up")
    num_results: int = Field(default=5, ge=1, le=20, description="Number of results to return (default: 5)")


def search_error_result(query: str) -> SearchResult:
    return SearchResult(
        title="Search Error",
        url="#",
        snippet=f'Unable to perform search for "{query}". Please try again later or rephrase your query.',
    )


def create_search_tool(name: str, provider: str) -> ToolDefinition:
    async def search_handler(params: SearchInput, context: ToolContext) -> ToolOutcome:
        try:
            async with asyncio.timeout(context.search_timeout_seconds):
                results = await context.search_backend(name).search(params.query, params.num_results)
        except BackendUnavailable as e:
            # Search never ends the round; the model gets a placeholder to explain
            logger.warning(f"{provider} search for {params.query!r} failed, using placeholder: {e.message}")
            results = [search_error_result(params.query)]
        except TimeoutError:
            logger.warning(
                f"{provider} search for {params.query!r} took over {context.search_timeout_seconds}s, using placeholder"
            )
            results = [search_error_result(params.query)]

        return ToolOutcome(
            payload=[result.model_dump() for result in results],
            display_text=SEARCH_DISPLAY_TEXT,
            fallback_text=SEARCH_FALLBACK_TEXT,
            attachments=MessageAttachments(search_results=results),
        )

    return ToolDefinition(
        name=name,
        description=(
            f"Search the internet for current information using {provider} API. After receiving search results, "
            "you must provide a comprehensive response that incorporates the information from these results. "
            "Always include a detailed explanation or summary before listing the search results."
        ),
        input_schema_class=SearchInput,
        handler=search_handler,
        action="search the web",
    )


def create_exa_search_tool() -> ToolDefinition:
    return create_search_tool("exa_search", "Exa")


def create_tavily_search_tool() -> ToolDefinition:
    return create_search_tool("tavily_search", "Tavily")

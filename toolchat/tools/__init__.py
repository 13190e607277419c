"""Tools the assistant model can call."""

from toolchat.tools.base import ToolContext, ToolDefinition
from toolchat.tools.executor import ToolExecutor
from toolchat.tools.registry import (
    CALENDAR,
    EXA_SEARCH,
    IMAGE_SEARCH,
    TAVILY_SEARCH,
    ToolSet,
    ToolsRegistry,
    get_tools_registry,
    search_toggle,
)

__all__ = [
    "CALENDAR",
    "EXA_SEARCH",
    "IMAGE_SEARCH",
    "TAVILY_SEARCH",
    "ToolContext",
    "ToolDefinition",
    "ToolExecutor",
    "ToolSet",
    "ToolsRegistry",
    "get_tools_registry",
    "search_toggle",
]

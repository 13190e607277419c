"""Tools registry and the named tool sets offered per chat mode."""

from dataclasses import dataclass

from toolchat.models.tools import ToolDescriptor
from toolchat.tools.base import ToolDefinition
from toolchat.tools.calendar import (
    create_create_event_tool,
    create_delete_event_tool,
    create_list_events_tool,
    create_update_event_tool,
)
from toolchat.tools.images import create_generate_image_tool
from toolchat.tools.search import create_exa_search_tool, create_tavily_search_tool


@dataclass(frozen=True)
class ToolSet:
    """Which tools a conversation may use and how the orchestrator drives them.

    ``date_context`` adds today's date to the system prompt; ``multi_round``
    lets the model keep calling tools after seeing a result.
    """

    name: str
    label: str
    tool_names: tuple[str, ...] = ()
    date_context: bool = False
    multi_round: bool = False

    def offers(self, tool_name: str) -> bool:
        return tool_name in self.tool_names


EXA_SEARCH = ToolSet(name="exa_search", label="Exa search", tool_names=("exa_search",))
TAVILY_SEARCH = ToolSet(name="tavily_search", label="Tavily search", tool_names=("tavily_search",))
IMAGE_SEARCH = ToolSet(
    name="image_search", label="image and search", tool_names=("generate_image", "tavily_search"), multi_round=True
)
CALENDAR = ToolSet(
    name="calendar",
    label="calendar",
    tool_names=("list_calendar_events", "create_calendar_event", "update_calendar_event", "delete_calendar_event"),
    date_context=True,
)


def search_toggle(enabled: bool) -> ToolSet:
    """Tavily search when the user switched web search on, plain chat otherwise."""
    return ToolSet(name="search_toggle", label="Tavily search toggle", tool_names=("tavily_search",) if enabled else ())


class ToolsRegistry:
    """Registry for managing AI assistant tools."""

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        tools = [
            create_exa_search_tool(),
            create_tavily_search_tool(),
            create_generate_image_tool(),
            create_list_events_tool(),
            create_create_event_tool(),
            create_update_event_tool(),
            create_delete_event_tool(),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def descriptors(self, tool_set: ToolSet) -> list[ToolDescriptor]:
        """Descriptors for the tools in ``tool_set``, in the set's order."""
        return [self._tools[name].descriptor() for name in tool_set.tool_names if name in self._tools]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools


_tools_registry: ToolsRegistry | None = None


def get_tools_registry() -> ToolsRegistry:
    """Get or create tools registry instance."""
    global _tools_registry

    if _tools_registry is None:
        _tools_registry = ToolsRegistry()

    return _tools_registry

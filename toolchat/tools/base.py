"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from toolchat.clients.openai_images import ImageBackend
from toolchat.clients.search import SearchBackend
from toolchat.errors import AuthenticationRequired, BackendUnavailable, NotFound, ToolChatError
from toolchat.models.tools import ToolDescriptor, ToolOutcome
from toolchat.services.calendar_backend import CalendarBackend
from toolchat.services.event_matcher import EventMatcher


@dataclass
class ToolContext:
    """Per-request collaborators handed to every tool handler."""

    time_zone: ZoneInfo
    search_backends: dict[str, SearchBackend] = field(default_factory=dict)
    image_backend: ImageBackend | None = None
    calendar_provider: Callable[[], CalendarBackend] | None = None
    clock: Callable[[ZoneInfo], datetime] = datetime.now
    # Must stay below the executor timeout so a slow search degrades to a placeholder
    search_timeout_seconds: float | None = None

    def now(self) -> datetime:
        """Current instant in the configured zone."""
        return self.clock(self.time_zone)

    def search_backend(self, name: str) -> SearchBackend:
        backend = self.search_backends.get(name)
        if backend is None:
            raise BackendUnavailable(f"{name} search is not configured")
        return backend

    def calendar(self) -> CalendarBackend:
        """The caller's calendar backend.

        Raises:
            AuthenticationRequired: no signed-in user with calendar credentials
        """
        if self.calendar_provider is None:
            raise AuthenticationRequired("Authentication required: Please sign in to access calendar features.")
        return self.calendar_provider()

    @property
    def matcher(self) -> EventMatcher:
        return EventMatcher(self.time_zone)


ToolHandler = Callable[[BaseModel, ToolContext], Awaitable[ToolOutcome]]
FailureReply = Callable[[ToolChatError], str]


def default_failure_reply(action: str) -> FailureReply:
    """User-facing text for a failure that ends the exchange."""

    def reply(error: ToolChatError) -> str:
        if isinstance(error, AuthenticationRequired):
            return (
                f"I need access to your {error.service} to {action}. "
                "Please sign in with your Google account first."
            )
        if isinstance(error, NotFound) and error.description:
            return (
                f'I couldn\'t find any events matching "{error.description}". Please try again with a more '
                "specific description or list your events first to see what's available."
            )
        if isinstance(error, NotFound):
            return (
                f"I couldn't find that event: {error.message}. "
                "Please list your events first to see what's available."
            )
        return f"I encountered an error while trying to {action}: {error.message}. Please try again."

    return reply


@dataclass
class ToolDefinition:
    """Definition of a tool available to the AI assistant.

    ``action`` completes the phrase "while trying to ..." in failure replies.
    """

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler
    action: str
    failure_reply: FailureReply | None = None

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(name=self.name, description=self.description, input_schema=self.get_json_schema())

    def reply_for(self, error: ToolChatError) -> str:
        builder = self.failure_reply or default_failure_reply(self.action)
        return builder(error)

"""Tool descriptors and per-round invocation records."""

from dataclasses import dataclass, field
from typing import Any

from toolchat.errors import ErrorKind
from toolchat.models.attachments import MessageAttachments


@dataclass(frozen=True)
class ToolDescriptor:
    """Declarative description of a tool offered to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class ToolInvocationRequest:
    """A tool call emitted by the model."""

    id: str
    name: str
    parameters: dict[str, Any]


@dataclass
class ToolOutcome:
    """What a handler produced, before it is tied to a correlation id."""

    payload: Any
    display_text: str
    fallback_text: str
    attachments: MessageAttachments = field(default_factory=MessageAttachments)


@dataclass
class ToolInvocationResult:
    """Successful execution of a tool call."""

    correlation_id: str
    payload: Any
    display_text: str
    fallback_text: str
    attachments: MessageAttachments = field(default_factory=MessageAttachments)


@dataclass
class ToolFailure:
    """Typed failure of a tool call.

    ``reply`` is the user-facing text used when the failure ends the exchange.
    """

    correlation_id: str
    error_kind: ErrorKind
    message: str
    reply: str

    @property
    def ends_exchange(self) -> bool:
        """Whether the orchestrator answers the user directly instead of consulting the model again."""
        return self.error_kind is not ErrorKind.INVALID_TOOL_CALL

"""Provider-neutral model message and content block types."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class TextBlock(BaseModel):
    """Plain text content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool invocation emitted by the assistant model."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(BaseModel):
    """Outcome of a tool invocation, sent back on a user-role turn."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class LLMMessage(BaseModel):
    """One turn of the transcript sent to the model."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]

    def text_content(self) -> str:
        """Concatenate the text carried by this turn, ignoring tool blocks."""
        if isinstance(self.content, str):
            return self.content
        parts = []
        for block in self.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, ToolResultBlock):
                parts.append(block.content)
        return "".join(parts)


@dataclass
class LLMUsage:
    """Token usage accumulated over one or more model calls."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def add(self, other: "LLMUsage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens

    @property
    def cache_hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total_input = self.input_tokens + self.cache_read_input_tokens + self.cache_creation_input_tokens
        if total_input == 0:
            return 0.0
        return (self.cache_read_input_tokens / total_input) * 100


@dataclass
class LLMResponse:
    """Provider-agnostic response from the assistant model."""

    content: list[ContentBlock]
    stop_reason: str | None
    usage: LLMUsage = field(default_factory=LLMUsage)
    model: str = ""

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        """Tool invocation blocks, in the order the model emitted them."""
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    @property
    def text(self) -> str:
        """All text blocks joined in order, or an empty string when there is no text."""
        return "".join(block.text for block in self.content if isinstance(block, TextBlock)).strip()

"""Claude access through the async Anthropic SDK.

Wraps ``AsyncAnthropic.messages.create`` with the things every orchestrator round needs:
token budgeting, transcript truncation, prompt caching of the tool list and a small
retry policy. Responses come back as provider-neutral ``LLMResponse`` objects.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

import tiktoken
from anthropic import APIConnectionError, APIStatusError, APITimeoutError, AsyncAnthropic
from anthropic.types import ContentBlock as AnthropicContentBlock
from anthropic.types import Message, Usage
from pydantic import BaseModel

from toolchat.clients.throttle import TokenBudgetLimiter
from toolchat.config import get_settings
from toolchat.errors import OperationTimeout
from toolchat.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMResponse,
    LLMUsage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from toolchat.models.tools import ToolDescriptor
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

BLOCK_TYPES: dict[str, type[TextBlock] | type[ToolUseBlock]] = {"text": TextBlock, "tool_use": ToolUseBlock}
DEFAULT_RETRY_AFTER = 60.0


class CacheControl(BaseModel):
    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicTool(BaseModel):
    """A tool descriptor in the shape the Messages API expects."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None

    @classmethod
    def from_descriptor(cls, descriptor: ToolDescriptor) -> "AnthropicTool":
        return cls(name=descriptor.name, description=descriptor.description, input_schema=descriptor.input_schema)


@dataclass
class AnthropicConfig:
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1024
    temperature: float = 0.1
    timeout_seconds: float = 60.0

    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_after_seconds: int = 120

    max_message_tokens: int = 2000  # per user message
    max_conversation_tokens: int = 200000
    token_headroom: int = 2000  # kept free for the response


def _message_text(message: LLMMessage) -> str:
    """Flatten a message into the text its token cost is estimated from."""
    if isinstance(message.content, str):
        return message.content
    parts = []
    for block in message.content:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, ToolResultBlock):
            parts.append(block.content)
        elif isinstance(block, ToolUseBlock):
            parts.append(block.name + str(block.input))
    return "".join(parts)


def _opens_transcript(message: LLMMessage) -> bool:
    """Only a user turn that is not answering a tool call may come first."""
    if message.role != "user":
        return False
    if isinstance(message.content, str):
        return True
    return not any(isinstance(block, ToolResultBlock) for block in message.content)


def _usage(usage: Usage | None) -> LLMUsage:
    if usage is None:
        return LLMUsage()
    return LLMUsage(
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        total_tokens=usage.input_tokens + usage.output_tokens,
        cache_creation_input_tokens=usage.cache_creation_input_tokens or 0,
        cache_read_input_tokens=usage.cache_read_input_tokens or 0,
    )


class AnthropicClient:
    """The assistant model used by the orchestrator."""

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig
    rate_limiter: TokenBudgetLimiter

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        api_key = api_key or get_settings().anthropic_api_key
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.config = config or AnthropicConfig()
        # SDK retries are off so that retry-after on 429 is under our control
        self.client = AsyncAnthropic(api_key=api_key, timeout=self.config.timeout_seconds, max_retries=0)
        self.rate_limiter = TokenBudgetLimiter(identifier="anthropic")

        try:
            # gpt-4's encoding is a close enough estimate for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception as e:
            logger.warning(f"Tokenizer unavailable, estimating from characters: {e}")
            self.tokenizer = None

    async def create_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        tools: list[ToolDescriptor] | None = None,
        tool_choice: dict[str, Any] | None = None,
        max_tokens: int | None = None,
        **kwargs,
    ) -> LLMResponse:
        """Send one round of the conversation to Claude.

        Args:
            messages: Transcript so far; truncated from the oldest turn if too long
            system_prompt: Sent as the request's ``system`` field when given
            tools: Tools the model may call this round
            tool_choice: Defaults to ``{"type": "auto"}``; ``{"type": "none"}`` forces text
            max_tokens: Response budget, defaulting to the configured one
            **kwargs: ``model`` or ``temperature`` overrides

        Raises:
            OperationTimeout: The call kept timing out
            anthropic.APIError: Any other failure once retries are spent
        """
        system_prompt = system_prompt or ""
        api_tools = self._api_tools(tools)
        transcript = self.truncate_conversation(messages, system_prompt, api_tools)

        await self.rate_limiter.check_rate_limit(self._estimate_request_tokens(transcript, system_prompt))

        params: dict[str, Any] = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": max_tokens or self.config.max_tokens,
            "temperature": kwargs.get("temperature", self.config.temperature),
            "messages": [message.model_dump(exclude_none=True) for message in transcript],
        }
        if system_prompt:
            params["system"] = system_prompt
        if api_tools:
            params["tools"] = [tool.model_dump(exclude_none=True) for tool in api_tools]
            params["tool_choice"] = tool_choice or {"type": "auto"}

        logger.debug(f"Calling {params['model']} with {len(transcript)} messages and {len(api_tools)} tools")
        response: Message = await self._with_retries(lambda: self.client.messages.create(**params))
        logger.debug(f"Stop reason {response.stop_reason}, {len(response.content)} content blocks")

        return LLMResponse(
            content=self._to_blocks(response.content),
            stop_reason=response.stop_reason,
            usage=_usage(response.usage),
            model=response.model,
        )

    def _api_tools(self, tools: list[ToolDescriptor] | None) -> list[AnthropicTool]:
        api_tools = [AnthropicTool.from_descriptor(tool) for tool in tools or []]
        if api_tools:
            # A marker on the last tool caches the whole tool prefix
            api_tools[-1].cache_control = CacheControl()
        return api_tools

    def _to_blocks(self, content: list[AnthropicContentBlock]) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        for block in content:
            data = block.model_dump()
            block_type = BLOCK_TYPES.get(data.get("type", ""))
            if block_type is None:
                logger.warning(f"Skipping unsupported content block type: {data.get('type')}")
                continue
            blocks.append(block_type.model_validate(data))
        return blocks

    def _retry_delay(self, error: Exception, attempt: int) -> float | None:
        """Seconds to wait before retrying ``error``, or None when it should be raised."""
        backoff = self.config.retry_delay * (2**attempt)
        if isinstance(error, APIConnectionError):
            # Includes APITimeoutError
            return backoff
        if isinstance(error, APIStatusError):
            if error.status_code == 429:
                retry_after = self._retry_after(error)
                return retry_after if retry_after <= self.config.max_retry_after_seconds else None
            if error.status_code >= 500:
                return backoff
        return None

    async def _with_retries[T](self, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await call()
            except (APIConnectionError, APIStatusError) as e:
                delay = self._retry_delay(e, attempt)
                attempt += 1
                if delay is not None and attempt < self.config.max_retries:
                    logger.warning(f"Anthropic call failed ({type(e).__name__}), retry {attempt} in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue
                if isinstance(e, APITimeoutError):
                    raise OperationTimeout(f"Model call timed out after {self.config.timeout_seconds:.0f}s") from e
                raise

    @staticmethod
    def _retry_after(error: APIStatusError) -> float:
        header = error.response.headers.get("retry-after") if error.response is not None else None
        try:
            return float(header) if header is not None else DEFAULT_RETRY_AFTER
        except ValueError:
            return DEFAULT_RETRY_AFTER

    def estimate_message_tokens(self, message: str) -> int:
        if self.tokenizer is None:
            return len(message) // 4
        return len(self.tokenizer.encode(message, disallowed_special=()))

    def _estimate_request_tokens(self, messages: list[LLMMessage], system_prompt: str) -> int:
        return self.estimate_message_tokens(system_prompt + "".join(_message_text(m) for m in messages))

    def validate_message_tokens(self, message: str) -> None:
        """Reject a single user message that is over the per-message budget.

        Raises:
            ValueError: If the message is too long
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise ValueError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit"
            )

    def truncate_conversation(
        self, messages: list[LLMMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[LLMMessage]:
        """Keep the newest turns that fit the context budget.

        The kept transcript always opens with a plain user turn, so a tool result is
        never separated from the call it answers. When not even one turn fits, the
        latest plain user turn is sent alone and the API gets the final say.
        """
        if not messages:
            return messages

        budget = self.config.max_conversation_tokens - self.config.token_headroom
        budget -= self.estimate_message_tokens(system_prompt)
        if tools:
            budget -= self.estimate_message_tokens("".join(t.name + t.description + str(t.input_schema) for t in tools))

        kept: list[LLMMessage] = []
        used = 0
        for message in reversed(messages):
            cost = self.estimate_message_tokens(_message_text(message))
            if used + cost > budget:
                break
            kept.append(message)
            used += cost
        kept.reverse()

        while kept and not _opens_transcript(kept[0]):
            kept.pop(0)

        if not kept:
            openers = [message for message in messages if _opens_transcript(message)]
            kept = openers[-1:] or messages[-1:]

        if len(kept) < len(messages):
            logger.warning(f"Truncated conversation from {len(messages)} to {len(kept)} messages (budget {budget})")
        return kept


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client() -> AnthropicClient:
    global _anthropic_client
    if _anthropic_client is None:
        settings = get_settings()
        _anthropic_client = AnthropicClient(
            api_key=settings.anthropic_api_key,
            config=AnthropicConfig(model=settings.anthropic_model, timeout_seconds=settings.model_timeout_seconds),
        )
    return _anthropic_client

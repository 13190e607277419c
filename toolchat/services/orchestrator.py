"""The tool-calling conversation loop shared by every chat mode."""

import asyncio
import json
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any, Protocol

from toolchat.errors import ConversationCancelled, OrchestrationLimitExceeded
from toolchat.models.attachments import MessageAttachments
from toolchat.models.llm import LLMMessage, LLMResponse, LLMUsage, ToolResultBlock
from toolchat.models.messages import ConversationMessage
from toolchat.models.tools import ToolDescriptor, ToolFailure, ToolInvocationRequest
from toolchat.services.transcript import Transcript
from toolchat.tools.base import ToolContext
from toolchat.tools.executor import ToolExecutor
from toolchat.tools.registry import ToolSet
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ROUNDS = 8

AUTO_TOOL_CHOICE = {"type": "auto"}
NO_TOOL_CHOICE = {"type": "none"}


class AssistantModel(Protocol):
    """What the orchestrator needs from the model client."""

    async def create_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        tools: list[ToolDescriptor] | None = None,
        tool_choice: dict[str, Any] | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse: ...


def date_context_prompt(now: datetime) -> str:
    """Instructions pinning relative dates to the user's calendar day."""
    today = now.date().isoformat()
    tomorrow = (now + timedelta(days=1)).date().isoformat()
    next_week = (now + timedelta(days=7)).date().isoformat()
    return (
        f"Today's date is {today} ({now:%A}) and the current time is {now:%H:%M} in {now.tzname()}. "
        f"Tomorrow's date is {tomorrow}.\n"
        "When creating or updating calendar events, always use current or future dates.\n"
        f'For references like "tomorrow", use {tomorrow}.\n'
        f'For references like "next week", use dates that are 7 days from today (e.g., {next_week}).\n'
        "Always format dates in ISO format (YYYY-MM-DD) with times in 24-hour format.\n"
        "Examples:\n"
        f'- "tomorrow at 2pm" should be "{tomorrow}T14:00:00"\n'
        f'- "today at 5pm" should be "{today}T17:00:00"\n'
        "Never use dates from the past when creating calendar events."
    )


class ConversationOrchestrator:
    """Drives the model through tool rounds until it answers in text.

    One instance serves every chat mode; the ``ToolSet`` passed to ``converse``
    decides which tools are offered, whether the date context is sent and
    whether the model may chain tool calls across rounds.
    """

    def __init__(self, model: AssistantModel, executor: ToolExecutor, max_rounds: int = DEFAULT_MAX_ROUNDS):
        self.model = model
        self.executor = executor
        self.max_rounds = max_rounds

    @staticmethod
    def _check_cancelled(cancellation: asyncio.Event | None) -> None:
        if cancellation is not None and cancellation.is_set():
            raise ConversationCancelled("The conversation was cancelled")

    async def converse(
        self,
        history: Sequence[ConversationMessage],
        tool_set: ToolSet,
        max_tokens: int = 1024,
        *,
        context: ToolContext,
        cancellation: asyncio.Event | None = None,
    ) -> ConversationMessage:
        """Run one exchange and return the assistant's reply.

        ``history`` is never modified. Tool failures that end the exchange come
        back as an ordinary assistant message.

        Raises:
            OrchestrationLimitExceeded: the model still wanted tools after ``max_rounds`` calls
            ConversationCancelled: ``cancellation`` was set between steps
        """
        transcript = Transcript(history)
        descriptors = self.executor.registry.descriptors(tool_set)
        system_prompt = date_context_prompt(context.now()) if tool_set.date_context else None
        tool_choice = AUTO_TOOL_CHOICE

        attachments = MessageAttachments()
        usage = LLMUsage()
        fallback_text: str | None = None

        logger.info(
            f"Starting {tool_set.name} conversation with {len(transcript)} messages and {len(descriptors)} tools"
        )

        for round_number in range(1, self.max_rounds + 1):
            self._check_cancelled(cancellation)
            logger.debug(f"Round {round_number}/{self.max_rounds}")

            response = await self.model.create_message(
                messages=transcript.messages,
                system_prompt=system_prompt,
                tools=descriptors or None,
                tool_choice=tool_choice if descriptors else None,
                max_tokens=max_tokens,
            )
            usage.add(response.usage)

            tool_uses = response.tool_uses
            # Single-round sets get exactly one follow-up, answered in text
            if not tool_uses or (not tool_set.multi_round and round_number > 1):
                return self._finish(response.text or fallback_text or "", attachments, usage, round_number)

            if round_number == self.max_rounds:
                break

            logger.info(f"Model requested {len(tool_uses)} tool call(s) in round {round_number}")
            results: list[ToolResultBlock] = []
            notes: list[str] = []
            for tool_use in tool_uses:
                self._check_cancelled(cancellation)
                outcome = await self.executor.execute(
                    ToolInvocationRequest(id=tool_use.id, name=tool_use.name, parameters=tool_use.input),
                    tool_set,
                    context,
                )

                if isinstance(outcome, ToolFailure):
                    if outcome.ends_exchange:
                        logger.info(f"Tool {tool_use.name} failure ends the exchange ({outcome.error_kind})")
                        return self._finish(outcome.reply, attachments, usage, round_number)
                    results.append(
                        ToolResultBlock(tool_use_id=tool_use.id, content=f"Error: {outcome.message}", is_error=True)
                    )
                    continue

                attachments.merge(outcome.attachments)
                fallback_text = outcome.fallback_text
                results.append(
                    ToolResultBlock(tool_use_id=tool_use.id, content=json.dumps(outcome.payload, default=str))
                )
                if outcome.display_text not in notes:
                    notes.append(outcome.display_text)

            transcript.add_tool_round(response.content, results, notes)
            if not tool_set.multi_round:
                tool_choice = NO_TOOL_CHOICE

        logger.warning(f"{tool_set.name} conversation exceeded {self.max_rounds} rounds")
        raise OrchestrationLimitExceeded(f"The assistant did not finish within {self.max_rounds} rounds")

    def _finish(
        self, text: str, attachments: MessageAttachments, usage: LLMUsage, rounds: int
    ) -> ConversationMessage:
        logger.info(
            f"Conversation completed in {rounds} round(s) - Input: {usage.input_tokens}, "
            f"Output: {usage.output_tokens}, Cache hit rate: {usage.cache_hit_rate:.1f}%"
        )
        return ConversationMessage.assistant(text, attachments)

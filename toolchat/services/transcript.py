"""Append-only model transcript for one orchestration call."""

from collections.abc import Sequence

from toolchat.models.llm import ContentBlock, LLMMessage, TextBlock, ToolResultBlock
from toolchat.models.messages import ConversationMessage


class Transcript:
    """Messages sent to the model during one ``converse`` call.

    Starts as a copy of the caller's history; each tool round appends an
    assistant turn with the tool calls followed by a user turn with their
    results. Nothing is ever removed or reordered.
    """

    def __init__(self, history: Sequence[ConversationMessage]):
        self._messages: list[LLMMessage] = [LLMMessage(role=msg.role, content=msg.content) for msg in history]

    @property
    def messages(self) -> list[LLMMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add_tool_round(
        self,
        assistant_content: Sequence[ContentBlock],
        results: Sequence[ToolResultBlock],
        notes: Sequence[str] = (),
    ) -> None:
        """Record the model's tool calls and what came back.

        ``notes`` are plain-text hints appended after the results, guiding how
        the model should use them.
        """
        # The API rejects empty text blocks
        calls = [block for block in assistant_content if not (isinstance(block, TextBlock) and not block.text.strip())]
        self._messages.append(LLMMessage(role="assistant", content=calls))

        reply: list[ContentBlock] = list(results)
        reply.extend(TextBlock(text=note) for note in notes)
        self._messages.append(LLMMessage(role="user", content=reply))

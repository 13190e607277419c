"""Chat message model exchanged with the UI."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

from toolchat.models.attachments import MessageAttachments


class ConversationMessage(BaseModel):
    """A message in a conversation, as held by the caller."""

    model_config = ConfigDict(populate_by_name=True)

    role: Literal["user", "assistant"]
    content: str
    id: str | None = None
    attachments: MessageAttachments | None = None

    @classmethod
    def assistant(cls, content: str, attachments: MessageAttachments | None = None) -> "ConversationMessage":
        """Build an assistant reply, dropping empty attachments."""
        if attachments is not None and attachments.is_empty():
            attachments = None
        return cls(role="assistant", content=content, attachments=attachments)

"""Request and response envelopes for the HTTP API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from toolchat.models.messages import ConversationMessage


class ChatRequest(BaseModel):
    """Request body shared by every chat endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ConversationMessage] = Field(default_factory=list)
    max_tokens: int = Field(default=1024, alias="maxTokens", ge=1, le=8192)
    web_search_enabled: bool = Field(default=False, alias="webSearchEnabled")


class ChatResponse(BaseModel):
    """Successful chat response."""

    success: bool = True
    data: ConversationMessage
    meta: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Error body returned with non-2xx statuses."""

    success: bool = False
    error: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str

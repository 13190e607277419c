"""Error taxonomy shared by tools, backends and the orchestrator."""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Failure categories surfaced to the orchestrator and the HTTP layer."""

    INVALID_REQUEST = "InvalidRequest"
    INVALID_TOOL_CALL = "InvalidToolCall"
    AUTHENTICATION_REQUIRED = "AuthenticationRequired"
    NOT_FOUND = "NotFound"
    BACKEND_UNAVAILABLE = "BackendUnavailable"
    TIMEOUT = "Timeout"
    ORCHESTRATION_LIMIT_EXCEEDED = "OrchestrationLimitExceeded"
    CANCELLED = "Cancelled"
    CHAT_FAILURE = "ChatFailure"


class ToolChatError(Exception):
    """Base class for all errors raised by the service."""

    kind: ErrorKind = ErrorKind.CHAT_FAILURE

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidRequest(ToolChatError):
    """Malformed caller input, rejected before any model call."""

    kind = ErrorKind.INVALID_REQUEST


class InvalidToolCall(ToolChatError):
    """The model asked for an unknown tool or passed unusable parameters."""

    kind = ErrorKind.INVALID_TOOL_CALL


class AuthenticationRequired(ToolChatError):
    """A backend needs user credentials that are absent or expired."""

    kind = ErrorKind.AUTHENTICATION_REQUIRED

    def __init__(self, message: str = "Authentication required", service: str = "Google Calendar"):
        self.service = service
        super().__init__(message)


class NotFound(ToolChatError):
    """A referenced resource does not exist.

    ``description`` is the free text the lookup was based on, when there was one.
    """

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, description: str | None = None):
        self.description = description
        super().__init__(message)


class BackendUnavailable(ToolChatError):
    """An external backend failed or could not be reached."""

    kind = ErrorKind.BACKEND_UNAVAILABLE


class OperationTimeout(BackendUnavailable):
    """An outbound call exceeded its time budget."""

    kind = ErrorKind.TIMEOUT


class OrchestrationLimitExceeded(ToolChatError):
    """The model kept requesting tools past the round cap."""

    kind = ErrorKind.ORCHESTRATION_LIMIT_EXCEEDED


class ConversationCancelled(ToolChatError):
    """The caller abandoned the exchange."""

    kind = ErrorKind.CANCELLED


class ChatFailure(ToolChatError):
    """Unexpected failure while talking to the assistant model."""

    kind = ErrorKind.CHAT_FAILURE

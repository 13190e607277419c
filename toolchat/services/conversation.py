"""Conversation service: request validation, per-request wiring and error policy."""

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime
from zoneinfo import ZoneInfo

from toolchat.clients.exa import ExaSearchClient
from toolchat.clients.google_calendar import GoogleCalendarBackend
from toolchat.clients.openai_images import ImageBackend, OpenAIImageClient
from toolchat.clients.search import SearchBackend
from toolchat.clients.tavily import TavilySearchClient
from toolchat.config import Settings, get_settings
from toolchat.errors import (
    ChatFailure,
    ConversationCancelled,
    InvalidRequest,
    NotFound,
    OrchestrationLimitExceeded,
)
from toolchat.models.calendar import CalendarEvent
from toolchat.models.messages import ConversationMessage
from toolchat.models.session import UserIdentity
from toolchat.services.calendar_backend import CalendarBackend, InMemoryCalendarBackend
from toolchat.services.client_cache import CalendarClientCache
from toolchat.services.orchestrator import AssistantModel, ConversationOrchestrator
from toolchat.tools.base import ToolContext
from toolchat.tools.calendar import LOOKUP_MAX_RESULTS, LOOKUP_WINDOW_DAYS
from toolchat.tools.executor import ToolExecutor
from toolchat.tools.registry import ToolSet, ToolsRegistry, get_tools_registry
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

LIMIT_EXCEEDED_REPLY = (
    "I'm sorry, that request needed more steps than I can take at once. "
    "Please simplify your request or split it into smaller ones."
)


def default_calendar_factory(settings: Settings) -> Callable[[UserIdentity], CalendarBackend]:
    """Build per-user calendar backends according to ``CALENDAR_BACKEND``."""
    if settings.uses_memory_calendar:
        return lambda identity: InMemoryCalendarBackend()

    def build_google_backend(identity: UserIdentity) -> CalendarBackend:
        return GoogleCalendarBackend(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            refresh_token=identity.refresh_token or "",
            access_token=identity.access_token,
            calendar_id=identity.email,
            default_time_zone=settings.default_time_zone,
            timeout_seconds=settings.tool_timeout_seconds,
        )

    return build_google_backend


class ConversationService:
    """Entry point for every chat mode and for direct calendar access."""

    def __init__(
        self,
        model: AssistantModel,
        settings: Settings | None = None,
        registry: ToolsRegistry | None = None,
        search_backends: dict[str, SearchBackend] | None = None,
        image_backend: ImageBackend | None = None,
        calendar_cache: CalendarClientCache | None = None,
        clock: Callable[[ZoneInfo], datetime] = datetime.now,
    ):
        self.settings = settings or get_settings()
        self.model = model
        self.registry = registry or get_tools_registry()
        self.time_zone = ZoneInfo(self.settings.default_time_zone)
        self.clock = clock

        if search_backends is None:
            search_backends = {
                "exa_search": ExaSearchClient(
                    self.settings.exa_api_key, timeout_seconds=self.settings.tool_timeout_seconds
                ),
                "tavily_search": TavilySearchClient(
                    self.settings.tavily_api_key, timeout_seconds=self.settings.tool_timeout_seconds
                ),
            }
        self.search_backends = search_backends
        self.image_backend = image_backend or OpenAIImageClient(
            self.settings.openai_api_key, timeout_seconds=self.settings.model_timeout_seconds
        )
        self.calendar_cache = calendar_cache or CalendarClientCache(
            default_calendar_factory(self.settings), ttl_minutes=self.settings.client_cache_ttl_minutes
        )

        executor = ToolExecutor(self.registry, timeout_seconds=self.settings.tool_timeout_seconds * 2)
        self.orchestrator = ConversationOrchestrator(model, executor, max_rounds=self.settings.max_tool_rounds)

        missing = self.settings.missing_env_vars
        if missing:
            logger.warning(f"Missing configuration, dependent tools will degrade: {', '.join(missing)}")

    def tool_context(self, identity: UserIdentity | None) -> ToolContext:
        """Collaborators for one request; the calendar is resolved lazily on first use."""
        calendar_provider = None
        if identity is not None:
            calendar_provider = lambda: self.calendar_cache.get(identity)  # noqa: E731

        return ToolContext(
            time_zone=self.time_zone,
            search_backends=self.search_backends,
            image_backend=self.image_backend,
            calendar_provider=calendar_provider,
            clock=self.clock,
            search_timeout_seconds=self.settings.tool_timeout_seconds,
        )

    def _validate_history(self, history: Sequence[ConversationMessage]) -> None:
        if not history:
            raise InvalidRequest("Messages are required")

        last = history[-1]
        if last.role != "user":
            raise InvalidRequest("The last message must come from the user")
        if not last.content.strip():
            raise InvalidRequest("The last message must not be empty")

        validate_tokens = getattr(self.model, "validate_message_tokens", None)
        if validate_tokens is not None:
            try:
                validate_tokens(last.content)
            except ValueError as e:
                raise InvalidRequest(str(e)) from e

    async def chat(
        self,
        history: Sequence[ConversationMessage],
        tool_set: ToolSet,
        max_tokens: int = 1024,
        identity: UserIdentity | None = None,
        cancellation: asyncio.Event | None = None,
    ) -> ConversationMessage:
        """Answer the last user message using the tools in ``tool_set``.

        Args:
            history: Conversation so far, ending with the user's message
            tool_set: Tools offered for this exchange
            max_tokens: Response budget per model call
            identity: Signed-in user, required for calendar tools
            cancellation: Set to abandon the exchange between steps

        Returns:
            The assistant's reply with any attachments

        Raises:
            InvalidRequest: malformed history
            ConversationCancelled: the caller gave up
            ChatFailure: the model or an unexpected error failed the exchange
        """
        self._validate_history(history)
        logger.info(
            f"Processing {tool_set.name} chat with {len(history)} messages"
            + (f" for {identity.email}" if identity else "")
        )

        try:
            return await self.orchestrator.converse(
                history,
                tool_set,
                max_tokens,
                context=self.tool_context(identity),
                cancellation=cancellation,
            )
        except OrchestrationLimitExceeded as e:
            logger.warning(f"{tool_set.name} chat hit the round limit: {e.message}")
            return ConversationMessage.assistant(LIMIT_EXCEEDED_REPLY)
        except (InvalidRequest, ConversationCancelled):
            raise
        except Exception as e:
            logger.error(f"Claude chat with {tool_set.label} tools failed: {e}", exc_info=True)
            raise ChatFailure(f"Claude chat with {tool_set.label} tools failed: {e}") from e

    def calendar_for(self, identity: UserIdentity) -> CalendarBackend:
        return self.calendar_cache.get(identity)

    async def find_event(self, identity: UserIdentity, event_id: str) -> CalendarEvent:
        """Look an event up by id among the user's upcoming events.

        Raises:
            NotFound: no upcoming event has that id
        """
        events = await self.calendar_for(identity).list_events(LOOKUP_WINDOW_DAYS, LOOKUP_MAX_RESULTS)
        for event in events:
            if event.id == event_id:
                return event
        raise NotFound(f"Event with ID {event_id} not found")

    def sign_out(self, identity: UserIdentity | str) -> bool:
        return self.calendar_cache.evict(identity)


_conversation_service: ConversationService | None = None


def get_conversation_service() -> ConversationService:
    """Get or create the conversation service instance."""
    global _conversation_service
    if _conversation_service is None:
        from toolchat.clients.anthropic import get_anthropic_client

        _conversation_service = ConversationService(model=get_anthropic_client())
    return _conversation_service

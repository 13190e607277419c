"""API endpoints for the tool-calling chat service."""

from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from toolchat import __version__
from toolchat.errors import AuthenticationRequired, InvalidRequest, NotFound, ToolChatError
from toolchat.models.calendar import CalendarEvent
from toolchat.models.conversation import ChatRequest, ChatResponse, ErrorResponse, HealthResponse
from toolchat.models.session import UserIdentity
from toolchat.services.conversation import ConversationService, get_conversation_service
from toolchat.tools.registry import CALENDAR, EXA_SEARCH, IMAGE_SEARCH, TAVILY_SEARCH, ToolSet, search_toggle
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

ServiceDep = Annotated[ConversationService, Depends(get_conversation_service)]


def get_identity(
    x_user_email: Annotated[str | None, Header()] = None,
    x_google_refresh_token: Annotated[str | None, Header()] = None,
    x_google_access_token: Annotated[str | None, Header()] = None,
) -> UserIdentity | None:
    """Identity forwarded by the authenticating front end, if any."""
    if not x_user_email:
        return None
    return UserIdentity(
        email=x_user_email,
        refresh_token=x_google_refresh_token,
        access_token=x_google_access_token,
    )


def require_identity(identity: Annotated[UserIdentity | None, Depends(get_identity)]) -> UserIdentity:
    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity


IdentityDep = Annotated[UserIdentity, Depends(require_identity)]


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


async def _chat(
    service: ConversationService,
    request: ChatRequest,
    tool_set: ToolSet,
    identity: UserIdentity | None = None,
    **meta: Any,
) -> ChatResponse:
    logger.info(f"Processing {tool_set.name} request with {len(request.messages)} messages")
    reply = await service.chat(request.messages, tool_set, request.max_tokens, identity=identity)
    return ChatResponse(data=reply, meta={"messageCount": len(request.messages), **meta})


@router.post("/chat", response_model=ChatResponse, tags=["Chat"])
async def chat_exa(request: ChatRequest, service: ServiceDep) -> ChatResponse:
    """Chat with Exa web search available."""
    response = await _chat(service, request, EXA_SEARCH)
    response.meta["hasSearchResults"] = bool(response.data.attachments and response.data.attachments.search_results)
    return response


@router.post("/chat-tavily", response_model=ChatResponse, tags=["Chat"])
async def chat_tavily(request: ChatRequest, service: ServiceDep) -> ChatResponse:
    """Chat with Tavily web search available."""
    response = await _chat(service, request, TAVILY_SEARCH)
    response.meta["hasSearchResults"] = bool(response.data.attachments and response.data.attachments.search_results)
    return response


@router.post("/chat-toggle", response_model=ChatResponse, tags=["Chat"])
async def chat_toggle(request: ChatRequest, service: ServiceDep) -> ChatResponse:
    """Chat with Tavily search only when the user switched web search on."""
    response = await _chat(
        service, request, search_toggle(request.web_search_enabled), webSearchEnabled=request.web_search_enabled
    )
    response.meta["hasSearchResults"] = bool(response.data.attachments and response.data.attachments.search_results)
    return response


@router.post("/chat-image-search", response_model=ChatResponse, tags=["Chat"])
async def chat_image_search(request: ChatRequest, service: ServiceDep) -> ChatResponse:
    """Chat with image generation and web search, chained across rounds."""
    response = await _chat(service, request, IMAGE_SEARCH)
    attachments = response.data.attachments
    response.meta["hasSearchResults"] = bool(attachments and attachments.search_results)
    response.meta["hasGeneratedImages"] = bool(attachments and attachments.generated_images)
    return response


@router.post("/chat-calendar", response_model=ChatResponse, tags=["Chat"])
async def chat_calendar(request: ChatRequest, service: ServiceDep, identity: IdentityDep) -> ChatResponse:
    """Chat with the signed-in user's calendar."""
    logger.info(f"Calendar chat for {identity.as_dict()}")
    response = await _chat(service, request, CALENDAR, identity=identity)
    response.meta["hasCalendarEvents"] = bool(
        response.data.attachments and response.data.attachments.calendar_events
    )
    return response


@router.get("/calendar/events", tags=["Calendar"])
async def list_events(
    service: ServiceDep,
    identity: IdentityDep,
    days: Annotated[int, Query(ge=1)] = 7,
    max_results: Annotated[int, Query(alias="maxResults", ge=1)] = 10,
) -> dict[str, Any]:
    events = await service.calendar_for(identity).list_events(days, max_results)
    return {"success": True, "data": [event.to_wire() for event in events]}


@router.post("/calendar/events", tags=["Calendar"])
async def create_event(event: CalendarEvent, service: ServiceDep, identity: IdentityDep) -> dict[str, Any]:
    created = await service.calendar_for(identity).create_event(event.model_copy(update={"id": None}))
    logger.info(f"Event created successfully: {created.id} {created.summary!r}")
    return {"success": True, "data": created.to_wire()}


@router.get("/calendar/events/{event_id}", tags=["Calendar"])
async def get_event(event_id: str, service: ServiceDep, identity: IdentityDep) -> dict[str, Any]:
    """Find an event among the next 30 days of the user's calendar."""
    event = await service.find_event(identity, event_id)
    return {"success": True, "data": event.to_wire()}


@router.put("/calendar/events/{event_id}", tags=["Calendar"])
async def update_event(
    event_id: str, event: CalendarEvent, service: ServiceDep, identity: IdentityDep
) -> dict[str, Any]:
    updated = await service.calendar_for(identity).update_event(event_id, event)
    logger.info(f"Event updated successfully: {updated.id} {updated.summary!r}")
    return {"success": True, "data": updated.to_wire()}


@router.delete("/calendar/events/{event_id}", tags=["Calendar"])
async def delete_event(event_id: str, service: ServiceDep, identity: IdentityDep) -> dict[str, Any]:
    await service.calendar_for(identity).delete_event(event_id)
    logger.info(f"Event deleted successfully: {event_id}")
    return {"success": True, "message": f"Event {event_id} deleted successfully"}


@router.post("/auth/sign-out", tags=["Auth"])
async def sign_out(service: ServiceDep, identity: IdentityDep) -> dict[str, Any]:
    """Forget the user's cached calendar client."""
    removed = service.sign_out(identity)
    return {"success": True, "data": {"evicted": removed}}


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return error_response(400, "Invalid request")


async def _service_error(request: Request, exc: ToolChatError) -> JSONResponse:
    if isinstance(exc, InvalidRequest):
        logger.warning(f"Rejected request to {request.url.path}: {exc.message}")
        return error_response(400, exc.message)
    if isinstance(exc, AuthenticationRequired):
        return error_response(401, "Authentication required")
    if isinstance(exc, NotFound):
        return error_response(404, exc.message)

    logger.error(f"Request to {request.url.path} failed: {exc.message}")
    return error_response(500, exc.message)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return error_response(500, str(exc) or "Internal server error")


def install_error_handlers(app: FastAPI) -> None:
    """Render every failure as ``{success: false, error}``."""
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(ToolChatError, _service_error)
    app.add_exception_handler(Exception, _unexpected_error)

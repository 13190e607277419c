"""Calendar tools: list, create, update and delete events."""

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field

from toolchat.errors import InvalidToolCall, NotFound
from toolchat.models.attachments import MessageAttachments
from toolchat.models.calendar import CalendarEvent, EventDateTime, ReminderOverride, Reminders
from toolchat.models.tools import ToolOutcome
from toolchat.services.calendar_backend import CalendarBackend
from toolchat.services.date_resolver import (
    DEFAULT_DURATION_MINUTES,
    calculate_end_time,
    format_for_calendar,
    is_duration_phrase,
    parse_natural_duration,
    resolve_phrase,
    split_date_and_time,
    try_parse_iso_date,
)
from toolchat.services.event_matcher import EventMatcher, MatchCriteria
from toolchat.tools.base import ToolContext, ToolDefinition
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

# Window searched when an event is referenced by id or description
LOOKUP_WINDOW_DAYS = 30
LOOKUP_MAX_RESULTS = 100


class ListEventsInput(BaseModel):
    """Input schema for list_calendar_events."""

    model_config = ConfigDict(extra="ignore")

    days: int = Field(default=7, ge=1, le=365, description="Number of days to look ahead (default: 7)")
    max_results: int = Field(
        default=10, ge=1, le=250, description="Maximum number of events to return (default: 10)"
    )


class CreateEventInput(BaseModel):
    """Input schema for create_calendar_event."""

    model_config = ConfigDict(extra="ignore")

    summary: str = Field(..., min_length=1, description="Title of the event")
    start_time: str = Field(
        ...,
        description=(
            "Start time of the event in ISO format (e.g., '2025-03-05T09:00:00') or a phrase like 'tomorrow at 2pm'"
        ),
    )
    end_time: str = Field(
        ...,
        description=(
            "End time of the event in ISO format (e.g., '2025-03-05T10:00:00'), a time, or a duration like '1 hour'"
        ),
    )
    description: str | None = Field(default=None, description="Description or details of the event")
    location: str | None = Field(default=None, description="Location of the event")
    time_zone: str | None = Field(default=None, description="Time zone for the event (default: 'Asia/Kolkata')")
    reminders: list[ReminderOverride] | None = Field(default=None, description="Reminders for the event")


class UpdateEventInput(BaseModel):
    """Input schema for update_calendar_event. Omitted fields keep their current value."""

    model_config = ConfigDict(extra="ignore")

    event_id: str | None = Field(default=None, description="ID of the event to update")
    event_description: str | None = Field(
        default=None,
        description="Description of the event to update when the ID is unknown (e.g., 'team meeting on friday')",
    )
    match_criteria: MatchCriteria | None = Field(
        default=None, description="How to match event_description: 'title', 'datetime' or 'all' (default: 'all')"
    )
    summary: str | None = Field(default=None, description="Updated title of the event")
    description: str | None = Field(default=None, description="Updated description or details of the event")
    location: str | None = Field(default=None, description="Updated location of the event")
    start_time: str | None = Field(default=None, description="Updated start time of the event in ISO format")
    end_time: str | None = Field(default=None, description="Updated end time of the event in ISO format")
    time_zone: str | None = Field(default=None, description="Updated time zone for the event")
    reminders: list[ReminderOverride] | None = Field(default=None, description="Updated reminders for the event")


class DeleteEventInput(BaseModel):
    """Input schema for delete_calendar_event."""

    model_config = ConfigDict(extra="ignore")

    event_id: str | None = Field(default=None, description="ID of the event to delete")
    description: str | None = Field(
        default=None, description="Description of the event to delete when the ID is unknown"
    )
    match_criteria: MatchCriteria | None = Field(
        default=None, description="How to match the description: 'title', 'datetime' or 'all' (default: 'all')"
    )


def event_zone(name: str | None, default: ZoneInfo) -> ZoneInfo:
    if not name:
        return default
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidToolCall(f"Unknown time zone {name!r}; use an IANA name such as 'Asia/Kolkata'") from e


def _past_error(label: str, value: datetime, now: datetime) -> InvalidToolCall:
    return InvalidToolCall(
        f"{label} {format_for_calendar(value)} is in the past. Today is {now.date().isoformat()}; "
        "always use current or future dates."
    )


def resolve_start_time(text: str, now: datetime) -> datetime:
    """Resolve a start phrase, refusing instants before ``now``.

    A well-formed ISO timestamp in the past is re-read as natural language
    before giving up, since models sometimes emit a stale year.
    """
    iso = try_parse_iso_date(text, now.tzinfo)
    if iso is not None and iso >= now:
        return iso

    if iso is not None:
        logger.warning(f"Model provided a past start time {text!r} (now {format_for_calendar(now)})")
        resolved = resolve_phrase(text, now) if split_date_and_time(text) else None
        if resolved is None:
            raise _past_error("start_time", iso, now)
    else:
        resolved = resolve_phrase(text, now)
        if resolved is None:
            raise InvalidToolCall(
                f"Could not understand start_time {text!r}. Use ISO format such as "
                f"'{now.date().isoformat()}T14:00:00' or a phrase like 'tomorrow at 2pm'."
            )

    if resolved < now:
        raise _past_error("start_time", resolved, now)
    logger.info(f"Resolved start_time {text!r} to {format_for_calendar(resolved)}")
    return resolved


def resolve_end_time(text: str | None, start: datetime, now: datetime) -> datetime:
    """Resolve an end phrase relative to ``start``.

    Durations ("90 minutes", "2 hours") are added to the start; a bare time of
    day is applied to the start's date.
    """
    if not text or is_duration_phrase(text):
        minutes = parse_natural_duration(text) if text else DEFAULT_DURATION_MINUTES
        return calculate_end_time(start, minutes)

    iso = try_parse_iso_date(text, now.tzinfo)
    if iso is not None and iso > start:
        return iso

    resolved = resolve_phrase(text, now, anchor=start)
    if resolved is None:
        raise InvalidToolCall(
            f"Could not understand end_time {text!r}. "
            "Use ISO format, a time such as '3pm', or a duration like '1 hour'."
        )
    if resolved < now:
        raise _past_error("end_time", resolved, now)
    if resolved <= start:
        raise InvalidToolCall(
            f"end_time {format_for_calendar(resolved)} must be after start_time {format_for_calendar(start)}"
        )
    return resolved


def _event_time(value: datetime, zone: ZoneInfo) -> EventDateTime:
    return EventDateTime(date_time=format_for_calendar(value.astimezone(zone)), time_zone=zone.key)


async def find_target_event(
    calendar: CalendarBackend,
    matcher: EventMatcher,
    event_id: str | None,
    description: str | None,
    criteria: MatchCriteria | None,
) -> tuple[CalendarEvent, list[CalendarEvent]]:
    """Locate the event an update or delete refers to.

    Raises:
        InvalidToolCall: neither an id nor a description was given
        NotFound: nothing in the look-up window matches
    """
    if not event_id and not description:
        raise InvalidToolCall("Provide either event_id or a description of the event")

    events = await calendar.list_events(LOOKUP_WINDOW_DAYS, LOOKUP_MAX_RESULTS)
    logger.debug(f"Searching {len(events)} upcoming events for target")

    if event_id:
        for event in events:
            if event.id == event_id:
                return event, [event]
        raise NotFound(f"Event with ID {event_id} not found")

    return matcher.select(events, description, criteria or MatchCriteria.ALL)


async def list_events_handler(params: ListEventsInput, context: ToolContext) -> ToolOutcome:
    events = await context.calendar().list_events(params.days, params.max_results)
    logger.info(f"Listed {len(events)} events for the next {params.days} days")
    return ToolOutcome(
        payload=[event.to_wire() for event in events],
        display_text="Here are your upcoming calendar events. Please provide a summary of these events.",
        fallback_text="Here are your upcoming calendar events.",
        attachments=MessageAttachments(calendar_events=events),
    )


async def create_event_handler(params: CreateEventInput, context: ToolContext) -> ToolOutcome:
    zone = event_zone(params.time_zone, context.time_zone)
    now = context.now().astimezone(zone)

    calendar = context.calendar()
    start = resolve_start_time(params.start_time, now)
    end = resolve_end_time(params.end_time, start, now)

    event = CalendarEvent(
        summary=params.summary,
        description=params.description,
        location=params.location,
        start=_event_time(start, zone),
        end=_event_time(end, zone),
    )
    if params.reminders:
        event.reminders = Reminders(use_default=False, overrides=params.reminders)

    created = await calendar.create_event(event)
    logger.info(f"Created event {created.id}: {created.summary!r} at {created.start.date_time}")
    return ToolOutcome(
        payload=created.to_wire(),
        display_text="The event has been created successfully. Please provide a confirmation message.",
        fallback_text=f'Event "{params.summary}" has been created successfully.',
        attachments=MessageAttachments(calendar_events=[created]),
    )


async def update_event_handler(params: UpdateEventInput, context: ToolContext) -> ToolOutcome:
    calendar = context.calendar()
    existing, matched = await find_target_event(
        calendar, context.matcher, params.event_id, params.event_description, params.match_criteria
    )
    if len(matched) > 1:
        logger.info(f"Updating first of {len(matched)} matching events: {existing.id}")

    zone = event_zone(params.time_zone or existing.start.time_zone, context.time_zone)
    now = context.now().astimezone(zone)

    start = existing.starts_at
    end = existing.ends_at
    if params.start_time:
        start = resolve_start_time(params.start_time, now)
    if params.end_time:
        end = resolve_end_time(params.end_time, start, now)
    elif params.start_time:
        # Moving the start keeps the original length
        end = start + (existing.ends_at - existing.starts_at)

    retimed = bool(params.start_time or params.end_time or params.time_zone)
    reminders = existing.reminders
    if params.reminders:
        reminders = Reminders(use_default=False, overrides=params.reminders)

    updated = CalendarEvent(
        summary=params.summary or existing.summary,
        description=params.description if params.description is not None else existing.description,
        location=params.location if params.location is not None else existing.location,
        start=_event_time(start, zone) if retimed else existing.start,
        end=_event_time(end, zone) if retimed else existing.end,
        reminders=reminders,
    )

    result = await calendar.update_event(existing.id, updated)
    logger.info(f"Updated event {result.id}: {result.summary!r}")
    return ToolOutcome(
        payload=result.to_wire(),
        display_text="The event has been updated successfully. Please provide a confirmation message.",
        fallback_text=f'Event "{updated.summary}" has been updated successfully.',
        attachments=MessageAttachments(calendar_events=[result]),
    )


async def delete_event_handler(params: DeleteEventInput, context: ToolContext) -> ToolOutcome:
    calendar = context.calendar()

    target: CalendarEvent | None = None
    matched: list[CalendarEvent] = []
    event_id = params.event_id
    if not event_id:
        target, matched = await find_target_event(
            calendar, context.matcher, None, params.description, params.match_criteria
        )
        event_id = target.id

    success = await calendar.delete_event(event_id)
    logger.info(f"Deleted event {event_id}")

    if target is not None:
        display_text = f'The event "{target.summary}" has been deleted successfully.'
        fallback_text = f'Event "{target.summary}" has been deleted successfully.'
    else:
        display_text = "The event has been deleted successfully."
        fallback_text = "Event has been deleted successfully."

    return ToolOutcome(
        payload={
            "success": success,
            "eventId": event_id,
            "eventSummary": target.summary if target else None,
            "matchedEvents": len(matched),
        },
        display_text=f"{display_text} Please provide a confirmation message.",
        fallback_text=fallback_text,
    )


def create_list_events_tool() -> ToolDefinition:
    return ToolDefinition(
        name="list_calendar_events",
        description=(
            "List upcoming events from the user's Google Calendar. Returns a list of events with their details."
        ),
        input_schema_class=ListEventsInput,
        handler=list_events_handler,
        action="list your events",
    )


def create_create_event_tool() -> ToolDefinition:
    return ToolDefinition(
        name="create_calendar_event",
        description=(
            "Create a new event in the user's Google Calendar. "
            "Requires event details like summary, start time, and end time."
        ),
        input_schema_class=CreateEventInput,
        handler=create_event_handler,
        action="create this event",
    )


def create_update_event_tool() -> ToolDefinition:
    return ToolDefinition(
        name="update_calendar_event",
        description=(
            "Update an existing event in the user's Google Calendar. Identify the event by its ID, or by a "
            "description of it when the ID is unknown. Only the fields you provide are changed."
        ),
        input_schema_class=UpdateEventInput,
        handler=update_event_handler,
        action="update this event",
    )


def create_delete_event_tool() -> ToolDefinition:
    return ToolDefinition(
        name="delete_calendar_event",
        description=(
            "Delete an event from the user's Google Calendar. "
            "Identify the event by its ID, or by a description of it when the ID is unknown."
        ),
        input_schema_class=DeleteEventInput,
        handler=delete_event_handler,
        action="delete this event",
    )

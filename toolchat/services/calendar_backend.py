"""Calendar backend protocol and the process-local implementation."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from cuid2 import cuid_wrapper

from toolchat.errors import NotFound
from toolchat.models.calendar import CalendarEvent, Reminders
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class CalendarBackend(Protocol):
    """Operations the calendar tools need from a user's calendar.

    Implementations raise ``AuthenticationRequired`` when credentials are missing
    or expired and ``NotFound`` for unknown event ids.
    """

    async def list_events(self, days: int = 7, max_results: int = 10) -> list[CalendarEvent]: ...

    async def create_event(self, event: CalendarEvent) -> CalendarEvent: ...

    async def update_event(self, event_id: str, event: CalendarEvent) -> CalendarEvent: ...

    async def delete_event(self, event_id: str) -> bool: ...


class InMemoryCalendarBackend:
    """Calendar held in a dict, for development and tests."""

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self.events: dict[str, CalendarEvent] = {}
        self.clock = clock or (lambda: datetime.now(UTC))

    async def list_events(self, days: int = 7, max_results: int = 10) -> list[CalendarEvent]:
        """Events starting between now and ``days`` ahead, earliest first."""
        now = self.clock()
        horizon = now + timedelta(days=days)
        upcoming = [event for event in self.events.values() if now <= event.starts_at <= horizon]
        upcoming.sort(key=lambda event: event.starts_at)
        return [event.model_copy(deep=True) for event in upcoming[:max_results]]

    async def create_event(self, event: CalendarEvent) -> CalendarEvent:
        created = event.model_copy(deep=True, update={"id": cuid()})
        if created.reminders is None:
            created.reminders = Reminders(use_default=True)
        self.events[created.id] = created
        logger.info(f"Created event {created.id}: {created.summary!r}")
        return created.model_copy(deep=True)

    async def update_event(self, event_id: str, event: CalendarEvent) -> CalendarEvent:
        if event_id not in self.events:
            raise NotFound(f"Event with ID {event_id} not found")
        updated = event.model_copy(deep=True, update={"id": event_id})
        self.events[event_id] = updated
        logger.info(f"Updated event {event_id}")
        return updated.model_copy(deep=True)

    async def delete_event(self, event_id: str) -> bool:
        if self.events.pop(event_id, None) is None:
            raise NotFound(f"Event with ID {event_id} not found")
        logger.info(f"Deleted event {event_id}")
        return True

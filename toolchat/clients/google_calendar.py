"""Google Calendar v3 backend over the user's OAuth tokens."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from toolchat.errors import AuthenticationRequired, BackendUnavailable, NotFound, OperationTimeout
from toolchat.models.calendar import CalendarEvent, EventDateTime, ReminderOverride, Reminders
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = ["https://www.googleapis.com/auth/calendar"]


def _to_event_datetime(raw: dict[str, Any], default_tz: str) -> EventDateTime:
    """Map a Google start/end object; all-day events become midnight in their zone."""
    time_zone = raw.get("timeZone")
    if raw.get("dateTime"):
        return EventDateTime(date_time=raw["dateTime"], time_zone=time_zone)

    day = datetime.fromisoformat(raw["date"]).replace(tzinfo=ZoneInfo(time_zone or default_tz))
    return EventDateTime(date_time=day.isoformat(timespec="seconds"), time_zone=time_zone or default_tz)


def _to_calendar_event(raw: dict[str, Any], default_tz: str) -> CalendarEvent:
    reminders = None
    if raw.get("reminders"):
        reminders = Reminders(
            use_default=raw["reminders"].get("useDefault", True),
            overrides=[
                ReminderOverride(method=item.get("method", "popup"), minutes=item.get("minutes", 10))
                for item in raw["reminders"].get("overrides", [])
            ],
        )
    return CalendarEvent(
        id=raw.get("id"),
        summary=raw.get("summary") or "Untitled Event",
        description=raw.get("description"),
        location=raw.get("location"),
        start=_to_event_datetime(raw.get("start", {}), default_tz),
        end=_to_event_datetime(raw.get("end", {}), default_tz),
        reminders=reminders,
    )


def _request_body(event: CalendarEvent) -> dict[str, Any]:
    body = event.to_wire()
    body.pop("id", None)
    body.setdefault("reminders", {"useDefault": True})
    return body


class GoogleCalendarBackend:
    """One user's Google Calendar; ``calendar_id`` is their e-mail address.

    The client library is blocking, so every request runs in a worker thread
    under ``timeout_seconds``.
    """

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        refresh_token: str,
        access_token: str | None = None,
        calendar_id: str = "primary",
        default_time_zone: str = "UTC",
        timeout_seconds: float = 30.0,
    ):
        if not (client_id and client_secret and refresh_token):
            raise AuthenticationRequired(
                "Google Calendar client requires client id, client secret and refresh token"
            )

        self.calendar_id = calendar_id
        self.default_time_zone = default_time_zone
        self.timeout_seconds = timeout_seconds
        self.credentials = Credentials(
            token=access_token,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=client_id,
            client_secret=client_secret,
            scopes=SCOPES,
        )
        self.service = build("calendar", "v3", credentials=self.credentials, cache_discovery=False)

    async def _run[T](self, action: str, call: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(None, call), timeout=self.timeout_seconds)
        except TimeoutError as e:
            raise OperationTimeout(f"Google Calendar did not respond while trying to {action}") from e
        except RefreshError as e:
            logger.warning(f"Google token refresh failed for {self.calendar_id}: {e}")
            raise AuthenticationRequired("Authentication required: Google token expired or revoked") from e
        except HttpError as e:
            status = e.resp.status
            logger.error(f"Google Calendar error {status} while trying to {action}: {e}")
            if status == 401:
                raise AuthenticationRequired("Authentication required: Google rejected the credentials") from e
            if status in (404, 410):
                raise NotFound(f"Calendar resource not found while trying to {action}") from e
            raise BackendUnavailable(f"Failed to {action}: {e.reason}") from e

    async def list_events(self, days: int = 7, max_results: int = 10) -> list[CalendarEvent]:
        now = datetime.now(UTC)
        request = self.service.events().list(
            calendarId=self.calendar_id,
            timeMin=now.isoformat(),
            timeMax=(now + timedelta(days=days)).isoformat(),
            maxResults=max_results,
            singleEvents=True,
            orderBy="startTime",
        )
        response = await self._run("list calendar events", request.execute)
        events = [_to_calendar_event(item, self.default_time_zone) for item in response.get("items", [])]
        logger.info(f"Calendar returned {len(events)} events")
        return events

    async def create_event(self, event: CalendarEvent) -> CalendarEvent:
        request = self.service.events().insert(calendarId=self.calendar_id, body=_request_body(event))
        created = await self._run("create calendar event", request.execute)
        return _to_calendar_event(created, self.default_time_zone)

    async def update_event(self, event_id: str, event: CalendarEvent) -> CalendarEvent:
        request = self.service.events().update(
            calendarId=self.calendar_id, eventId=event_id, body=_request_body(event)
        )
        try:
            updated = await self._run("update calendar event", request.execute)
        except NotFound as e:
            raise NotFound(f"Event with ID {event_id} not found") from e
        return _to_calendar_event(updated, self.default_time_zone)

    async def delete_event(self, event_id: str) -> bool:
        request = self.service.events().delete(calendarId=self.calendar_id, eventId=event_id)
        try:
            await self._run("delete calendar event", request.execute)
        except NotFound as e:
            raise NotFound(f"Event with ID {event_id} not found") from e
        return True

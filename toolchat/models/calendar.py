"""Calendar event data models (Google Calendar wire shape)."""

from datetime import UTC, datetime
from typing import Any, Literal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EventDateTime(BaseModel):
    """Start or end instant of an event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_time: str = Field(..., alias="dateTime", description="ISO-8601 timestamp with offset")
    time_zone: str | None = Field(default=None, alias="timeZone")

    def as_datetime(self) -> datetime:
        """Parsed instant; a naive timestamp is read in ``time_zone`` (UTC if unset)."""
        value = datetime.fromisoformat(self.date_time)
        if value.tzinfo is None:
            value = value.replace(tzinfo=ZoneInfo(self.time_zone) if self.time_zone else UTC)
        return value


class ReminderOverride(BaseModel):
    """A single reminder replacing the calendar default."""

    method: Literal["popup", "email"] = Field(..., description="Method of reminder")
    minutes: int = Field(..., ge=0, description="Minutes before the event to send the reminder")


class Reminders(BaseModel):
    """Reminder policy for an event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    use_default: bool = Field(default=True, alias="useDefault")
    overrides: list[ReminderOverride] = Field(default_factory=list)


class CalendarEvent(BaseModel):
    """Calendar event; ``id`` is assigned by the backend on creation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    summary: str
    description: str | None = None
    location: str | None = None
    start: EventDateTime
    end: EventDateTime
    reminders: Reminders | None = None

    @model_validator(mode="after")
    def check_end_after_start(self) -> "CalendarEvent":
        if self.ends_at <= self.starts_at:
            raise ValueError("Event end must be after its start")
        return self

    @property
    def starts_at(self) -> datetime:
        return self.start.as_datetime()

    @property
    def ends_at(self) -> datetime:
        return self.end.as_datetime()

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)

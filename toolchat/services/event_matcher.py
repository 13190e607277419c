"""Resolve a free-text description to one of the user's calendar events."""

import re
from datetime import datetime, tzinfo
from enum import StrEnum

from toolchat.errors import NotFound
from toolchat.models.calendar import CalendarEvent
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

DATE_TOKEN_PATTERN = re.compile(
    r"today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    r"|\d{1,2}(?:st|nd|rd|th)?(?: of)? "
    r"(?:january|february|march|april|may|june|july|august|september|october|november|december)"
)
TIME_TOKEN_PATTERN = re.compile(r"\d{1,2}(?::\d{2})?\s*(?:am|pm)|morning|afternoon|evening|night")


class MatchCriteria(StrEnum):
    TITLE = "title"
    DATETIME = "datetime"
    ALL = "all"


def long_date_string(value: datetime) -> str:
    """``"monday, march 10"``"""
    return f"{value.strftime('%A, %B')} {value.day}".lower()


def short_time_string(value: datetime) -> str:
    """``"2:05 pm"``"""
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'pm' if value.hour >= 12 else 'am'}"


class EventMatcher:
    """Textual matcher over a time-ordered list of events.

    Title matching is a case-insensitive substring test in either direction.
    Date and time cues are pulled out of the description with fixed patterns and
    compared against the event's long date and short time strings; a description
    without cues constrains nothing.
    """

    def __init__(self, time_zone: tzinfo | None = None):
        self.time_zone = time_zone

    def extract_tokens(self, description: str) -> tuple[list[str], list[str]]:
        text = description.lower()
        return DATE_TOKEN_PATTERN.findall(text), TIME_TOKEN_PATTERN.findall(text)

    def _local_start(self, event: CalendarEvent) -> datetime:
        start = event.starts_at
        if self.time_zone is not None and start.tzinfo is not None:
            return start.astimezone(self.time_zone)
        return start

    def title_matches(self, event: CalendarEvent, description: str) -> bool:
        summary = event.summary.lower()
        text = description.lower()
        return text in summary or summary in text

    def datetime_matches(self, event: CalendarEvent, date_tokens: list[str], time_tokens: list[str]) -> bool:
        if not date_tokens and not time_tokens:
            return True

        start = self._local_start(event)
        date_text = long_date_string(start)
        time_text = short_time_string(start)
        return any(token in date_text for token in date_tokens) or any(token in time_text for token in time_tokens)

    def match(
        self,
        events: list[CalendarEvent],
        description: str,
        criteria: MatchCriteria | str = MatchCriteria.ALL,
    ) -> list[CalendarEvent]:
        """All events satisfying ``criteria``, in the order given."""
        criteria = MatchCriteria(criteria)
        date_tokens, time_tokens = self.extract_tokens(description)
        logger.debug(f"Matching {description!r} by {criteria}: dates={date_tokens} times={time_tokens}")

        matched = []
        for event in events:
            by_title = self.title_matches(event, description)
            if criteria is MatchCriteria.TITLE:
                if by_title:
                    matched.append(event)
                continue

            by_datetime = self.datetime_matches(event, date_tokens, time_tokens)
            if criteria is MatchCriteria.DATETIME:
                if by_datetime:
                    matched.append(event)
                continue

            if by_title and by_datetime:
                matched.append(event)

        return matched

    def select(
        self,
        events: list[CalendarEvent],
        description: str,
        criteria: MatchCriteria | str = MatchCriteria.ALL,
    ) -> tuple[CalendarEvent, list[CalendarEvent]]:
        """Pick the single event a description refers to.

        Returns the chosen event and every candidate that matched. With several
        candidates the earliest wins.

        Raises:
            NotFound: nothing matched
        """
        matched = self.match(events, description, criteria)
        if not matched:
            raise NotFound(f'No events found matching description: "{description}"', description=description)

        if len(matched) > 1:
            logger.warning(
                f"{len(matched)} events match {description!r}, using the first: "
                f"{matched[0].summary!r} ({matched[0].id})"
            )
        return matched[0], matched

"""Natural-language date, time and duration resolution.

Every function here is pure: the reference instant is always passed in, so the
same phrase resolves the same way in tests and in production. Datetimes are
expected to be timezone-aware; day arithmetic happens on the wall clock of the
zone attached to ``now``.
"""

import re
from datetime import datetime, timedelta, tzinfo

from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DURATION_MINUTES = 60

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

AM_PM_PATTERN = re.compile(r"(\d+)(?::(\d+))?\s*(am|pm)")
HOUR_MINUTE_PATTERN = re.compile(r"(\d+):(\d+)")
HOUR_PATTERN = re.compile(r"(\d+)")

DURATION_HOURS_PATTERN = re.compile(r"(\d+)\s*(?:hour|hr|h)")
DURATION_MINUTES_PATTERN = re.compile(r"(\d+)\s*(?:minute|min|m)")
DURATION_PHRASE_PATTERN = re.compile(r"^\s*\d+\s*(?:hours?|hrs?|h|minutes?|mins?|m)\b")

AT_SEPARATOR = re.compile(r"\s+at\s+", re.IGNORECASE)


def recognize_natural_date(text: str, now: datetime) -> datetime | None:
    """Resolve a relative day reference, or return None if it is not one we know.

    The time of day of ``now`` is preserved; only the date moves.
    """
    phrase = text.lower().strip()

    if phrase == "today":
        return now
    if phrase == "tomorrow":
        return now + timedelta(days=1)
    if phrase in ("day after tomorrow", "the day after tomorrow"):
        return now + timedelta(days=2)

    if phrase.startswith("next "):
        target = WEEKDAYS.get(phrase[5:].strip())
        if target is None:
            return None
        # Strictly after today, so "next monday" on a Monday is a week out
        days_ahead = (target - now.weekday()) % 7 or 7
        return now + timedelta(days=days_ahead)

    if phrase.startswith("this "):
        target = WEEKDAYS.get(phrase[5:].strip())
        if target is None:
            return None
        diff = target - now.weekday()
        if diff < 0:
            diff += 7
        return now + timedelta(days=diff)

    return None


def parse_natural_date(text: str, now: datetime) -> datetime:
    """Resolve a relative day reference, falling back to ``now`` when unrecognized."""
    resolved = recognize_natural_date(text, now)
    if resolved is None:
        logger.warning(f"Unrecognized date phrase {text!r}, falling back to reference date")
        return now
    return resolved


def recognize_natural_time(date: datetime, text: str) -> datetime | None:
    """Apply a clock time phrase to ``date``; None if no valid time is found."""
    phrase = text.lower().strip()

    hours: int
    minutes: int
    match = AM_PM_PATTERN.search(phrase)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2)) if match.group(2) else 0
        is_pm = match.group(3) == "pm"
        if hours > 12:
            return None
        if is_pm and hours < 12:
            hours += 12
        elif not is_pm and hours == 12:
            hours = 0
    elif match := HOUR_MINUTE_PATTERN.search(phrase):
        hours, minutes = int(match.group(1)), int(match.group(2))
    elif match := HOUR_PATTERN.search(phrase):
        hours, minutes = int(match.group(1)), 0
    else:
        return None

    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return date.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def parse_natural_time(date: datetime, text: str) -> datetime:
    """Apply a clock time phrase to ``date``, leaving it unchanged when unrecognized.

    Handles ``2pm``, ``11:30am``, ``14:30`` and a bare hour such as ``9``.
    ``12am`` is midnight and ``12pm`` is noon.
    """
    resolved = recognize_natural_time(date, text)
    return date if resolved is None else resolved


def parse_natural_duration(text: str) -> int:
    """Return a duration phrase in minutes, defaulting to one hour."""
    phrase = text.lower().strip()

    match = DURATION_HOURS_PATTERN.search(phrase)
    if match:
        return int(match.group(1)) * 60

    match = DURATION_MINUTES_PATTERN.search(phrase)
    if match:
        return int(match.group(1))

    return DEFAULT_DURATION_MINUTES


def is_duration_phrase(text: str) -> bool:
    """Whether an end-time phrase is a length ("90 minutes", "2 hours") rather than an instant."""
    return bool(DURATION_PHRASE_PATTERN.match(text.lower())) or "hour" in text.lower()


def calculate_end_time(start: datetime, duration_minutes: int) -> datetime:
    return start + timedelta(minutes=duration_minutes)


def try_parse_iso_date(text: str, default_tz: tzinfo | None = None) -> datetime | None:
    """Parse an ISO-8601 timestamp; None when the text is not one.

    Naive timestamps are interpreted in ``default_tz`` when it is given.
    """
    try:
        parsed = datetime.fromisoformat(text.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None and default_tz is not None:
        parsed = parsed.replace(tzinfo=default_tz)
    return parsed


def format_for_calendar(value: datetime) -> str:
    """ISO-8601 with offset, second precision."""
    return value.isoformat(timespec="seconds")


def split_date_and_time(phrase: str) -> tuple[str, str] | None:
    """Split ``"<date> at <time>"`` into its two halves."""
    parts = AT_SEPARATOR.split(phrase.strip(), maxsplit=1)
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        return None
    return parts[0].strip(), parts[1].strip()


def resolve_phrase(phrase: str, now: datetime, anchor: datetime | None = None) -> datetime | None:
    """Resolve a compound phrase such as ``"tomorrow at 2pm"`` to an instant.

    Without an ``" at "`` separator the phrase is read as a time of day applied to
    ``anchor`` (``now`` when no anchor is known). Returns None when nothing in the
    phrase could be interpreted.
    """
    split = split_date_and_time(phrase)
    if split is None:
        base = anchor if anchor is not None else now
        return recognize_natural_time(base, phrase)

    date_text, time_text = split
    day = recognize_natural_date(date_text, now)
    if day is None:
        day = try_parse_iso_date(date_text, now.tzinfo)
        if day is not None:
            day = day.astimezone(now.tzinfo)
    if day is None:
        logger.info(f"Could not resolve date part of {phrase!r}")
        return None
    return recognize_natural_time(day, time_text)

"""Shared fixtures: a fixed clock, an in-memory calendar and a tool context."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from toolchat.services.calendar_backend import InMemoryCalendarBackend
from toolchat.tools.base import ToolContext

KOLKATA = ZoneInfo("Asia/Kolkata")

# Monday, 10:00 local time
NOW = datetime(2025, 3, 10, 10, 0, tzinfo=KOLKATA)


def fixed_clock(zone: ZoneInfo) -> datetime:
    return NOW.astimezone(zone)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def calendar() -> InMemoryCalendarBackend:
    return InMemoryCalendarBackend(clock=lambda: NOW)


@pytest.fixture
def tool_context(calendar) -> ToolContext:
    return ToolContext(time_zone=KOLKATA, calendar_provider=lambda: calendar, clock=fixed_clock)

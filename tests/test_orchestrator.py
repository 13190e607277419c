"""Tests for the tool-calling conversation loop."""

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from toolchat.errors import BackendUnavailable, ConversationCancelled, OrchestrationLimitExceeded
from toolchat.models.attachments import GeneratedImage, SearchResult
from toolchat.models.calendar import CalendarEvent, EventDateTime
from toolchat.models.llm import LLMResponse, TextBlock, ToolResultBlock, ToolUseBlock
from toolchat.models.messages import ConversationMessage
from toolchat.services.orchestrator import ConversationOrchestrator, date_context_prompt
from toolchat.tools.base import ToolContext
from toolchat.tools.executor import ToolExecutor
from toolchat.tools.registry import CALENDAR, EXA_SEARCH, IMAGE_SEARCH, TAVILY_SEARCH, ToolsRegistry, search_toggle

from .conftest import KOLKATA, NOW, fixed_clock


class ScriptedModel:
    """Returns canned responses in order and records every request."""

    def __init__(self, *responses: LLMResponse):
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def create_message(self, **kwargs) -> LLMResponse:
        self.calls.append(kwargs)
        return self.responses.pop(0)


def text(value: str) -> LLMResponse:
    return LLMResponse(content=[TextBlock(text=value)], stop_reason="end_turn")


def tool_call(name: str, tool_id: str = "toolu_1", preamble: str = "", **params) -> LLMResponse:
    content = [TextBlock(text=preamble)] if preamble else []
    content.append(ToolUseBlock(id=tool_id, name=name, input=params))
    return LLMResponse(content=content, stop_reason="tool_use")


def user(content: str) -> list[ConversationMessage]:
    return [ConversationMessage(role="user", content=content)]


@pytest.fixture
def search_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.search.return_value = [SearchResult(title="Result", url="https://r.dev", snippet="snippet")]
    return backend


@pytest.fixture
def image_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.generate.return_value = GeneratedImage(url="https://img/1.png", prompt="a cat")
    return backend


@pytest.fixture
def context(calendar, search_backend, image_backend) -> ToolContext:
    return ToolContext(
        time_zone=KOLKATA,
        search_backends={"exa_search": search_backend, "tavily_search": search_backend},
        image_backend=image_backend,
        calendar_provider=lambda: calendar,
        clock=fixed_clock,
    )


def orchestrator(model: ScriptedModel, max_rounds: int = 8) -> ConversationOrchestrator:
    return ConversationOrchestrator(model, ToolExecutor(ToolsRegistry()), max_rounds=max_rounds)


class TestPlainReplies:
    @pytest.mark.asyncio
    async def test_text_reply_without_tools(self, context):
        model = ScriptedModel(text("Hello!"))

        reply = await orchestrator(model).converse(user("Hi"), EXA_SEARCH, context=context)

        assert reply.role == "assistant"
        assert reply.content == "Hello!"
        assert reply.attachments is None
        assert len(model.calls) == 1
        assert [d.name for d in model.calls[0]["tools"]] == ["exa_search"]
        assert model.calls[0]["tool_choice"] == {"type": "auto"}
        assert model.calls[0]["system_prompt"] is None

    @pytest.mark.asyncio
    async def test_toggle_off_offers_no_tools(self, context):
        model = ScriptedModel(text("Plain answer"))

        reply = await orchestrator(model).converse(user("Hi"), search_toggle(False), context=context)

        assert reply.content == "Plain answer"
        assert model.calls[0]["tools"] is None
        assert model.calls[0]["tool_choice"] is None

    @pytest.mark.asyncio
    async def test_history_is_not_modified(self, context):
        history = user("Search for python")
        model = ScriptedModel(tool_call("exa_search", query="python"), text("Done"))

        await orchestrator(model).converse(history, EXA_SEARCH, context=context)

        assert history == user("Search for python")


class TestSearchExchange:
    @pytest.mark.asyncio
    async def test_search_then_answer(self, context, search_backend):
        model = ScriptedModel(
            tool_call("tavily_search", preamble="Let me look that up.", query="python"),
            text("Python is a language."),
        )

        reply = await orchestrator(model).converse(user("What is python?"), TAVILY_SEARCH, context=context)

        assert reply.content == "Python is a language."
        assert reply.attachments.search_results[0].url == "https://r.dev"
        search_backend.search.assert_awaited_once_with("python", 5)

        follow_up = model.calls[1]
        assert follow_up["tool_choice"] == {"type": "none"}
        assert [d.name for d in follow_up["tools"]] == ["tavily_search"]

        assistant_turn, results_turn = follow_up["messages"][-2:]
        assert assistant_turn.role == "assistant"
        assert isinstance(assistant_turn.content[-1], ToolUseBlock)
        assert results_turn.role == "user"
        result_block, note = results_turn.content
        assert isinstance(result_block, ToolResultBlock)
        assert result_block.tool_use_id == "toolu_1"
        assert json.loads(result_block.content)[0]["title"] == "Result"
        assert "comprehensive response" in note.text

    @pytest.mark.asyncio
    async def test_empty_follow_up_uses_fallback_text(self, context):
        model = ScriptedModel(
            tool_call("exa_search", query="python"), LLMResponse(content=[], stop_reason="end_turn")
        )

        reply = await orchestrator(model).converse(user("python?"), EXA_SEARCH, context=context)

        assert reply.content.startswith("Here are the search results for your query.")
        assert reply.attachments.search_results

    @pytest.mark.asyncio
    async def test_single_round_set_ignores_further_tool_calls(self, context, search_backend):
        model = ScriptedModel(
            tool_call("exa_search", query="python"),
            tool_call("exa_search", tool_id="toolu_2", query="more python"),
        )

        reply = await orchestrator(model).converse(user("python?"), EXA_SEARCH, context=context)

        assert search_backend.search.await_count == 1
        assert len(model.calls) == 2
        assert reply.content.startswith("Here are the search results")

    @pytest.mark.asyncio
    async def test_search_failure_does_not_end_exchange(self, context, search_backend):
        search_backend.search.side_effect = BackendUnavailable("Tavily search failed: HTTP 500")
        model = ScriptedModel(tool_call("tavily_search", query="python"), text("Search is down, sorry."))

        reply = await orchestrator(model).converse(user("python?"), TAVILY_SEARCH, context=context)

        assert reply.content == "Search is down, sorry."
        assert reply.attachments.search_results[0].title == "Search Error"

    @pytest.mark.asyncio
    async def test_slow_search_degrades_before_executor_deadline(self, context, search_backend):
        async def hang(query, num_results):
            await asyncio.sleep(5)

        search_backend.search.side_effect = hang
        context.search_timeout_seconds = 0.05
        executor = ToolExecutor(ToolsRegistry(), timeout_seconds=1.0)
        model = ScriptedModel(tool_call("tavily_search", query="python"), text("Search timed out, sorry."))

        orchestrator = ConversationOrchestrator(model, executor)

        reply = await orchestrator.converse(user("python?"), TAVILY_SEARCH, context=context)

        assert reply.content == "Search timed out, sorry."
        assert reply.attachments.search_results[0].title == "Search Error"
        assert len(model.calls) == 2


class TestCalendarExchange:
    @pytest.mark.asyncio
    async def test_date_context_is_sent(self, context):
        model = ScriptedModel(text("You have nothing scheduled."))

        await orchestrator(model).converse(user("What's on?"), CALENDAR, context=context)

        prompt = model.calls[0]["system_prompt"]
        assert "Today's date is 2025-03-10" in prompt
        assert '"tomorrow at 2pm" should be "2025-03-11T14:00:00"' in prompt
        assert [d.name for d in model.calls[0]["tools"]] == [
            "list_calendar_events",
            "create_calendar_event",
            "update_calendar_event",
            "delete_calendar_event",
        ]

    @pytest.mark.asyncio
    async def test_create_event(self, context, calendar):
        model = ScriptedModel(
            tool_call(
                "create_calendar_event", summary="Lunch", start_time="tomorrow at 1pm", end_time="1 hour"
            ),
            text("Lunch is booked for tomorrow at 1pm."),
        )

        reply = await orchestrator(model).converse(user("Book lunch tomorrow at 1pm"), CALENDAR, context=context)

        assert reply.content == "Lunch is booked for tomorrow at 1pm."
        assert len(calendar.events) == 1
        created = reply.attachments.calendar_events[0]
        assert created.summary == "Lunch"
        assert created.start.date_time == "2025-03-11T13:00:00+05:30"

    @pytest.mark.asyncio
    async def test_missing_identity_ends_exchange_without_second_call(self, search_backend):
        context = ToolContext(time_zone=KOLKATA, clock=fixed_clock)
        model = ScriptedModel(tool_call("list_calendar_events"))

        reply = await orchestrator(model).converse(user("What's on?"), CALENDAR, context=context)

        assert len(model.calls) == 1
        assert reply.content.startswith("I need access to your Google Calendar to list your events.")
        assert reply.attachments is None

    @pytest.mark.asyncio
    async def test_unmatched_delete_ends_exchange(self, context, calendar):
        model = ScriptedModel(tool_call("delete_calendar_event", description="yoga"))

        reply = await orchestrator(model).converse(user("Cancel yoga"), CALENDAR, context=context)

        assert len(model.calls) == 1
        assert reply.content.startswith('I couldn\'t find any events matching "yoga".')

    @pytest.mark.asyncio
    async def test_past_date_is_fed_back_to_model(self, context, calendar):
        model = ScriptedModel(
            tool_call("create_calendar_event", summary="Gym", start_time="2023-05-01T07:00:00", end_time="1 hour"),
            text("That date has passed; which day did you mean?"),
        )

        reply = await orchestrator(model).converse(user("Gym on May 1"), CALENDAR, context=context)

        assert reply.content == "That date has passed; which day did you mean?"
        assert calendar.events == {}
        error_block = model.calls[1]["messages"][-1].content[0]
        assert error_block.is_error
        assert error_block.content.startswith("Error: start_time 2023-05-01T07:00:00+05:30 is in the past")

    @pytest.mark.asyncio
    async def test_update_found_by_description(self, context, calendar):
        start = NOW + timedelta(days=1)
        existing = await calendar.create_event(
            CalendarEvent(
                summary="Team Meeting",
                start=EventDateTime(date_time=start.isoformat(), time_zone="Asia/Kolkata"),
                end=EventDateTime(date_time=(start + timedelta(hours=1)).isoformat(), time_zone="Asia/Kolkata"),
            )
        )
        model = ScriptedModel(
            tool_call("update_calendar_event", event_description="team meeting", location="Room 4"),
            text("Moved to Room 4."),
        )

        reply = await orchestrator(model).converse(user("Team meeting is in room 4"), CALENDAR, context=context)

        assert calendar.events[existing.id].location == "Room 4"
        assert reply.attachments.calendar_events[0].id == existing.id


class TestMultiRound:
    @pytest.mark.asyncio
    async def test_search_then_generate_image(self, context, search_backend, image_backend):
        model = ScriptedModel(
            tool_call("tavily_search", query="famous lighthouses"),
            tool_call("generate_image", tool_id="toolu_2", prompt="a cat"),
            text("Here is your lighthouse."),
        )

        reply = await orchestrator(model).converse(user("Draw a famous lighthouse"), IMAGE_SEARCH, context=context)

        assert reply.content == "Here is your lighthouse."
        assert len(model.calls) == 3
        assert all(call["tool_choice"] == {"type": "auto"} for call in model.calls)
        assert reply.attachments.search_results[0].url == "https://r.dev"
        assert reply.attachments.generated_images[0].url == "https://img/1.png"
        # user, (assistant, results) x 2
        assert len(model.calls[2]["messages"]) == 5

    @pytest.mark.asyncio
    async def test_several_tool_calls_in_one_round(self, context, search_backend, image_backend):
        response = LLMResponse(
            content=[
                ToolUseBlock(id="toolu_1", name="tavily_search", input={"query": "cats"}),
                ToolUseBlock(id="toolu_2", name="generate_image", input={"prompt": "a cat"}),
            ],
            stop_reason="tool_use",
        )
        model = ScriptedModel(response, text("Done."))

        reply = await orchestrator(model).converse(user("cats"), IMAGE_SEARCH, context=context)

        results = [b for b in model.calls[1]["messages"][-1].content if isinstance(b, ToolResultBlock)]
        assert [b.tool_use_id for b in results] == ["toolu_1", "toolu_2"]
        assert reply.attachments.generated_images and reply.attachments.search_results

    @pytest.mark.asyncio
    async def test_image_failure_keeps_earlier_attachments(self, context, image_backend):
        image_backend.generate.side_effect = BackendUnavailable("boom")
        model = ScriptedModel(
            tool_call("tavily_search", query="lighthouses"),
            tool_call("generate_image", tool_id="toolu_2", prompt="a lighthouse"),
        )

        reply = await orchestrator(model).converse(user("Draw a lighthouse"), IMAGE_SEARCH, context=context)

        assert reply.content.startswith("I'm sorry, I wasn't able to generate the image you requested.")
        assert reply.attachments.search_results
        assert len(model.calls) == 2

    @pytest.mark.asyncio
    async def test_round_cap(self, context, search_backend):
        model = ScriptedModel(*[tool_call("tavily_search", tool_id=f"toolu_{i}", query="q") for i in range(3)])

        with pytest.raises(OrchestrationLimitExceeded):
            await orchestrator(model, max_rounds=3).converse(user("loop"), IMAGE_SEARCH, context=context)

        assert len(model.calls) == 3
        # Tools requested on the last round are not run
        assert search_backend.search.await_count == 2


class TestInvalidToolCalls:
    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self, context):
        model = ScriptedModel(tool_call("generate_image", prompt="a cat"), text("I can only search."))

        reply = await orchestrator(model).converse(user("Draw a cat"), TAVILY_SEARCH, context=context)

        assert reply.content == "I can only search."
        error_block = model.calls[1]["messages"][-1].content[0]
        assert error_block.is_error
        assert error_block.content == "Error: Unknown tool: generate_image. Available tools: tavily_search"

    @pytest.mark.asyncio
    async def test_invalid_parameters_are_reported_to_model(self, context):
        model = ScriptedModel(tool_call("tavily_search", query=""), text("Sorry."))

        await orchestrator(model).converse(user("?"), TAVILY_SEARCH, context=context)

        error_block = model.calls[1]["messages"][-1].content[0]
        assert error_block.content.startswith("Error: Invalid parameters for tavily_search: query:")


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_first_call(self, context):
        model = ScriptedModel(text("never"))
        cancellation = asyncio.Event()
        cancellation.set()

        with pytest.raises(ConversationCancelled):
            await orchestrator(model).converse(user("Hi"), EXA_SEARCH, context=context, cancellation=cancellation)
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_before_tool_runs(self, context, search_backend):
        cancellation = asyncio.Event()

        class CancellingModel(ScriptedModel):
            async def create_message(self, **kwargs):
                cancellation.set()
                return await super().create_message(**kwargs)

        model = CancellingModel(tool_call("exa_search", query="python"))

        with pytest.raises(ConversationCancelled):
            await orchestrator(model).converse(
                user("python"), EXA_SEARCH, context=context, cancellation=cancellation
            )
        search_backend.search.assert_not_awaited()


class TestDateContextPrompt:
    def test_mentions_today_tomorrow_and_next_week(self):
        prompt = date_context_prompt(NOW)

        assert "2025-03-10 (Monday)" in prompt
        assert "Tomorrow's date is 2025-03-11" in prompt
        assert "2025-03-17" in prompt
        assert "Never use dates from the past" in prompt

"""Validate and run one tool call, turning domain errors into typed failures."""

import asyncio

from pydantic import ValidationError

from toolchat.errors import ErrorKind, InvalidToolCall, OperationTimeout, ToolChatError
from toolchat.models.tools import ToolFailure, ToolInvocationRequest, ToolInvocationResult
from toolchat.tools.base import ToolContext
from toolchat.tools.registry import ToolSet, ToolsRegistry
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


def _validation_summary(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "input"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class ToolExecutor:
    """Runs tool handlers for the orchestrator.

    Errors from the ``ToolChatError`` hierarchy become ``ToolFailure`` values;
    anything else is a bug and propagates.
    """

    def __init__(self, registry: ToolsRegistry, timeout_seconds: float | None = None):
        self.registry = registry
        self.timeout_seconds = timeout_seconds

    async def execute(
        self,
        request: ToolInvocationRequest,
        tool_set: ToolSet,
        context: ToolContext,
    ) -> ToolInvocationResult | ToolFailure:
        tool = self.registry.get_tool(request.name)
        if tool is None or not tool_set.offers(request.name):
            message = f"Unknown tool: {request.name}. Available tools: {', '.join(tool_set.tool_names) or 'none'}"
            logger.error(message)
            return ToolFailure(request.id, ErrorKind.INVALID_TOOL_CALL, message, reply=message)

        try:
            params = tool.parse_input(request.parameters)
        except ValidationError as e:
            message = f"Invalid parameters for {request.name}: {_validation_summary(e)}"
            logger.warning(message)
            return ToolFailure(request.id, ErrorKind.INVALID_TOOL_CALL, message, reply=message)

        logger.info(f"Executing tool {request.name} ({request.id})")
        logger.debug(f"Tool {request.name} input: {request.parameters}")
        try:
            if self.timeout_seconds is None:
                outcome = await tool.handler(params, context)
            else:
                try:
                    outcome = await asyncio.wait_for(tool.handler(params, context), timeout=self.timeout_seconds)
                except TimeoutError as e:
                    raise OperationTimeout(f"{request.name} did not finish in {self.timeout_seconds:.0f}s") from e
        except InvalidToolCall as e:
            logger.warning(f"Tool {request.name} rejected its input: {e.message}")
            return ToolFailure(request.id, e.kind, e.message, reply=e.message)
        except ToolChatError as e:
            logger.error(f"Tool {request.name} failed ({e.kind}): {e.message}")
            return ToolFailure(request.id, e.kind, e.message, reply=tool.reply_for(e))

        logger.debug(f"Tool {request.name} succeeded: {str(outcome.payload)[:100]}...")
        return ToolInvocationResult(
            correlation_id=request.id,
            payload=outcome.payload,
            display_text=outcome.display_text,
            fallback_text=outcome.fallback_text,
            attachments=outcome.attachments,
        )

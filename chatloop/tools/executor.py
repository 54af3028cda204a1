"""
Tool executor -- runs the tool calls of one finished provider turn.

Every failure mode (unknown tool, descriptive-only tool, malformed arguments,
schema violation, handler exception) is turned into result text for the
model.  Nothing raised by a tool reaches the caller.

Calls run sequentially, in accumulation order: a slow handler delays the
calls after it and the next model turn.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, AsyncIterator

from chatloop.llm.types import DoneChunk, Message, ToolCall, ToolResultChunk
from chatloop.tools.registry import ToolRegistry
from chatloop.tools.validation import ToolValidator

logger = logging.getLogger(__name__)


class ToolExecution:
    """
    Result of ``ToolExecutor.execute_tools``.

    Iterate it (once) to run the tools; each iteration step yields the
    ``ToolResultChunk`` for one call.  ``messages`` is complete once the
    iteration is exhausted and holds exactly one ``tool`` message per call,
    in call order.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        tool_calls: list[ToolCall],
        finished: DoneChunk | None,
    ) -> None:
        self._executor = executor
        self._tool_calls = list(tool_calls)
        self._finished = finished
        self._started = False
        self.messages: list[Message] = []

    def __aiter__(self) -> AsyncIterator[ToolResultChunk]:
        if self._started:
            raise RuntimeError("ToolExecution can only be iterated once")
        self._started = True
        return self._run()

    async def _run(self) -> AsyncIterator[ToolResultChunk]:
        model = self._finished.model if self._finished else ""
        for tc in self._tool_calls:
            result = await self._executor.run_one(tc)
            self.messages.append(
                Message(
                    role="tool",
                    content=result,
                    tool_call_id=tc.id,
                    name=tc.name,
                )
            )
            yield ToolResultChunk(
                tool_call_id=tc.id,
                tool_name=tc.name,
                result=result,
                model=model,
            )

    async def collect(self) -> list[Message]:
        """Run every call, discarding the result chunks."""
        async for _ in self:
            pass
        return self.messages


class ToolExecutor:
    """
    Executes tool calls against a ``ToolRegistry``.

    Parameters
    ----------
    registry : ToolRegistry
        The tools declared for the current call.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def execute_tools(
        self,
        tool_calls: list[ToolCall],
        finished: DoneChunk | None = None,
    ) -> ToolExecution:
        return ToolExecution(self, tool_calls, finished)

    async def run_one(self, tool_call: ToolCall) -> str:
        """Execute a single call and return its result text."""
        name = tool_call.name
        tool = self.registry.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool %r", name)
            return f"Tool {name} not found"

        if tool.execute is None:
            logger.warning("Tool %r has no handler", name)
            return f"Tool {name} does not have an execute function"

        logger.info("Executing tool %s (call %s)", name, tool_call.id)
        try:
            args = json.loads(tool_call.arguments or "{}")
            valid, error_msg = ToolValidator.validate(tool, args)
            if not valid:
                raise ValueError(f"Invalid input for {name}: {error_msg}")
            value = tool.execute(args)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return f"Error executing tool: {e}"

        return _serialize_result(value)


def _serialize_result(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)

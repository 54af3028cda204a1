"""
Orchestrator core -- the agent loop that ties everything together.

The loop:
1. Streams one provider turn, forwarding every chunk as it arrives
2. Accumulates tool-call fragments from that turn
3. Decides whether the turn asked for tools
4. Executes them and appends their results to the conversation
5. Re-invokes the provider with the full conversation until the model
   stops asking for tools or the iteration budget is spent
"""

from __future__ import annotations

import enum
import logging
from dataclasses import replace
from typing import AsyncIterator

from chatloop.llm.adapters.base import Adapter
from chatloop.llm.tool_call_assembler import ToolCallAssembler
from chatloop.llm.types import (
    ChatOptions,
    ContentChunk,
    DoneChunk,
    ErrorChunk,
    FinishReason,
    Message,
    StreamChunk,
    ToolCall,
    ToolCallChunk,
)
from chatloop.tools.executor import ToolExecutor
from chatloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class LoopState(enum.Enum):
    STREAMING_TURN = "streaming_turn"
    DECIDING = "deciding"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


class AgentLoop:
    """
    Drives one ``stream_chat`` call.

    Parameters
    ----------
    adapter : Adapter
        The resolved adapter.
    options : ChatOptions
        Per-call options.  ``options.messages`` is copied; the caller's list
        is never mutated.

    After iteration, ``messages`` holds the running conversation and
    ``iteration`` the number of tool rounds executed.  When
    ``budget_exhausted`` is true the last assistant tool-call request was
    answered but never followed by a model turn.
    """

    def __init__(self, adapter: Adapter, options: ChatOptions) -> None:
        self.adapter = adapter
        self.options = options
        self.registry = ToolRegistry(options.tools or ())
        self.executor = ToolExecutor(self.registry)
        self.assembler = ToolCallAssembler()
        self.messages: list[Message] = list(options.messages)
        self.iteration = 0
        self.state = LoopState.STREAMING_TURN
        self.budget_exhausted = False

    @property
    def max_iterations(self) -> int:
        return self.options.max_iterations

    async def run(self) -> AsyncIterator[StreamChunk]:
        """
        Yield every chunk of every turn, plus the tool result chunks and a
        synthetic ``[Tool <name> executed]`` content chunk per tool call.
        """
        if not self.registry.has_executors():
            # Nothing to run on the model's behalf: plain pass-through.
            async for chunk in self.adapter.chat_stream(
                replace(self.options, messages=self.messages, stream=True)
            ):
                yield chunk
            self.state = LoopState.DONE
            return

        done: DoneChunk | None = None
        errored = False
        tool_calls: list[ToolCall] = []

        while self.state is not LoopState.DONE:
            if self.state is LoopState.STREAMING_TURN:
                logger.debug(
                    "Starting turn %d with %d messages",
                    self.iteration + 1,
                    len(self.messages),
                )
                self.assembler.clear()
                done = None
                errored = False
                async for chunk in self.adapter.chat_stream(
                    replace(self.options, messages=list(self.messages), stream=True)
                ):
                    yield chunk
                    if isinstance(chunk, ToolCallChunk):
                        self.assembler.feed(chunk)
                    elif isinstance(chunk, ErrorChunk):
                        errored = True
                    elif isinstance(chunk, DoneChunk):
                        done = chunk
                self.state = LoopState.DECIDING

            elif self.state is LoopState.DECIDING:
                tool_calls = self.assembler.get_tool_calls()
                if (
                    errored
                    or done is None
                    or done.finish_reason != FinishReason.TOOL_CALLS
                    or not tool_calls
                    or self.iteration >= self.max_iterations
                ):
                    self.state = LoopState.DONE
                    continue
                self.messages.append(
                    Message(role="assistant", content=None, tool_calls=tool_calls)
                )
                self.state = LoopState.EXECUTING_TOOLS

            elif self.state is LoopState.EXECUTING_TOOLS:
                execution = self.executor.execute_tools(tool_calls, done)
                async for result in execution:
                    yield result
                    yield ContentChunk(
                        model=result.model,
                        delta="",
                        content=f"[Tool {result.tool_name} executed]",
                    )
                self.messages.extend(execution.messages)
                self.iteration += 1

                if self.iteration >= self.max_iterations:
                    logger.warning(
                        "Stopping after %d tool rounds (max_iterations reached)",
                        self.iteration,
                    )
                    self.budget_exhausted = True
                    self.state = LoopState.DONE
                else:
                    self.state = LoopState.STREAMING_TURN

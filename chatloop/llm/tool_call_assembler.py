"""
Assembles streaming tool-call fragments into complete ToolCall objects.

Design goals:
  - Pending calls are keyed by their *stream index*, not their id: some
    providers stream the id late or interleaved with the name and argument
    fragments.
  - Argument fragments are concatenated in arrival order.  No JSON parsing
    happens here; the text is only expected to be valid JSON once the call
    is complete, and it is parsed at execution time.
  - Entries that never received a name are placeholders and are never
    surfaced by ``get_tool_calls``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from chatloop.llm.types import FunctionCall, ToolCall, ToolCallChunk

logger = logging.getLogger(__name__)


class ToolCallAssembler:
    """Buffers tool-call fragments for one provider turn."""

    def __init__(self) -> None:
        self._buf: dict[int, dict] = {}
        self.dropped_deltas = 0

    # ------------------------------------------------------------------
    # Fragment events
    # ------------------------------------------------------------------

    def add_tool_call_start_event(
        self, index: int, tool_call_id: str, tool_name: str
    ) -> None:
        """
        Start (or restart) the call at *index*.

        The entry is overwritten with an empty argument buffer, so a provider
        that resends the metadata for an index wins with its latest values.
        """
        self._buf[index] = {"id": tool_call_id, "name": tool_name, "args": ""}

    def add_tool_call_args_event(self, tool_call_id: str, delta: str) -> None:
        """
        Append *delta* to the argument buffer of the call holding
        *tool_call_id*.

        A delta for an id no pending entry holds is dropped.
        """
        buf = self._find(tool_call_id)
        if buf is None:
            self.dropped_deltas += 1
            logger.debug(
                "Dropping args delta for unknown tool call %s (%d chars)",
                tool_call_id,
                len(delta),
            )
            return
        buf["args"] += delta

    def complete_tool_call(
        self, tool_call_id: str, tool_name: str, input: Any
    ) -> None:
        """
        Record a call the provider delivered in one piece.

        *input* is serialized to compact JSON text and replaces whatever
        argument fragments were buffered for that id.
        """
        args = json.dumps(input, separators=(",", ":"))
        buf = self._find(tool_call_id)
        if buf is None:
            index = max(self._buf) + 1 if self._buf else 0
            self._buf[index] = {"id": tool_call_id, "name": tool_name, "args": args}
            return
        if tool_name:
            buf["name"] = tool_name
        buf["args"] = args

    def feed(self, chunk: ToolCallChunk) -> None:
        """
        Feed a protocol-level ``tool_call`` fragment.

        Creates the slot for ``chunk.index`` if needed, adopts a non-empty id
        and name, and appends the argument fragment.
        """
        tc = chunk.tool_call
        buf = self._buf.setdefault(
            chunk.index, {"id": tc.id or "", "name": "", "args": ""}
        )
        if tc.id and not buf["id"]:
            buf["id"] = tc.id
        if tc.function.name:
            buf["name"] = tc.function.name
        if tc.function.arguments:
            buf["args"] += tc.function.arguments

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_tool_calls(self) -> list[ToolCall]:
        """Return the named calls in stream-index order."""
        calls: list[ToolCall] = []
        for idx in sorted(self._buf):
            buf = self._buf[idx]
            if not buf["name"]:
                continue
            calls.append(
                ToolCall(
                    id=buf["id"] or f"call_{idx}",
                    function=FunctionCall(name=buf["name"], arguments=buf["args"]),
                )
            )
        return calls

    def has_tool_calls(self) -> bool:
        return bool(self._buf)

    def clear(self) -> None:
        """Discard all pending state.  Call between runs, not between fragments."""
        self._buf.clear()
        self.dropped_deltas = 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find(self, tool_call_id: str) -> dict | None:
        for buf in self._buf.values():
            if buf["id"] == tool_call_id:
                return buf
        return None

"""
Core types for the LLM subsystem.

Every adapter normalizes its vendor output into the chunk types defined here.
A stream is a sequence of ``StreamChunk`` values terminated by exactly one
``DoneChunk``.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Union

from chatloop.tools.base import Tool


class FinishReason:
    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


def _chunk_id() -> str:
    return f"chunk-{uuid.uuid4().hex[:12]}"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class FunctionCall:
    name: str
    arguments: str  # JSON text


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    function: FunctionCall
    type: str = "function"

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def arguments(self) -> str:
        return self.function.arguments


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str | None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


# ---------------------------------------------------------------------------
# Stream chunks
# ---------------------------------------------------------------------------


@dataclass(kw_only=True)
class _BaseChunk:
    id: str = field(default_factory=_chunk_id)
    model: str = ""
    timestamp: int = field(default_factory=_now_ms)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict suitable for JSON transport."""
        return asdict(self)


@dataclass(kw_only=True)
class ContentChunk(_BaseChunk):
    """Incremental assistant text; ``content`` is the text so far."""

    delta: str
    content: str
    role: str = "assistant"
    type: str = field(default="content", init=False)


@dataclass(kw_only=True)
class ToolCallChunk(_BaseChunk):
    """
    One fragment of a tool call.

    ``tool_call`` is partial: its name and arguments may be empty.
    """

    index: int
    tool_call: ToolCall
    type: str = field(default="tool_call", init=False)


@dataclass(kw_only=True)
class ToolResultChunk(_BaseChunk):
    tool_call_id: str
    result: str
    tool_name: str = ""
    type: str = field(default="tool_result", init=False)


@dataclass(kw_only=True)
class ErrorChunk(_BaseChunk):
    message: str
    code: str | None = None
    type: str = field(default="error", init=False)


@dataclass(kw_only=True)
class ApprovalChunk(_BaseChunk):
    """A request for a human to approve a tool call before it runs."""

    tool_call_id: str
    tool_name: str
    input: dict = field(default_factory=dict)
    approval_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    type: str = field(default="approval", init=False)


@dataclass(kw_only=True)
class DoneChunk(_BaseChunk):
    """Terminal chunk of one provider turn."""

    finish_reason: str
    usage: Usage | None = None
    type: str = field(default="done", init=False)


StreamChunk = Union[
    ContentChunk,
    ToolCallChunk,
    ToolResultChunk,
    ErrorChunk,
    ApprovalChunk,
    DoneChunk,
]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass
class ChatOptions:
    model: str
    messages: list[Message]
    tools: list[Tool] | None = None
    max_iterations: int = 5
    stream: bool = False
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    system_prompts: list[str] | None = None
    provider_options: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if (
            isinstance(self.max_iterations, bool)
            or not isinstance(self.max_iterations, int)
            or self.max_iterations < 1
        ):
            raise ValueError(
                f"max_iterations must be a positive integer, "
                f"got {self.max_iterations!r}"
            )


@dataclass
class TextGenerationOptions:
    model: str
    prompt: str
    max_tokens: int | None = None
    temperature: float | None = None
    stream: bool = False
    provider_options: dict = field(default_factory=dict)


@dataclass
class SummarizationOptions:
    model: str
    text: str
    max_length: int | None = None
    style: str = "paragraph"  # "paragraph", "bullet-points", "concise"
    focus: list[str] | None = None


@dataclass
class EmbeddingOptions:
    model: str
    input: str | list[str]
    dimensions: int | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ChatCompletionResult:
    """Non-streaming counterpart of a stream's ``DoneChunk``."""

    id: str
    model: str
    content: str | None
    finish_reason: str
    usage: Usage | None = None
    tool_calls: list[ToolCall] | None = None


@dataclass
class TextGenerationResult:
    id: str
    model: str
    text: str
    finish_reason: str
    usage: Usage | None = None


@dataclass
class SummarizationResult:
    id: str
    model: str
    summary: str
    usage: Usage | None = None


@dataclass
class EmbeddingResult:
    id: str
    model: str
    embeddings: list[list[float]]
    usage: Usage | None = None

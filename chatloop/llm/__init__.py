"""LLM subsystem -- the canonical stream protocol and tool-call assembly."""

from chatloop.llm.types import (
    ApprovalChunk,
    ChatCompletionResult,
    ChatOptions,
    ContentChunk,
    DoneChunk,
    ErrorChunk,
    FinishReason,
    FunctionCall,
    Message,
    StreamChunk,
    ToolCall,
    ToolCallChunk,
    ToolResultChunk,
    Usage,
)
from chatloop.llm.tool_call_assembler import ToolCallAssembler

__all__ = [
    "ApprovalChunk",
    "ChatCompletionResult",
    "ChatOptions",
    "ContentChunk",
    "DoneChunk",
    "ErrorChunk",
    "FinishReason",
    "FunctionCall",
    "Message",
    "StreamChunk",
    "ToolCall",
    "ToolCallAssembler",
    "ToolCallChunk",
    "ToolResultChunk",
    "Usage",
]

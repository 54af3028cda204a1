"""Streaming chat across interchangeable adapters, with automatic tool execution."""

from chatloop.ai import AI, AdapterNotFoundError, UnsupportedModelError
from chatloop.llm.adapters.base import Adapter
from chatloop.orchestrator.core import AgentLoop, LoopState
from chatloop.tools.base import Tool

__version__ = "0.1.0"

__all__ = [
    "AI",
    "Adapter",
    "AdapterNotFoundError",
    "AgentLoop",
    "LoopState",
    "Tool",
    "UnsupportedModelError",
]

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

ToolHandler = Callable[[dict], Union[Any, Awaitable[Any]]]


def normalize_schema(schema: dict | None) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    return s


@dataclass
class Tool:
    """
    A caller-supplied tool.

    A tool without ``execute`` is descriptive-only: the model may still pick
    it, but nothing is run on its behalf.  ``execute`` receives the parsed
    argument object and may be a plain function or a coroutine function.
    """

    name: str
    description: str = ""
    input_schema: dict | None = None
    execute: ToolHandler | None = None

    @property
    def has_handler(self) -> bool:
        return self.execute is not None

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.input_schema),
            },
        }

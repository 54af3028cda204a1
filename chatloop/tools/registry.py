from __future__ import annotations

import logging
from typing import Iterable

from chatloop.tools.base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Tools declared for one call, looked up by exact name.

    When the caller supplies several tools with the same name the first one
    wins; later duplicates are ignored.
    """

    def __init__(self, tools: Iterable[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or ():
            if tool.name in self._tools:
                logger.debug("Ignoring duplicate tool %r", tool.name)
                continue
            self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has_executors(self) -> bool:
        """True if at least one registered tool can actually be run."""
        return any(t.has_handler for t in self._tools.values())

"""
AI facade -- resolves a named adapter and dispatches to it.

Every entry point takes the adapter name as the ``adapter`` keyword and the
remaining keywords as the options for that modality.  The adapter name is
stripped before the options reach the adapter, and the model is checked
against the adapter's declared model set.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, AsyncIterator, Mapping

from chatloop.llm.adapters.base import Adapter
from chatloop.llm.types import (
    ChatCompletionResult,
    ChatOptions,
    EmbeddingOptions,
    EmbeddingResult,
    StreamChunk,
    SummarizationOptions,
    SummarizationResult,
    TextGenerationOptions,
    TextGenerationResult,
)
from chatloop.orchestrator.core import AgentLoop

logger = logging.getLogger(__name__)


class AdapterNotFoundError(KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnsupportedModelError(ValueError):
    pass


class AI:
    """
    Registry of named adapters plus the public entry points.

    An ``AI`` is never mutated after construction; ``add_adapter`` returns a
    new instance, so one value can be shared by concurrent calls.
    """

    def __init__(self, adapters: Mapping[str, Adapter]) -> None:
        for name, adapter in adapters.items():
            _check_adapter(name, adapter)
        self._adapters: Mapping[str, Adapter] = MappingProxyType(dict(adapters))

    # ------------------------------------------------------------------
    # Adapter management
    # ------------------------------------------------------------------

    def get_adapter(self, name: str) -> Adapter:
        """
        Return the adapter registered as *name*.

        Raises ``AdapterNotFoundError`` listing the registered names.
        """
        adapter = self._adapters.get(name)
        if adapter is None:
            raise AdapterNotFoundError(
                f'Adapter "{name}" not found. '
                f"Available adapters: {', '.join(self._adapters)}"
            )
        return adapter

    @property
    def adapter_names(self) -> list[str]:
        return list(self._adapters)

    def add_adapter(self, name: str, adapter: Adapter) -> AI:
        """Return a new ``AI`` with *adapter* registered under *name*."""
        return AI({**self._adapters, name: adapter})

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, *, adapter: str, **options: Any) -> ChatCompletionResult:
        """Complete a chat conversation without streaming."""
        resolved, opts = self._resolve(adapter, ChatOptions, options)
        return await resolved.chat_completion(opts)

    def stream_chat(self, *, adapter: str, **options: Any) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat, executing tools that carry an ``execute`` handler.

        Without any executable tool the adapter's stream is forwarded as is.
        The adapter and model are resolved here, before anything is
        streamed, so a bad name raises at call time.
        """
        return self.agent_loop(adapter=adapter, **options).run()

    def agent_loop(self, *, adapter: str, **options: Any) -> AgentLoop:
        """
        Build the ``AgentLoop`` ``stream_chat`` would run, for callers that
        need the final conversation state after streaming.
        """
        resolved, opts = self._resolve(adapter, ChatOptions, options)
        return AgentLoop(resolved, opts)

    # ------------------------------------------------------------------
    # Other modalities
    # ------------------------------------------------------------------

    async def generate_text(
        self, *, adapter: str, **options: Any
    ) -> TextGenerationResult:
        resolved, opts = self._resolve(adapter, TextGenerationOptions, options)
        return await resolved.generate_text(opts)

    def generate_text_stream(self, *, adapter: str, **options: Any) -> AsyncIterator[str]:
        options["stream"] = True
        resolved, opts = self._resolve(adapter, TextGenerationOptions, options)
        return resolved.generate_text_stream(opts)

    async def summarize(self, *, adapter: str, **options: Any) -> SummarizationResult:
        resolved, opts = self._resolve(adapter, SummarizationOptions, options)
        return await resolved.summarize(opts)

    async def embed(self, *, adapter: str, **options: Any) -> EmbeddingResult:
        resolved, opts = self._resolve(adapter, EmbeddingOptions, options)
        return await resolved.create_embeddings(opts)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, name: str, options_cls: type, options: dict):
        resolved = self.get_adapter(name)
        model = options.get("model")
        if model not in resolved.models:
            raise UnsupportedModelError(
                f"Model {model!r} is not supported by adapter {name!r}. "
                f"Supported models: {', '.join(resolved.models)}"
            )
        logger.debug("Dispatching %s to adapter %s (%s)", options_cls.__name__, name, model)
        return resolved, options_cls(**options)


def _check_adapter(name: str, adapter: Adapter) -> None:
    if not adapter.models:
        raise ValueError(f"Adapter {name!r} declares no models")

"""Abstract base class for LLM adapters."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import AsyncIterator

from chatloop.llm.types import (
    ChatCompletionResult,
    ChatOptions,
    ContentChunk,
    EmbeddingOptions,
    EmbeddingResult,
    Message,
    StreamChunk,
    SummarizationOptions,
    SummarizationResult,
    TextGenerationOptions,
    TextGenerationResult,
)


class Adapter(ABC):
    """
    An adapter maps canonical requests to one vendor's wire format and the
    vendor's responses back to canonical chunks.

    Implementations must support:
      - Streaming chat (``chat_stream``), ending with exactly one
        ``DoneChunk``.
      - Non-streaming chat (``chat_completion``).
      - Reporting their name and the closed set of model ids they accept.

    Text generation and summarization default to chat-based
    implementations; embeddings are unsupported unless overridden.
    Adapters hold no per-call state.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable adapter name (e.g. ``"openai-compat"``)."""
        ...

    @property
    @abstractmethod
    def models(self) -> tuple[str, ...]:
        """Model identifiers this adapter accepts."""
        ...

    @abstractmethod
    async def chat_completion(self, options: ChatOptions) -> ChatCompletionResult:
        ...

    @abstractmethod
    async def chat_stream(self, options: ChatOptions) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat completion.

        Yields ``StreamChunk`` objects.  The last chunk is a ``DoneChunk``.
        """
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield  # type: ignore[misc]

    # ------------------------------------------------------------------
    # Non-chat modalities
    # ------------------------------------------------------------------

    async def generate_text(
        self, options: TextGenerationOptions
    ) -> TextGenerationResult:
        result = await self.chat_completion(_prompt_to_chat(options))
        return TextGenerationResult(
            id=result.id,
            model=result.model,
            text=result.content or "",
            finish_reason=result.finish_reason,
            usage=result.usage,
        )

    async def generate_text_stream(
        self, options: TextGenerationOptions
    ) -> AsyncIterator[str]:
        chat = _prompt_to_chat(options)
        chat.stream = True
        async for chunk in self.chat_stream(chat):
            if isinstance(chunk, ContentChunk) and chunk.delta:
                yield chunk.delta

    async def summarize(self, options: SummarizationOptions) -> SummarizationResult:
        result = await self.chat_completion(
            ChatOptions(
                model=options.model,
                messages=[
                    Message(role="system", content=build_summary_prompt(options)),
                    Message(role="user", content=options.text),
                ],
                max_tokens=options.max_length,
            )
        )
        return SummarizationResult(
            id=result.id,
            model=result.model,
            summary=result.content or "",
            usage=result.usage,
        )

    async def create_embeddings(self, options: EmbeddingOptions) -> EmbeddingResult:
        raise NotImplementedError(f"{self.name} does not support embeddings")


def _prompt_to_chat(options: TextGenerationOptions) -> ChatOptions:
    return ChatOptions(
        model=options.model,
        messages=[Message(role="user", content=options.prompt)],
        max_tokens=options.max_tokens,
        temperature=options.temperature,
        provider_options=dict(options.provider_options),
    )


def build_summary_prompt(options: SummarizationOptions) -> str:
    """System instruction used by the default ``summarize``."""
    prompt = "You are a helpful assistant that summarizes text concisely."
    if options.style == "bullet-points":
        prompt += " Provide the summary as bullet points."
    elif options.style == "concise":
        prompt += " Keep the summary to one or two sentences."
    else:
        prompt += " Provide the summary as a single paragraph."
    if options.focus:
        prompt += f" Focus on: {', '.join(options.focus)}."
    if options.max_length:
        prompt += f" Keep the summary under {options.max_length} tokens."
    return prompt


def new_response_id(prefix: str = "resp") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"

"""
OpenAI-compatible chat-completion adapter.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- OpenAI itself, Azure OpenAI, vLLM, LM Studio, LocalAI, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import contextlib
import json
import logging
from typing import AsyncContextManager, AsyncIterator, Iterable

import httpx

from chatloop.llm.adapters.base import Adapter, new_response_id
from chatloop.llm.types import (
    ChatCompletionResult,
    ChatOptions,
    ContentChunk,
    DoneChunk,
    EmbeddingOptions,
    EmbeddingResult,
    ErrorChunk,
    FinishReason,
    FunctionCall,
    Message,
    StreamChunk,
    ToolCall,
    ToolCallChunk,
    Usage,
)

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
}


def map_finish_reason(raw: str | None) -> str:
    if raw is None:
        return FinishReason.STOP
    return _FINISH_REASONS.get(raw, FinishReason.STOP)


def _parse_usage(raw: dict | None) -> Usage | None:
    if not raw:
        return None
    prompt = raw.get("prompt_tokens", 0) or 0
    completion = raw.get("completion_tokens", 0) or 0
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=raw.get("total_tokens", prompt + completion) or 0,
    )


class OpenAICompatAdapter(Adapter):
    """
    Stream-capable adapter for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"`` or
        ``"http://localhost:8080/v1"``.
    models:
        Model identifiers this endpoint serves.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient HTTP errors (5xx, 429).
    client:
        Optional pre-built ``httpx.AsyncClient`` (used by tests to inject a
        mock transport).  When omitted a client is created per request.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        models: Iterable[str] = ("gpt-4o", "gpt-4o-mini"),
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        client: httpx.AsyncClient | None = None,
        adapter_name: str = "openai-compat",
    ) -> None:
        self._url = url.rstrip("/")
        self._models = tuple(models)
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._client = client
        self._name = adapter_name

    # ------------------------------------------------------------------
    # Adapter interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    async def chat_stream(self, options: ChatOptions) -> AsyncIterator[StreamChunk]:
        body = self.build_body(options, stream=True)
        async for chunk in self._stream_request(
            "/chat/completions", body, options.model
        ):
            yield chunk

    async def chat_completion(self, options: ChatOptions) -> ChatCompletionResult:
        body = self.build_body(options, stream=False)
        data = await self._post("/chat/completions", body)
        return self._parse_completion(data, options.model)

    async def create_embeddings(self, options: EmbeddingOptions) -> EmbeddingResult:
        body: dict = {"model": options.model, "input": options.input}
        if options.dimensions:
            body["dimensions"] = options.dimensions
        data = await self._post("/embeddings", body)
        rows = sorted(data.get("data", []), key=lambda d: d.get("index", 0))
        return EmbeddingResult(
            id=data.get("id") or new_response_id("emb"),
            model=data.get("model", options.model),
            embeddings=[row.get("embedding", []) for row in rows],
            usage=_parse_usage(data.get("usage")),
        )

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def build_body(self, options: ChatOptions, stream: bool) -> dict:
        wire_messages: list[dict] = [
            {"role": "system", "content": prompt}
            for prompt in options.system_prompts or ()
        ]
        wire_messages.extend(_message_to_wire(msg) for msg in options.messages)

        body: dict = {
            "model": options.model,
            "messages": wire_messages,
            "stream": stream,
        }
        if stream:
            body["stream_options"] = {"include_usage": True}
        if options.tools:
            body["tools"] = [t.to_openai_schema() for t in options.tools]
            body["tool_choice"] = "auto"
        if options.temperature is not None:
            body["temperature"] = options.temperature
        if options.top_p is not None:
            body["top_p"] = options.top_p
        if options.max_tokens is not None:
            body["max_tokens"] = options.max_tokens
        body.update(options.provider_options)

        logger.info(
            "REQUEST: model=%s tools=%d messages=%d stream=%s",
            options.model,
            len(options.tools) if options.tools else 0,
            len(wire_messages),
            stream,
        )
        return body

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _open_client(self) -> AsyncContextManager[httpx.AsyncClient]:
        if self._client is not None:
            # Shared client: the caller owns its lifetime.
            return contextlib.nullcontext(self._client)
        return httpx.AsyncClient(timeout=self._timeout)

    async def _post(self, path: str, body: dict) -> dict:
        url = f"{self._url}{path}"
        headers = self._build_headers()

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            try:
                async with self._open_client() as client:
                    resp = await client.post(url, json=body, headers=headers)

                    if resp.status_code == 429 or resp.status_code >= 500:
                        last_error = httpx.HTTPStatusError(
                            f"HTTP {resp.status_code}",
                            request=resp.request,
                            response=resp,
                        )
                        continue

                    resp.raise_for_status()
                    return resp.json()
            except httpx.TransportError as exc:
                last_error = exc
                if attempt < self._max_retries:
                    continue
                raise

        if last_error is not None:
            raise last_error
        # Should never reach here.
        raise RuntimeError("unreachable")  # pragma: no cover

    async def _stream_request(
        self, path: str, body: dict, model: str
    ) -> AsyncIterator[StreamChunk]:
        url = f"{self._url}{path}"
        headers = self._build_headers()

        status_error: str | None = None
        yielded = False
        for attempt in range(1 + self._max_retries):
            try:
                async with self._open_client() as client:
                    async with client.stream(
                        "POST", url, json=body, headers=headers
                    ) as response:
                        if response.status_code == 429 or response.status_code >= 500:
                            # Retryable -- read body so the connection is released.
                            await response.aread()
                            status_error = f"HTTP {response.status_code}"
                            continue

                        if response.status_code >= 400:
                            await response.aread()
                            status_error = (
                                f"HTTP {response.status_code}: {response.text[:200]}"
                            )
                            break

                        async for chunk in self._parse_sse_stream(response, model):
                            yielded = True
                            yield chunk
                        return  # success
            except httpx.TransportError:
                if attempt < self._max_retries and not yielded:
                    continue
                raise

        logger.warning("Stream request to %s failed: %s", url, status_error)
        yield ErrorChunk(model=model, message=status_error or "request failed")
        yield DoneChunk(model=model, finish_reason=FinishReason.ERROR)

    async def _parse_sse_stream(
        self, response: httpx.Response, model: str
    ) -> AsyncIterator[StreamChunk]:
        """
        Parse Server-Sent Events from the response line stream.

        Each SSE event has the form::

            data: {json}\\n\\n

        httpx decodes incrementally, so a multi-byte character split across
        network reads arrives intact.  The sentinel ``data: [DONE]``
        terminates the stream.  The ``DoneChunk`` is held back until then
        because the usage payload arrives in a trailing event after
        ``finish_reason``.
        """
        state = _StreamState(model)
        async for line in response.aiter_lines():
            if not line.startswith("data:"):
                continue

            data_str = line[len("data:"):].strip()
            if data_str == "[DONE]":
                yield state.done()
                return

            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                logger.warning("Failed to parse SSE data: %s", data_str[:200])
                continue

            for chunk in state.consume(data):
                yield chunk

        # Stream ended without [DONE].
        yield state.done()

    # ------------------------------------------------------------------
    # Non-streaming response
    # ------------------------------------------------------------------

    def _parse_completion(self, data: dict, model: str) -> ChatCompletionResult:
        choices = data.get("choices") or []
        message = choices[0].get("message", {}) if choices else {}
        finish = choices[0].get("finish_reason") if choices else None

        tool_calls = [
            ToolCall(
                id=raw.get("id") or f"call_{idx}",
                function=FunctionCall(
                    name=raw.get("function", {}).get("name", ""),
                    arguments=raw.get("function", {}).get("arguments", "") or "",
                ),
            )
            for idx, raw in enumerate(message.get("tool_calls") or [])
        ]

        return ChatCompletionResult(
            id=data.get("id") or new_response_id("chat"),
            model=data.get("model", model),
            content=message.get("content"),
            finish_reason=map_finish_reason(finish),
            usage=_parse_usage(data.get("usage")),
            tool_calls=tool_calls or None,
        )


class _StreamState:
    """Per-stream bookkeeping for SSE -> canonical chunk mapping."""

    def __init__(self, model: str) -> None:
        self.model = model
        self.content = ""
        self.finish_reason: str | None = None
        self.usage: Usage | None = None

    def consume(self, data: dict) -> list[StreamChunk]:
        self.model = data.get("model") or self.model
        if data.get("usage"):
            self.usage = _parse_usage(data["usage"])

        choices = data.get("choices")
        if not choices:
            return []

        choice = choices[0]
        delta = choice.get("delta") or {}
        chunks: list[StreamChunk] = []

        text_delta = delta.get("content") or ""
        if text_delta:
            self.content += text_delta
            chunks.append(
                ContentChunk(
                    model=self.model,
                    delta=text_delta,
                    content=self.content,
                    role=delta.get("role") or "assistant",
                )
            )

        for raw_tc in delta.get("tool_calls") or []:
            func = raw_tc.get("function") or {}
            chunks.append(
                ToolCallChunk(
                    model=self.model,
                    index=raw_tc.get("index", 0),
                    tool_call=ToolCall(
                        id=raw_tc.get("id") or "",
                        function=FunctionCall(
                            name=func.get("name") or "",
                            arguments=func.get("arguments") or "",
                        ),
                    ),
                )
            )

        if choice.get("finish_reason"):
            self.finish_reason = map_finish_reason(choice["finish_reason"])
        return chunks

    def done(self) -> DoneChunk:
        return DoneChunk(
            model=self.model,
            finish_reason=self.finish_reason or FinishReason.STOP,
            usage=self.usage,
        )


def _message_to_wire(msg: Message) -> dict:
    m: dict = {"role": msg.role, "content": msg.content}
    if msg.tool_calls:
        m["tool_calls"] = [
            {
                "id": tc.id,
                "type": tc.type,
                "function": {
                    "name": tc.function.name,
                    "arguments": tc.function.arguments,
                },
            }
            for tc in msg.tool_calls
        ]
    if msg.tool_call_id:
        m["tool_call_id"] = msg.tool_call_id
    if msg.name and msg.role == "tool":
        m["name"] = msg.name
    return m

"""Tests for the OpenAI-compatible adapter, using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from chatloop.llm.adapters.openai_compat import OpenAICompatAdapter, map_finish_reason
from chatloop.llm.types import (
    ChatOptions,
    ContentChunk,
    DoneChunk,
    EmbeddingOptions,
    ErrorChunk,
    FinishReason,
    FunctionCall,
    Message,
    ToolCall,
    ToolCallChunk,
)
from chatloop.tools.base import Tool


def _sse(*events: dict, done: bool = True) -> bytes:
    lines = [f"data: {json.dumps(e, ensure_ascii=False)}\n\n" for e in events]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def _delta(content=None, tool_calls=None, finish_reason=None) -> dict:
    delta: dict = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {
        "model": "gpt-4o",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def _adapter(handler, max_retries: int = 2) -> OpenAICompatAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAICompatAdapter(
        url="http://test/v1",
        api_key="sk-test",
        max_retries=max_retries,
        client=client,
    )


def _options(**kwargs) -> ChatOptions:
    kwargs.setdefault("messages", [Message(role="user", content="hi")])
    return ChatOptions(model="gpt-4o", **kwargs)


async def _collect(adapter: OpenAICompatAdapter, options: ChatOptions) -> list:
    return [chunk async for chunk in adapter.chat_stream(options)]


class TestFinishReasonMapping:
    def test_known_reasons(self):
        assert map_finish_reason("stop") == FinishReason.STOP
        assert map_finish_reason("tool_calls") == FinishReason.TOOL_CALLS
        assert map_finish_reason("function_call") == FinishReason.TOOL_CALLS
        assert map_finish_reason("length") == FinishReason.LENGTH
        assert map_finish_reason("content_filter") == FinishReason.CONTENT_FILTER

    def test_unknown_or_missing(self):
        assert map_finish_reason(None) == FinishReason.STOP
        assert map_finish_reason("something_new") == FinishReason.STOP


class TestRequestBody:
    def test_system_prompts_and_sampling(self):
        adapter = OpenAICompatAdapter(url="http://test/v1")
        body = adapter.build_body(
            _options(
                system_prompts=["Be brief."],
                temperature=0.1,
                top_p=0.9,
                max_tokens=64,
                provider_options={"seed": 7},
            ),
            stream=True,
        )
        assert body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert body["messages"][1] == {"role": "user", "content": "hi"}
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}
        assert body["temperature"] == 0.1
        assert body["top_p"] == 0.9
        assert body["max_tokens"] == 64
        assert body["seed"] == 7
        assert "tools" not in body

    def test_tools_and_tool_messages(self):
        adapter = OpenAICompatAdapter(url="http://test/v1")
        call = ToolCall(id="call_1", function=FunctionCall("lookup_weather", "{}"))
        messages = [
            Message(role="user", content="weather?"),
            Message(role="assistant", content=None, tool_calls=[call]),
            Message(role="tool", content="18C", tool_call_id="call_1", name="lookup_weather"),
        ]
        tool = Tool(name="lookup_weather", description="Weather lookup")
        body = adapter.build_body(_options(messages=messages, tools=[tool]), stream=False)

        assert "stream_options" not in body
        assert body["tool_choice"] == "auto"
        assert body["tools"][0]["function"]["name"] == "lookup_weather"
        assert body["messages"][1]["tool_calls"][0] == {
            "id": "call_1",
            "type": "function",
            "function": {"name": "lookup_weather", "arguments": "{}"},
        }
        assert body["messages"][2] == {
            "role": "tool",
            "content": "18C",
            "tool_call_id": "call_1",
            "name": "lookup_weather",
        }

    async def test_authorization_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            seen["url"] = str(request.url)
            return httpx.Response(200, content=_sse(_delta(finish_reason="stop")))

        await _collect(_adapter(handler), _options())
        assert seen["auth"] == "Bearer sk-test"
        assert seen["url"] == "http://test/v1/chat/completions"


class TestChatStream:
    async def test_content_stream(self):
        usage_event = {
            "model": "gpt-4o",
            "choices": [],
            "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
        }
        body = _sse(
            _delta(content="Hel"),
            _delta(content="lo"),
            _delta(finish_reason="stop"),
            usage_event,
        )
        chunks = await _collect(_adapter(lambda r: httpx.Response(200, content=body)), _options())

        content = [c for c in chunks if isinstance(c, ContentChunk)]
        assert [c.delta for c in content] == ["Hel", "lo"]
        assert content[-1].content == "Hello"

        done = chunks[-1]
        assert isinstance(done, DoneChunk)
        assert done.finish_reason == FinishReason.STOP
        assert done.usage.total_tokens == 7
        assert sum(isinstance(c, DoneChunk) for c in chunks) == 1

    async def test_tool_call_fragments(self):
        body = _sse(
            _delta(tool_calls=[{
                "index": 0,
                "id": "call_1",
                "type": "function",
                "function": {"name": "lookup_weather", "arguments": ""},
            }]),
            _delta(tool_calls=[{"index": 0, "function": {"arguments": '{"city":'}}]),
            _delta(tool_calls=[{"index": 0, "function": {"arguments": '"Paris"}'}}]),
            _delta(finish_reason="tool_calls"),
        )
        chunks = await _collect(_adapter(lambda r: httpx.Response(200, content=body)), _options())

        fragments = [c for c in chunks if isinstance(c, ToolCallChunk)]
        assert len(fragments) == 3
        assert fragments[0].tool_call.id == "call_1"
        assert fragments[0].tool_call.name == "lookup_weather"
        assert fragments[1].tool_call.id == ""
        assert "".join(f.tool_call.arguments for f in fragments) == '{"city":"Paris"}'
        assert chunks[-1].finish_reason == FinishReason.TOOL_CALLS

    async def test_multibyte_character_split_across_reads(self):
        body = _sse(
            _delta(content="café"),
            _delta(tool_calls=[{
                "index": 0,
                "id": "call_1",
                "function": {"name": "lookup_weather", "arguments": '{"city":"Zürich"}'},
            }]),
            _delta(finish_reason="tool_calls"),
        )
        # Cut inside the two-byte encodings of both non-ASCII characters.
        cut_e = body.index("é".encode()) + 1
        cut_u = body.index("ü".encode()) + 1

        async def pieces():
            yield body[:cut_e]
            yield body[cut_e:cut_u]
            yield body[cut_u:]

        def handler(request):
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream; charset=utf-8"},
                content=pieces(),
            )

        chunks = await _collect(_adapter(handler), _options())

        content = [c for c in chunks if isinstance(c, ContentChunk)]
        assert "".join(c.delta for c in content) == "café"
        fragments = [c for c in chunks if isinstance(c, ToolCallChunk)]
        assert json.loads(fragments[0].tool_call.arguments) == {"city": "Zürich"}

    async def test_stream_without_done_sentinel(self):
        body = _sse(_delta(content="partial"), done=False)
        chunks = await _collect(_adapter(lambda r: httpx.Response(200, content=body)), _options())
        assert isinstance(chunks[-1], DoneChunk)
        assert chunks[-1].finish_reason == FinishReason.STOP

    async def test_unparseable_lines_skipped(self):
        body = b"data: not json\n\n: keep-alive\n\n" + _sse(_delta(content="ok"))
        chunks = await _collect(_adapter(lambda r: httpx.Response(200, content=body)), _options())
        assert [c.type for c in chunks] == ["content", "done"]

    async def test_client_error_becomes_error_chunk(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, text="bad request")

        chunks = await _collect(_adapter(handler), _options())

        assert len(calls) == 1
        assert isinstance(chunks[0], ErrorChunk)
        assert "HTTP 400" in chunks[0].message
        assert chunks[-1].finish_reason == FinishReason.ERROR
        assert len(chunks) == 2

    async def test_server_error_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, content=_sse(_delta(content="ok")))

        chunks = await _collect(_adapter(handler, max_retries=2), _options())
        assert len(attempts) == 3
        assert chunks[0].delta == "ok"

    async def test_retries_exhausted(self):
        chunks = await _collect(
            _adapter(lambda r: httpx.Response(429), max_retries=1), _options()
        )
        assert [c.type for c in chunks] == ["error", "done"]
        assert chunks[0].message == "HTTP 429"

    async def test_transport_error_raised(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(httpx.ConnectError):
            await _collect(_adapter(handler, max_retries=1), _options())


class TestNonStreaming:
    async def test_chat_completion(self):
        def handler(request):
            payload = json.loads(request.content)
            assert payload["stream"] is False
            return httpx.Response(200, json={
                "id": "chatcmpl-1",
                "model": "gpt-4o",
                "choices": [{
                    "message": {
                        "role": "assistant",
                        "content": None,
                        "tool_calls": [{
                            "id": "call_9",
                            "type": "function",
                            "function": {"name": "echo", "arguments": '{"message":"x"}'},
                        }],
                    },
                    "finish_reason": "tool_calls",
                }],
                "usage": {"prompt_tokens": 4, "completion_tokens": 6, "total_tokens": 10},
            })

        result = await _adapter(handler).chat_completion(_options())

        assert result.id == "chatcmpl-1"
        assert result.content is None
        assert result.finish_reason == FinishReason.TOOL_CALLS
        assert result.tool_calls[0].id == "call_9"
        assert result.tool_calls[0].arguments == '{"message":"x"}'
        assert result.usage.total_tokens == 10

    async def test_chat_completion_http_error(self):
        adapter = _adapter(lambda r: httpx.Response(401, json={"error": "nope"}))
        with pytest.raises(httpx.HTTPStatusError):
            await adapter.chat_completion(_options())

    async def test_create_embeddings(self):
        def handler(request):
            assert request.url.path == "/v1/embeddings"
            payload = json.loads(request.content)
            assert payload["dimensions"] == 2
            return httpx.Response(200, json={
                "model": "text-embedding-3-small",
                "data": [
                    {"index": 1, "embedding": [0.3, 0.4]},
                    {"index": 0, "embedding": [0.1, 0.2]},
                ],
                "usage": {"prompt_tokens": 2, "total_tokens": 2},
            })

        result = await _adapter(handler).create_embeddings(
            EmbeddingOptions(model="text-embedding-3-small", input=["a", "b"], dimensions=2)
        )
        assert result.embeddings == [[0.1, 0.2], [0.3, 0.4]]
        assert result.usage.prompt_tokens == 2
        assert result.id.startswith("emb-")

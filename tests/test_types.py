"""Tests for the canonical stream types."""

import pytest

from chatloop.llm.types import (
    ApprovalChunk,
    ChatOptions,
    ContentChunk,
    DoneChunk,
    FinishReason,
    FunctionCall,
    ToolCall,
    ToolCallChunk,
    Usage,
)


class TestChunks:
    def test_type_discriminators(self):
        call = ToolCall(id="c", function=FunctionCall(name="n", arguments=""))
        assert ContentChunk(delta="a", content="a").type == "content"
        assert ToolCallChunk(index=0, tool_call=call).type == "tool_call"
        assert DoneChunk(finish_reason=FinishReason.STOP).type == "done"
        assert ApprovalChunk(tool_call_id="c", tool_name="n").type == "approval"

    def test_discriminator_not_settable(self):
        with pytest.raises(TypeError):
            ContentChunk(delta="a", content="a", type="done")

    def test_ids_are_unique(self):
        a = ContentChunk(delta="", content="")
        b = ContentChunk(delta="", content="")
        assert a.id != b.id
        assert a.id.startswith("chunk-")

    def test_to_dict_nests_records(self):
        chunk = DoneChunk(
            model="gpt-4o",
            finish_reason=FinishReason.TOOL_CALLS,
            usage=Usage(prompt_tokens=1, completion_tokens=2, total_tokens=3),
        )
        d = chunk.to_dict()
        assert d["type"] == "done"
        assert d["finish_reason"] == "tool_calls"
        assert d["usage"] == {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3}
        assert isinstance(d["timestamp"], int)


class TestToolCall:
    def test_read_through_properties(self):
        call = ToolCall(id="c1", function=FunctionCall(name="echo", arguments="{}"))
        assert call.name == "echo"
        assert call.arguments == "{}"
        assert call.type == "function"

    def test_frozen(self):
        call = ToolCall(id="c1", function=FunctionCall(name="echo", arguments="{}"))
        with pytest.raises(AttributeError):
            call.id = "c2"


class TestChatOptions:
    def test_defaults(self):
        opts = ChatOptions(model="m", messages=[])
        assert opts.max_iterations == 5
        assert opts.stream is False
        assert opts.provider_options == {}

    @pytest.mark.parametrize("bad", [0, -1, 1.5, True, "3"])
    def test_rejects_invalid_budget(self, bad):
        with pytest.raises(ValueError, match="max_iterations"):
            ChatOptions(model="m", messages=[], max_iterations=bad)

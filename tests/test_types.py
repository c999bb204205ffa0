"""Tests for chatwire.llm.types."""

from __future__ import annotations

import pytest

from chatwire.llm.types import (
    InlineDataPart,
    Message,
    Role,
    StreamDelta,
    ToolCall,
    ToolSpec,
)


class TestMessage:
    def test_role_coerced_from_string(self):
        assert Message(role="user", content="hi").role is Role.USER

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            Message(role="robot", content="hi")

    def test_tool_message_requires_call_id(self):
        with pytest.raises(ValueError, match="tool_call_id"):
            Message(role=Role.TOOL, content="out").validate()
        Message(role=Role.TOOL, content="out", tool_call_id="c1").validate()

    def test_tool_calls_only_on_assistant(self):
        tc = ToolCall(id="c1", name="f", arguments={})
        with pytest.raises(ValueError, match="assistant"):
            Message(role=Role.USER, content="", tool_calls=[tc]).validate()
        Message(role=Role.ASSISTANT, content="", tool_calls=[tc]).validate()

    def test_tool_call_needs_name(self):
        tc = ToolCall(id="c1", name="", arguments={})
        with pytest.raises(ValueError, match="empty name"):
            Message(role=Role.ASSISTANT, content="", tool_calls=[tc]).validate()


class TestToolSpec:
    def test_normalize_fills_defaults(self):
        assert ToolSpec(name="t").normalize_schema() == {"type": "object", "properties": {}}

    def test_normalize_keeps_given_schema(self):
        schema = {"type": "object", "properties": {"a": {"type": "string"}}, "required": ["a"]}
        spec = ToolSpec(name="t", parameters=schema)
        assert spec.normalize_schema() == schema
        assert spec.normalize_schema() is not schema


class TestMisc:
    def test_inline_data_is_image(self):
        assert InlineDataPart("image/webp", "").is_image
        assert not InlineDataPart("audio/wav", "").is_image

    def test_stream_delta_terminal(self):
        assert not StreamDelta(text="a").is_terminal
        assert StreamDelta(done=True).is_terminal
        assert StreamDelta(finish_reason="stop").is_terminal

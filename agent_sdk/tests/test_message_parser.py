"""Tests for agent_sdk.message_parser and message serialization."""

import pytest

from agent_sdk.errors import MessageParseError
from agent_sdk.message_parser import is_message_type, parse_content_block, parse_message
from agent_sdk.types import (
    AssistantMessage,
    PartialTextMessage,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    TextBlock,
    TextMessage,
    ThinkingBlock,
    ToolResultBlock,
    ToolResultMessage,
    ToolUseBlock,
    ToolUseMessage,
    UserMessage,
)


def _result(**overrides):
    data = {
        "type": "result",
        "subtype": "success",
        "duration_ms": 1500,
        "duration_api_ms": 1200,
        "is_error": False,
        "num_turns": 2,
        "session_id": "sess-42",
    }
    data.update(overrides)
    return data


class TestStructuredMessages:
    """Decoding of the structured message forms."""

    def test_user_with_string_content(self):
        msg = parse_message({"type": "user", "content": "Hello"})
        assert isinstance(msg, UserMessage)
        assert msg.content == "Hello"
        assert msg.parent_tool_use_id is None
        assert msg.message_id == "user_message"

    def test_user_with_tool_result_blocks(self):
        msg = parse_message({
            "type": "user",
            "content": [{"type": "tool_result", "tool_use_id": "tu_1", "content": "ok"}],
            "parent_tool_use_id": "tu_0",
        })
        assert msg.content == [ToolResultBlock(tool_use_id="tu_1", content="ok")]
        assert msg.parent_tool_use_id == "tu_0"

    def test_assistant_with_mixed_blocks(self):
        msg = parse_message({
            "type": "assistant",
            "model": "test-model",
            "content": [
                {"type": "thinking", "thinking": "let me see", "signature": "sig"},
                {"type": "text", "text": "Running ls"},
                {"type": "tool_use", "id": "tu_1", "name": "Bash", "input": {"command": "ls"}},
            ],
        })
        assert isinstance(msg, AssistantMessage)
        assert msg.model == "test-model"
        assert msg.content == [
            ThinkingBlock(thinking="let me see", signature="sig"),
            TextBlock(text="Running ls"),
            ToolUseBlock(id="tu_1", name="Bash", input={"command": "ls"}),
        ]
        assert msg.message_id == "assistant_message"

    def test_system(self):
        msg = parse_message({"type": "system", "subtype": "init", "data": {"cwd": "/tmp"}})
        assert isinstance(msg, SystemMessage)
        assert msg.subtype == "init"
        assert msg.data == {"cwd": "/tmp"}

    def test_result_is_terminal(self):
        msg = parse_message(_result(total_cost_usd=0.01, result="done"))
        assert isinstance(msg, ResultMessage)
        assert msg.is_terminal
        assert msg.num_turns == 2
        assert msg.total_cost_usd == 0.01
        assert msg.result == "done"

    def test_non_result_messages_are_not_terminal(self):
        msg = parse_message({"type": "user", "content": "Hello"})
        assert not msg.is_terminal

    def test_stream_event(self):
        msg = parse_message({
            "type": "stream_event",
            "uuid": "u-1",
            "session_id": "sess-1",
            "event": {"type": "content_block_delta"},
        })
        assert isinstance(msg, StreamEvent)
        assert msg.event == {"type": "content_block_delta"}
        assert msg.message_id == "stream_event"


class TestLegacyMessages:
    """Decoding of the legacy text/tool forms."""

    def test_text_collects_extra_keys_as_metadata(self):
        msg = parse_message({
            "type": "text",
            "message_id": "m1",
            "content": "hi",
            "role": "assistant",
            "timestamp": 123,
        })
        assert isinstance(msg, TextMessage)
        assert msg.message_id == "m1"
        assert msg.metadata == {"timestamp": 123}

    def test_text_to_dict_flattens_metadata(self):
        msg = parse_message({
            "type": "text",
            "message_id": "m1",
            "content": "hi",
            "role": "assistant",
            "timestamp": 123,
        })
        assert msg.to_dict() == {
            "type": "text",
            "message_id": "m1",
            "content": "hi",
            "role": "assistant",
            "timestamp": 123,
        }

    def test_partial_text(self):
        msg = parse_message({
            "type": "partial_text", "message_id": "m2", "content": "h", "role": "assistant",
        })
        assert isinstance(msg, PartialTextMessage)

    def test_tool_use(self):
        msg = parse_message({
            "type": "tool_use",
            "message_id": "m3",
            "tool_name": "Read",
            "tool_input": {"path": "a.py"},
            "role": "assistant",
        })
        assert isinstance(msg, ToolUseMessage)
        assert msg.tool_input == {"path": "a.py"}

    def test_tool_result_accepts_any_result_value(self):
        msg = parse_message({
            "type": "tool_result",
            "message_id": "m4",
            "tool_name": "Read",
            "tool_result": ["line 1", "line 2"],
            "role": "tool",
        })
        assert isinstance(msg, ToolResultMessage)
        assert msg.tool_result == ["line 1", "line 2"]


class TestStrictDecoding:
    """Frames that must not decode as messages."""

    def test_non_dict_rejected(self):
        with pytest.raises(MessageParseError):
            parse_message(["not", "a", "dict"])

    def test_unknown_type_rejected(self):
        with pytest.raises(MessageParseError, match="Unknown message type"):
            parse_message({"type": "control_response", "request_id": "req_1"})

    def test_missing_type_rejected(self):
        with pytest.raises(MessageParseError):
            parse_message({"content": "Hello"})

    def test_missing_required_field(self):
        with pytest.raises(MessageParseError, match="model"):
            parse_message({"type": "assistant", "content": []})

    def test_wrong_field_type(self):
        with pytest.raises(MessageParseError):
            parse_message({"type": "system", "subtype": "init", "data": "oops"})

    def test_bool_not_accepted_as_int(self):
        with pytest.raises(MessageParseError):
            parse_message(_result(num_turns=True))

    def test_error_keeps_offending_data(self):
        frame = {"type": "assistant", "content": []}
        with pytest.raises(MessageParseError) as exc_info:
            parse_message(frame)
        assert exc_info.value.data == frame

    def test_unknown_content_block(self):
        with pytest.raises(MessageParseError, match="content block"):
            parse_content_block({"type": "image", "source": {}})

    def test_is_message_type(self):
        assert is_message_type("assistant")
        assert is_message_type("partial_tool_use")
        assert not is_message_type("control_request")
        assert not is_message_type(None)


class TestSerialization:
    """Message.to_dict() produces the wire form."""

    def test_assistant_to_dict(self):
        msg = AssistantMessage(content=[TextBlock(text="hi")], model="m")
        assert msg.to_dict() == {
            "type": "assistant",
            "content": [{"type": "text", "text": "hi"}],
            "model": "m",
            "parent_tool_use_id": None,
        }

    def test_result_to_dict_parses_back(self):
        msg = parse_message(_result())
        assert parse_message(msg.to_dict()) == msg

    def test_messages_are_immutable(self):
        msg = UserMessage(content="hi")
        with pytest.raises(AttributeError):
            msg.content = "changed"

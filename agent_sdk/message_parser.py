"""Decode inbound frames into typed conversation messages."""

import logging
from typing import Any, Callable, Dict, List, Union

from .errors import MessageParseError
from .types import (
    AssistantMessage,
    ContentBlock,
    Message,
    MessageType,
    PartialTextMessage,
    PartialToolUseMessage,
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

logger = logging.getLogger(__name__)


def _require(data: Dict[str, Any], key: str, expected: Union[type, tuple]) -> Any:
    """Fetch a required key, checking its type."""
    if key not in data:
        raise MessageParseError(
            f"Missing required field '{key}' in {data.get('type')} message", data
        )
    value = data[key]
    expected_types = expected if isinstance(expected, tuple) else (expected,)
    # bool is an int subclass; numeric fields must not accept it
    if isinstance(value, bool) and bool not in expected_types:
        raise MessageParseError(f"Field '{key}' has invalid type bool", data)
    if not isinstance(value, expected):
        raise MessageParseError(
            f"Field '{key}' has invalid type {type(value).__name__}", data
        )
    return value


def _optional(data: Dict[str, Any], key: str, expected: Union[type, tuple]) -> Any:
    value = data.get(key)
    if value is None:
        return None
    return _require(data, key, expected)


def parse_content_block(data: Any) -> ContentBlock:
    """Parse a single content block.

    Raises:
        MessageParseError: If the block type is unknown or malformed.
    """
    if not isinstance(data, dict):
        raise MessageParseError(f"Content block must be an object, got {type(data).__name__}", data)

    block_type = data.get("type")
    if block_type == "text":
        return TextBlock(text=_require(data, "text", str))
    if block_type == "thinking":
        return ThinkingBlock(
            thinking=_require(data, "thinking", str),
            signature=_require(data, "signature", str),
        )
    if block_type == "tool_use":
        return ToolUseBlock(
            id=_require(data, "id", str),
            name=_require(data, "name", str),
            input=_require(data, "input", dict),
        )
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=_require(data, "tool_use_id", str),
            content=data.get("content"),
            is_error=_optional(data, "is_error", bool),
        )
    raise MessageParseError(f"Unknown content block type: {block_type}", data)


def _parse_blocks(data: Dict[str, Any], key: str) -> List[ContentBlock]:
    return [parse_content_block(block) for block in _require(data, key, list)]


def _metadata(data: Dict[str, Any], known: tuple) -> Dict[str, Any]:
    """Collect keys not claimed by a legacy message's declared fields."""
    return {k: v for k, v in data.items() if k not in known and k != "type"}


def _parse_user(data: Dict[str, Any]) -> Message:
    content = _require(data, "content", (str, list))
    if isinstance(content, list):
        content = _parse_blocks(data, "content")
    return UserMessage(
        content=content,
        parent_tool_use_id=_optional(data, "parent_tool_use_id", str),
    )


def _parse_assistant(data: Dict[str, Any]) -> Message:
    return AssistantMessage(
        content=_parse_blocks(data, "content"),
        model=_require(data, "model", str),
        parent_tool_use_id=_optional(data, "parent_tool_use_id", str),
    )


def _parse_system(data: Dict[str, Any]) -> Message:
    return SystemMessage(
        subtype=_require(data, "subtype", str),
        data=_require(data, "data", dict),
    )


def _parse_result(data: Dict[str, Any]) -> Message:
    return ResultMessage(
        subtype=_require(data, "subtype", str),
        duration_ms=_require(data, "duration_ms", int),
        duration_api_ms=_require(data, "duration_api_ms", int),
        is_error=_require(data, "is_error", bool),
        num_turns=_require(data, "num_turns", int),
        session_id=_require(data, "session_id", str),
        total_cost_usd=_optional(data, "total_cost_usd", (int, float)),
        usage=_optional(data, "usage", dict),
        result=_optional(data, "result", str),
    )


def _parse_stream_event(data: Dict[str, Any]) -> Message:
    if "event" not in data:
        raise MessageParseError("Missing required field 'event' in stream_event message", data)
    return StreamEvent(
        uuid=_require(data, "uuid", str),
        session_id=_require(data, "session_id", str),
        event=data["event"],
        parent_tool_use_id=_optional(data, "parent_tool_use_id", str),
    )


def _parse_text_like(cls: type) -> Callable[[Dict[str, Any]], Message]:
    def parse(data: Dict[str, Any]) -> Message:
        return cls(
            message_id=_require(data, "message_id", str),
            content=_require(data, "content", str),
            role=_require(data, "role", str),
            metadata=_metadata(data, ("message_id", "content", "role")),
        )
    return parse


def _parse_tool_use_like(cls: type) -> Callable[[Dict[str, Any]], Message]:
    def parse(data: Dict[str, Any]) -> Message:
        return cls(
            message_id=_require(data, "message_id", str),
            tool_name=_require(data, "tool_name", str),
            tool_input=_require(data, "tool_input", dict),
            role=_require(data, "role", str),
            metadata=_metadata(data, ("message_id", "tool_name", "tool_input", "role")),
        )
    return parse


def _parse_tool_result(data: Dict[str, Any]) -> Message:
    if "tool_result" not in data:
        raise MessageParseError("Missing required field 'tool_result' in tool_result message", data)
    return ToolResultMessage(
        message_id=_require(data, "message_id", str),
        tool_name=_require(data, "tool_name", str),
        tool_result=data["tool_result"],
        role=_require(data, "role", str),
        metadata=_metadata(data, ("message_id", "tool_name", "tool_result", "role")),
    )


# Map of message type -> parser
_PARSERS: Dict[str, Callable[[Dict[str, Any]], Message]] = {
    MessageType.USER.value: _parse_user,
    MessageType.ASSISTANT.value: _parse_assistant,
    MessageType.SYSTEM.value: _parse_system,
    MessageType.RESULT.value: _parse_result,
    MessageType.STREAM_EVENT.value: _parse_stream_event,
    MessageType.TEXT.value: _parse_text_like(TextMessage),
    MessageType.PARTIAL_TEXT.value: _parse_text_like(PartialTextMessage),
    MessageType.TOOL_USE.value: _parse_tool_use_like(ToolUseMessage),
    MessageType.PARTIAL_TOOL_USE.value: _parse_tool_use_like(PartialToolUseMessage),
    MessageType.TOOL_RESULT.value: _parse_tool_result,
}


def is_message_type(message_type: Any) -> bool:
    """Check if a ``type`` value names a conversation message."""
    return isinstance(message_type, str) and message_type in _PARSERS


def parse_message(data: Any) -> Message:
    """Parse a frame into a typed conversation message.

    Args:
        data: A decoded JSON frame.

    Returns:
        The typed message.

    Raises:
        MessageParseError: If the frame is not an object, its type is not a
            message type, or required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise MessageParseError(
            f"Invalid message data type (expected dict, got {type(data).__name__})", data
        )

    message_type = data.get("type")
    parser = _PARSERS.get(message_type) if isinstance(message_type, str) else None
    if parser is None:
        raise MessageParseError(f"Unknown message type: {message_type}", data)

    return parser(data)


__all__ = [
    "is_message_type",
    "parse_content_block",
    "parse_message",
]

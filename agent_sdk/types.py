"""Data types for the agent protocol.

This module defines the conversation messages that flow from the agent
process to the caller, the content blocks they carry, and the permission
and hook types exchanged with caller-supplied callbacks.

Messages are immutable dataclasses tagged by their ``type`` field on the
wire. Use :func:`agent_sdk.message_parser.parse_message` to decode a
frame and ``Message.to_dict()`` to encode one.

Message Flow:
    Agent -> Caller: user, assistant, system, result, stream_event
    Legacy forms:    text, tool_use, tool_result, partial_text, partial_tool_use
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    FrozenSet,
    List,
    Literal,
    Optional,
    Union,
)


# =============================================================================
# Message Types
# =============================================================================

class MessageType(str, Enum):
    """All conversation message types in the protocol."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    RESULT = "result"
    STREAM_EVENT = "stream_event"

    # Legacy forms
    TEXT = "text"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    PARTIAL_TEXT = "partial_text"
    PARTIAL_TOOL_USE = "partial_tool_use"


def _to_wire(value: Any) -> Any:
    """Recursively convert dataclass values to JSON-ready structures."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_to_wire(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_wire(v) for k, v in value.items()}
    return value


# =============================================================================
# Content Blocks
# =============================================================================

@dataclass(frozen=True)
class TextBlock:
    """Plain text produced by the model."""
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ThinkingBlock:
    """Extended thinking output with its verification signature."""
    thinking: str
    signature: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "thinking", "thinking": self.thinking, "signature": self.signature}


@dataclass(frozen=True)
class ToolUseBlock:
    """The model asked to run a tool."""
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolResultBlock:
    """Output of a tool run, echoed back into the conversation."""
    tool_use_id: str
    content: Optional[Any] = None
    is_error: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
            "is_error": self.is_error,
        }


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock]


# =============================================================================
# Conversation Messages
# =============================================================================

class Message:
    """Base class for all conversation messages.

    Subclasses are frozen dataclasses declaring their wire tag in the
    ``type`` class variable.
    """

    type: ClassVar[MessageType]
    message_id: str

    @property
    def is_terminal(self) -> bool:
        """True if this message ends a streaming exchange."""
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: Dict[str, Any] = {"type": self.type.value}
        for f in fields(self):
            data[f.name] = _to_wire(getattr(self, f.name))
        return data


class _StructuredMessage(Message):
    """Structured forms report a fixed per-kind label as their id."""

    @property
    def message_id(self) -> str:
        return f"{self.type.value}_message"


@dataclass(frozen=True)
class UserMessage(_StructuredMessage):
    """A user turn, or a tool result relayed on the user's behalf."""
    type: ClassVar[MessageType] = MessageType.USER
    content: Union[str, List[ContentBlock]]
    parent_tool_use_id: Optional[str] = None


@dataclass(frozen=True)
class AssistantMessage(_StructuredMessage):
    """A complete assistant turn."""
    type: ClassVar[MessageType] = MessageType.ASSISTANT
    content: List[ContentBlock]
    model: str
    parent_tool_use_id: Optional[str] = None


@dataclass(frozen=True)
class SystemMessage(_StructuredMessage):
    """System notification (init, status, compaction, ...)."""
    type: ClassVar[MessageType] = MessageType.SYSTEM
    subtype: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResultMessage(_StructuredMessage):
    """Final message of an exchange, with completion metadata."""
    type: ClassVar[MessageType] = MessageType.RESULT
    subtype: str
    duration_ms: int
    duration_api_ms: int
    is_error: bool
    num_turns: int
    session_id: str
    total_cost_usd: Optional[float] = None
    usage: Optional[Dict[str, Any]] = None
    result: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class StreamEvent(_StructuredMessage):
    """Raw partial-output event from the model stream."""
    type: ClassVar[MessageType] = MessageType.STREAM_EVENT
    uuid: str
    session_id: str
    event: Any
    parent_tool_use_id: Optional[str] = None

    @property
    def message_id(self) -> str:
        return "stream_event"


class _LegacyMessage(Message):
    """Legacy forms carry an explicit id and flatten unknown keys."""

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        metadata = data.pop("metadata", None) or {}
        for key, value in metadata.items():
            data.setdefault(key, value)
        return data


@dataclass(frozen=True)
class TextMessage(_LegacyMessage):
    type: ClassVar[MessageType] = MessageType.TEXT
    message_id: str
    content: str
    role: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PartialTextMessage(_LegacyMessage):
    type: ClassVar[MessageType] = MessageType.PARTIAL_TEXT
    message_id: str
    content: str
    role: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolUseMessage(_LegacyMessage):
    type: ClassVar[MessageType] = MessageType.TOOL_USE
    message_id: str
    tool_name: str
    tool_input: Dict[str, Any]
    role: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PartialToolUseMessage(_LegacyMessage):
    type: ClassVar[MessageType] = MessageType.PARTIAL_TOOL_USE
    message_id: str
    tool_name: str
    tool_input: Dict[str, Any]
    role: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultMessage(_LegacyMessage):
    type: ClassVar[MessageType] = MessageType.TOOL_RESULT
    message_id: str
    tool_name: str
    tool_result: Any
    role: str
    metadata: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Permissions
# =============================================================================

PermissionUpdateType = Literal[
    "addRules",
    "replaceRules",
    "removeRules",
    "setMode",
    "addDirectories",
    "removeDirectories",
]

PERMISSION_UPDATE_TYPES: FrozenSet[str] = frozenset({
    "addRules",
    "replaceRules",
    "removeRules",
    "setMode",
    "addDirectories",
    "removeDirectories",
})

PermissionMode = Literal["default", "acceptEdits", "plan", "bypassPermissions"]
PermissionBehavior = Literal["allow", "deny", "ask"]


@dataclass(frozen=True)
class PermissionRuleValue:
    """A single permission rule: a tool and optional rule content."""
    tool_name: str
    rule_content: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"toolName": self.tool_name}
        if self.rule_content is not None:
            data["ruleContent"] = self.rule_content
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PermissionRuleValue':
        return cls(tool_name=data["toolName"], rule_content=data.get("ruleContent"))


@dataclass
class PermissionUpdate:
    """A change to the permission state.

    Attributes:
        type: One of ``PERMISSION_UPDATE_TYPES``.
        rules: Rules for addRules/replaceRules/removeRules.
        behavior: Behavior the rules apply to ("allow", "deny", "ask").
        mode: Target mode for setMode.
        directories: Paths for addDirectories/removeDirectories.
        destination: Where the update should be persisted (session,
            projectSettings, ...). Passed through untouched.
    """
    type: str
    rules: Optional[List[PermissionRuleValue]] = None
    behavior: Optional[str] = None
    mode: Optional[str] = None
    directories: Optional[List[str]] = None
    destination: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Dict[str, Any] = {"type": self.type}
        if self.destination is not None:
            data["destination"] = self.destination
        if self.rules is not None:
            data["rules"] = [rule.to_dict() for rule in self.rules]
        if self.behavior is not None:
            data["behavior"] = self.behavior
        if self.mode is not None:
            data["mode"] = self.mode
        if self.directories is not None:
            data["directories"] = list(self.directories)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PermissionUpdate':
        """Create from dictionary."""
        rules = data.get("rules")
        return cls(
            type=data["type"],
            rules=[PermissionRuleValue.from_dict(r) for r in rules] if rules is not None else None,
            behavior=data.get("behavior"),
            mode=data.get("mode"),
            directories=data.get("directories"),
            destination=data.get("destination"),
        )


@dataclass
class ToolPermissionContext:
    """Context handed to the permission predicate."""
    signal: Optional[Any] = None  # Reserved for abort signal support
    suggestions: List[PermissionUpdate] = field(default_factory=list)


@dataclass
class PermissionResultAllow:
    """Allow the tool call, optionally rewriting its input."""
    updated_input: Optional[Dict[str, Any]] = None
    updated_permissions: Optional[List[PermissionUpdate]] = None
    behavior: Literal["allow"] = "allow"

    def to_response(self, original_input: Dict[str, Any]) -> Dict[str, Any]:
        """Build the wire response for a can_use_tool request."""
        response: Dict[str, Any] = {
            "behavior": "allow",
            "updatedInput": (
                self.updated_input if self.updated_input is not None else original_input
            ),
        }
        if self.updated_permissions is not None:
            response["updatedPermissions"] = [u.to_dict() for u in self.updated_permissions]
        return response


@dataclass
class PermissionResultDeny:
    """Deny the tool call.

    ``interrupt`` asks the agent to abort the rest of the turn as well.
    """
    message: str = ""
    interrupt: bool = False
    behavior: Literal["deny"] = "deny"

    def to_response(self, original_input: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {"behavior": "deny", "message": self.message, "interrupt": self.interrupt}


PermissionResult = Union[PermissionResultAllow, PermissionResultDeny]

# Caller-supplied permission predicate
CanUseTool = Callable[
    [str, Dict[str, Any], ToolPermissionContext],
    Awaitable[PermissionResult],
]


# =============================================================================
# Hooks
# =============================================================================

HookEvent = Literal[
    "PreToolUse",
    "PostToolUse",
    "UserPromptSubmit",
    "Stop",
    "SubagentStop",
    "PreCompact",
]


@dataclass
class HookContext:
    """Context handed to hook callbacks."""
    signal: Optional[Any] = None  # Reserved for abort signal support


# Caller-supplied hook: (input_data, tool_use_id, context) -> output
HookCallback = Callable[
    [Dict[str, Any], Optional[str], HookContext],
    Awaitable[Dict[str, Any]],
]


@dataclass(frozen=True)
class HookMatcher:
    """Hook functions bound to one event, optionally filtered by a pattern.

    Attributes:
        matcher: Tool name pattern (e.g. ``"Bash"`` or ``"Write|Edit"``);
            ``None`` matches every instance of the event.
        hooks: Callbacks run in order when the matcher applies.
    """
    matcher: Optional[str] = None
    hooks: List[HookCallback] = field(default_factory=list)


__all__ = [
    "AssistantMessage",
    "CanUseTool",
    "ContentBlock",
    "HookCallback",
    "HookContext",
    "HookEvent",
    "HookMatcher",
    "Message",
    "MessageType",
    "PERMISSION_UPDATE_TYPES",
    "PartialTextMessage",
    "PartialToolUseMessage",
    "PermissionBehavior",
    "PermissionMode",
    "PermissionResult",
    "PermissionResultAllow",
    "PermissionResultDeny",
    "PermissionRuleValue",
    "PermissionUpdate",
    "PermissionUpdateType",
    "ResultMessage",
    "StreamEvent",
    "SystemMessage",
    "TextBlock",
    "TextMessage",
    "ThinkingBlock",
    "ToolPermissionContext",
    "ToolResultBlock",
    "ToolResultMessage",
    "ToolUseBlock",
    "ToolUseMessage",
    "UserMessage",
]

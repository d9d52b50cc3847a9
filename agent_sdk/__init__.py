"""Agent SDK - Control protocol engine and client for agent processes.

Usage:
    from agent_sdk import AgentClient, Query, StreamTransport
    from agent_sdk import PermissionResultAllow, PermissionResultDeny, HookMatcher
"""

from agent_sdk.client import (
    AgentClient,
    ClientConfig,
    ControlConfig,
    TransportConfig,
    load_client_config,
)
from agent_sdk.classifier import ClassifiedFrame, FrameKind, classify_frame
from agent_sdk.control import ControlRequestRegistry, ControlResult
from agent_sdk.errors import (
    AgentError,
    ConnectionClosedError,
    ControlRequestError,
    ControlRequestTimeoutError,
    MessageParseError,
    ProcessError,
    SerializationError,
    ToolExecutionError,
    TransportError,
)
from agent_sdk.hooks import HookCallbackRegistry, convert_hook_output
from agent_sdk.message_parser import parse_message
from agent_sdk.permissions import PermissionGate, PermissionState
from agent_sdk.query import Query, SessionState
from agent_sdk.transport import StreamTransport, Transport
from agent_sdk.types import (
    AssistantMessage,
    CanUseTool,
    ContentBlock,
    HookCallback,
    HookContext,
    HookMatcher,
    Message,
    MessageType,
    PartialTextMessage,
    PartialToolUseMessage,
    PermissionResult,
    PermissionResultAllow,
    PermissionResultDeny,
    PermissionRuleValue,
    PermissionUpdate,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    TextBlock,
    TextMessage,
    ThinkingBlock,
    ToolPermissionContext,
    ToolResultBlock,
    ToolResultMessage,
    ToolUseBlock,
    ToolUseMessage,
    UserMessage,
)

__all__ = [
    # Client
    "AgentClient",
    "ClientConfig",
    "ControlConfig",
    "TransportConfig",
    "load_client_config",
    # Session
    "Query",
    "SessionState",
    "ControlRequestRegistry",
    "ControlResult",
    "HookCallbackRegistry",
    "PermissionGate",
    "PermissionState",
    "convert_hook_output",
    # Frames
    "ClassifiedFrame",
    "FrameKind",
    "classify_frame",
    "parse_message",
    # Transport
    "StreamTransport",
    "Transport",
    # Errors
    "AgentError",
    "ConnectionClosedError",
    "ControlRequestError",
    "ControlRequestTimeoutError",
    "MessageParseError",
    "ProcessError",
    "SerializationError",
    "ToolExecutionError",
    "TransportError",
    # Types
    "AssistantMessage",
    "CanUseTool",
    "ContentBlock",
    "HookCallback",
    "HookContext",
    "HookMatcher",
    "Message",
    "MessageType",
    "PartialTextMessage",
    "PartialToolUseMessage",
    "PermissionResult",
    "PermissionResultAllow",
    "PermissionResultDeny",
    "PermissionRuleValue",
    "PermissionUpdate",
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

"""Exception hierarchy for the agent SDK.

Every error raised by the SDK derives from :class:`AgentError` so callers
can catch the whole family at once::

    AgentError
    ├── TransportError
    │   └── ConnectionClosedError
    ├── SerializationError
    │   └── MessageParseError
    ├── ProcessError
    │   ├── ControlRequestError
    │   └── ControlRequestTimeoutError
    └── ToolExecutionError
"""

from typing import Any, Optional


class AgentError(Exception):
    """Base class for all SDK errors."""


class TransportError(AgentError):
    """The underlying channel failed while sending or receiving a frame."""


class ConnectionClosedError(TransportError):
    """The peer closed the channel before a frame could be received."""


class SerializationError(AgentError):
    """A frame could not be encoded or decoded."""


class MessageParseError(SerializationError):
    """A frame is JSON but does not match any conversation message shape.

    Attributes:
        data: The offending frame, kept for diagnostics.
    """

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message)
        self.data = data


class ProcessError(AgentError):
    """Protocol-level misuse or failure.

    Raised for control operations outside streaming/initialized state,
    operations on a closed session, unknown permission-update kinds and
    unregistered hook callback ids.
    """


class ControlRequestError(ProcessError):
    """The peer answered a control request with an error string."""

    def __init__(self, subtype: str, message: str):
        super().__init__(message)
        self.subtype = subtype


class ControlRequestTimeoutError(ProcessError):
    """No response to a control request arrived within its timeout."""

    def __init__(self, subtype: str, request_id: str, timeout: float):
        super().__init__(f"Control request timeout: {subtype}")
        self.subtype = subtype
        self.request_id = request_id
        self.timeout = timeout


class ToolExecutionError(AgentError):
    """A caller-supplied hook or permission callback failed."""


__all__ = [
    "AgentError",
    "ConnectionClosedError",
    "ControlRequestError",
    "ControlRequestTimeoutError",
    "MessageParseError",
    "ProcessError",
    "SerializationError",
    "ToolExecutionError",
    "TransportError",
]

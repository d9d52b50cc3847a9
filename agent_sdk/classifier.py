"""Frame classification for the inbound stream.

Every frame read from the transport is either a conversation message, a
control response correlated to one of our requests, a control request
initiated by the peer, or something else. The session routes each kind
to a different consumer; this module only decides which kind a frame is.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .constants import FRAME_CONTROL_REQUEST, FRAME_CONTROL_RESPONSE
from .errors import MessageParseError
from .message_parser import parse_message
from .types import Message

logger = logging.getLogger(__name__)


class FrameKind(str, Enum):
    """Routing decision for an inbound frame."""

    MESSAGE = "message"
    CONTROL_RESPONSE = "control_response"
    CONTROL_REQUEST = "control_request"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedFrame:
    """An inbound frame together with its routing decision.

    Attributes:
        kind: Where the frame should go.
        frame: The frame exactly as received.
        message: The decoded message when ``kind`` is MESSAGE.
    """
    kind: FrameKind
    frame: Any
    message: Optional[Message] = None

    @property
    def request_id(self) -> Optional[str]:
        """Request id of a control frame, if it carries a string one."""
        if isinstance(self.frame, dict):
            request_id = self.frame.get("request_id")
            if isinstance(request_id, str):
                return request_id
        return None


def classify_frame(frame: Any) -> ClassifiedFrame:
    """Classify one inbound frame.

    A frame that decodes as a conversation message is always a MESSAGE,
    even if it also carries control-looking fields. Otherwise the ``type``
    discriminant decides between the two control kinds; anything else is
    UNKNOWN.
    """
    try:
        message = parse_message(frame)
    except MessageParseError:
        pass
    else:
        return ClassifiedFrame(kind=FrameKind.MESSAGE, frame=frame, message=message)

    frame_type = frame.get("type") if isinstance(frame, dict) else None
    if frame_type == FRAME_CONTROL_RESPONSE:
        return ClassifiedFrame(kind=FrameKind.CONTROL_RESPONSE, frame=frame)
    if frame_type == FRAME_CONTROL_REQUEST:
        return ClassifiedFrame(kind=FrameKind.CONTROL_REQUEST, frame=frame)

    logger.debug(f"classify_frame: unrecognized frame type {frame_type!r}")
    return ClassifiedFrame(kind=FrameKind.UNKNOWN, frame=frame)


def control_response_payload(frame: Dict[str, Any]) -> Dict[str, Any]:
    """Split a control response into ``response`` / ``error`` keyword args.

    A present ``response`` field wins; otherwise a string ``error`` field
    is the peer-reported failure. A frame with neither still wakes the
    waiter, with an error.
    """
    if "response" in frame:
        return {"response": frame["response"]}
    error = frame.get("error")
    if error is None:
        return {"error": "No result found for control request"}
    return {"error": error if isinstance(error, str) else str(error)}


__all__ = [
    "ClassifiedFrame",
    "FrameKind",
    "classify_frame",
    "control_response_payload",
]

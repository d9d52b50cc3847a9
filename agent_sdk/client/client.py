"""High-level client for talking to an agent process.

Usage:
    from agent_sdk.client import AgentClient

    async with AgentClient.from_process(proc) as client:
        # One-shot
        reply = await client.query([{"role": "user", "content": "Hello"}])

        # Streaming, one callback per message until the result
        result = await client.query(
            [{"role": "user", "content": "Summarize this repo"}],
            stream=True,
            on_message=print,
        )

        # Full control protocol
        session = client.create_session(can_use_tool=my_permission_check)
        await session.initialize()
        await session.set_model("fast-model")
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from ..constants import FRAME_QUERY
from ..errors import AgentError, MessageParseError, ProcessError, TransportError
from ..message_parser import parse_message
from ..query import Query
from ..transport import StreamTransport, Transport
from ..types import (
    AssistantMessage,
    CanUseTool,
    ContentBlock,
    HookMatcher,
    Message,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    UserMessage,
)
from .config import ClientConfig, load_client_config

logger = logging.getLogger(__name__)

# Sink receiving each streamed message; may be a plain function or a coroutine
MessageSink = Callable[[Message], Any]


class AgentClient:
    """Thin façade over a transport: queries, raw frames and sessions."""

    def __init__(self, transport: Transport, config: Optional[ClientConfig] = None):
        """Initialize the client.

        Args:
            transport: Channel to the agent process.
            config: Client settings; loaded from the default locations when
                omitted.
        """
        self.transport = transport
        self.config = config if config is not None else load_client_config()
        self._closed = False

    @classmethod
    def from_process(
        cls,
        proc: asyncio.subprocess.Process,
        config: Optional[ClientConfig] = None,
    ) -> 'AgentClient':
        """Create a client on the pipes of an already spawned agent process."""
        config = config if config is not None else load_client_config()
        transport = StreamTransport.from_process(
            proc,
            max_line_size=config.transport.max_line_size,
            trace=config.transport.trace_frames,
            trace_log=config.transport.trace_log,
        )
        return cls(transport, config)

    async def __aenter__(self) -> 'AgentClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Raw frames
    # =========================================================================

    async def send_message(self, frame: Union[Message, Dict[str, Any]]) -> None:
        """Write one frame to the agent."""
        if self._closed:
            raise ProcessError("Client is closed")
        if isinstance(frame, Message):
            frame = frame.to_dict()
        try:
            await self.transport.send(frame)
        except AgentError:
            raise
        except Exception as e:
            raise TransportError(f"Failed to send message: {e}") from e

    async def receive_message(self) -> Dict[str, Any]:
        """Read the next raw frame from the agent."""
        if self._closed:
            raise ProcessError("Client is closed")
        try:
            return await self.transport.receive()
        except AgentError:
            raise
        except Exception as e:
            raise TransportError(f"Failed to receive message: {e}") from e

    async def get_next_message(self) -> Message:
        """Read the next frame and decode it as a conversation message.

        Raises:
            MessageParseError: The frame is not a conversation message.
        """
        return parse_message(await self.receive_message())

    # =========================================================================
    # Queries
    # =========================================================================

    async def query(
        self,
        messages: List[Any],
        tools: Optional[List[Any]] = None,
        system: Optional[str] = None,
        stream: bool = False,
        on_message: Optional[MessageSink] = None,
    ) -> Union[Message, Dict[str, Any]]:
        """Send a query to the agent.

        Args:
            messages: Conversation so far; Message objects or wire dicts.
            tools: Tool definitions offered to the agent.
            system: System prompt.
            stream: Ask the agent to stream intermediate messages.
            on_message: Called once per streamed message, in arrival order.

        Returns:
            With ``stream`` and ``on_message``: the result message, or the
            first frame that is not a conversation message. Otherwise the
            next frame, as received.
        """
        await self.send_message({
            "type": FRAME_QUERY,
            "messages": [m.to_dict() if isinstance(m, Message) else m for m in messages],
            "tools": tools,
            "system": system,
            "stream": stream,
        })

        if not (stream and on_message is not None):
            return await self.receive_message()

        while True:
            frame = await self.receive_message()
            try:
                message = parse_message(frame)
            except MessageParseError:
                logger.debug(f"query: stream ended by non-message frame {frame.get('type')!r}")
                return frame

            outcome = on_message(message)
            if asyncio.iscoroutine(outcome):
                await outcome
            if message.is_terminal:
                return message

    async def send_user_message(
        self,
        content: Union[str, List[ContentBlock]],
        parent_tool_use_id: Optional[str] = None,
    ) -> None:
        await self.send_message(UserMessage(content=content, parent_tool_use_id=parent_tool_use_id))

    async def send_assistant_message(
        self,
        content: List[ContentBlock],
        model: str,
        parent_tool_use_id: Optional[str] = None,
    ) -> None:
        await self.send_message(AssistantMessage(
            content=content,
            model=model,
            parent_tool_use_id=parent_tool_use_id,
        ))

    async def send_system_message(self, subtype: str, data: Optional[Dict[str, Any]] = None) -> None:
        await self.send_message(SystemMessage(subtype=subtype, data=data or {}))

    async def send_result_message(
        self,
        subtype: str,
        duration_ms: int,
        duration_api_ms: int,
        is_error: bool,
        num_turns: int,
        session_id: str,
        total_cost_usd: Optional[float] = None,
        usage: Optional[Dict[str, Any]] = None,
        result: Optional[str] = None,
    ) -> None:
        await self.send_message(ResultMessage(
            subtype=subtype,
            duration_ms=duration_ms,
            duration_api_ms=duration_api_ms,
            is_error=is_error,
            num_turns=num_turns,
            session_id=session_id,
            total_cost_usd=total_cost_usd,
            usage=usage,
            result=result,
        ))

    async def send_stream_event(
        self,
        uuid: str,
        session_id: str,
        event: Any,
        parent_tool_use_id: Optional[str] = None,
    ) -> None:
        await self.send_message(StreamEvent(
            uuid=uuid,
            session_id=session_id,
            event=event,
            parent_tool_use_id=parent_tool_use_id,
        ))

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(
        self,
        streaming: bool = True,
        can_use_tool: Optional[CanUseTool] = None,
        hooks: Optional[Dict[str, List[HookMatcher]]] = None,
    ) -> Query:
        """Create a query session on this client's transport.

        The session takes over reading the transport; do not call
        ``receive_message()`` on the client while it is in use.
        """
        if self._closed:
            raise ProcessError("Client is closed")
        return Query(
            self.transport,
            is_streaming_mode=streaming,
            can_use_tool=can_use_tool,
            hooks=hooks,
            control_timeout=self.config.control.timeout,
        )

    async def close(self) -> None:
        """Close the client and its transport. Idempotent."""
        if self._closed:
            return
        self._closed = True
        close = getattr(self.transport, "close", None)
        if close is not None:
            outcome = close()
            if asyncio.iscoroutine(outcome):
                await outcome
        logger.debug("close: client closed")


__all__ = [
    "AgentClient",
    "MessageSink",
]

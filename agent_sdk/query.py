"""Query session: one conversation with the agent process.

A :class:`Query` owns the transport for the duration of a conversation.
It sends query envelopes, routes every inbound frame to the right
consumer and carries the out-of-band control protocol:

    Caller                         Query                        Agent
      |-- interrupt() -------------->|-- control_request -------->|
      |                              |<-- assistant message ------|  -> message stream
      |                              |<-- control_response -------|  -> wakes interrupt()
      |<-- returns ------------------|                            |

Frames are classified by :mod:`agent_sdk.classifier`. Control responses
wake the matching waiter in the :class:`ControlRequestRegistry`;
peer-initiated control requests (``can_use_tool``, ``hook_callback``)
are answered from independent tasks; conversation messages are handed
to the consumer in arrival order.

Reading:
    In streaming mode a single background reader task owns the receive
    side as soon as anything needs it (``initialize()``, a control
    request, ``process_messages()``), because control responses must be
    read while their callers are parked. Consumers then take frames from
    the reader's inbox. A non-streaming session reads the transport
    directly unless ``start()`` was called.

Lifecycle:
    CREATED -> INITIALIZED (streaming only) -> ACTIVE -> CLOSED
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Deque,
    Dict,
    List,
    Optional,
    Set,
    Union,
)

from .classifier import ClassifiedFrame, FrameKind, classify_frame, control_response_payload
from .constants import (
    DEFAULT_CONTROL_TIMEOUT,
    FRAME_CONTROL_RESPONSE,
    FRAME_QUERY,
    SUBTYPE_CAN_USE_TOOL,
    SUBTYPE_HOOK_CALLBACK,
    SUBTYPE_INITIALIZE,
    SUBTYPE_INTERRUPT,
    SUBTYPE_SET_MODEL,
    SUBTYPE_SET_PERMISSION_MODE,
)
from .control import ControlRequestRegistry
from .errors import AgentError, ConnectionClosedError, ProcessError, TransportError
from .hooks import HookCallbackRegistry, convert_hook_output
from .permissions import PermissionGate, PermissionState, validate_permission_update
from .transport import Transport
from .types import (
    CanUseTool,
    HookCallback,
    HookContext,
    HookMatcher,
    Message,
    PermissionResult,
    PermissionResultAllow,
    PermissionUpdate,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of a query session."""

    CREATED = "created"
    INITIALIZED = "initialized"
    ACTIVE = "active"
    CLOSED = "closed"


class _StreamEnd:
    """Inbox marker: the reader stopped, optionally because of an error."""

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error
        self.delivered = False

    def raise_error(self) -> None:
        """Raise the stop reason; consumers after the first get a fresh error."""
        if self.error is None:
            raise ProcessError("Query session is closed")
        if not self.delivered:
            self.delivered = True
            raise self.error
        if isinstance(self.error, ConnectionClosedError):
            raise ConnectionClosedError(str(self.error)) from self.error
        raise ProcessError(f"Receive loop stopped: {self.error}") from self.error


class Query:
    """Control protocol and message routing for one agent conversation."""

    def __init__(
        self,
        transport: Transport,
        is_streaming_mode: bool,
        can_use_tool: Optional[CanUseTool] = None,
        hooks: Optional[Dict[str, List[HookMatcher]]] = None,
        sdk_mcp_servers: Optional[Dict[str, str]] = None,
        control_timeout: float = DEFAULT_CONTROL_TIMEOUT,
        permission_state: Optional[PermissionState] = None,
    ):
        """Initialize the session.

        Args:
            transport: Channel to the agent process.
            is_streaming_mode: Enables the control protocol. Control
                operations other than ``initialize()`` fail without it.
            can_use_tool: Permission predicate; every tool call is allowed
                when omitted.
            hooks: Hook matchers per event, registered by ``initialize()``.
            sdk_mcp_servers: Initial MCP server name -> URI map.
            control_timeout: Seconds each control request waits for its
                response.
            permission_state: Permission store to mutate; a fresh one is
                created when omitted.
        """
        self.transport = transport
        self.is_streaming_mode = is_streaming_mode
        self.hooks = hooks or {}
        self.sdk_mcp_servers = dict(sdk_mcp_servers) if sdk_mcp_servers is not None else None

        self.control = ControlRequestRegistry(self._write_frame, timeout=control_timeout)
        self.hook_callbacks = HookCallbackRegistry()
        self.permissions = PermissionGate(can_use_tool, permission_state)

        self.state = SessionState.CREATED
        self._initialized = False
        self._initialization_result: Optional[Dict[str, Any]] = None

        # One writer and one reader at a time on the transport
        self._send_lock = asyncio.Lock()
        self._receive_lock = asyncio.Lock()
        self._initialize_lock = asyncio.Lock()

        # Background reader and the frames it hands to consumers
        self._reader_task: Optional[asyncio.Task] = None
        self._inbox: "asyncio.Queue[Union[ClassifiedFrame, _StreamEnd]]" = asyncio.Queue()

        # Handlers for peer-initiated control requests
        self._handler_tasks: Set[asyncio.Task] = set()

        # Messages handed over via handle_message()
        self._message_queue: Deque[Message] = deque()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def closed(self) -> bool:
        return self.state == SessionState.CLOSED

    @property
    def initialization_result(self) -> Optional[Dict[str, Any]]:
        return self._initialization_result

    @property
    def is_reading(self) -> bool:
        """True while the background reader is running."""
        return self._reader_task is not None and not self._reader_task.done()

    def _check_open(self) -> None:
        if self.closed:
            raise ProcessError("Query session is closed")

    def _check_control_allowed(self, subtype: str) -> None:
        self._check_open()
        if not self.is_streaming_mode:
            raise ProcessError(f"Control request {subtype} requires streaming mode")
        if subtype != SUBTYPE_INITIALIZE and not self._initialized:
            raise ProcessError(f"Control request {subtype} requires an initialized session")

    # =========================================================================
    # Control protocol
    # =========================================================================

    async def initialize(self) -> Optional[Dict[str, Any]]:
        """Announce hooks to the agent and enable control requests.

        Returns:
            The peer's initialize response, or None in non-streaming mode
            (nothing is sent). Later calls return the first response
            without sending again.
        """
        self._check_open()
        if not self.is_streaming_mode:
            return None
        if self._initialized:
            return self._initialization_result

        async with self._initialize_lock:
            # A concurrent call may have finished while we waited
            if self._initialized:
                return self._initialization_result

            hooks_config = self.hook_callbacks.build_config(self.hooks)
            response = await self.send_control_request({
                "subtype": SUBTYPE_INITIALIZE,
                "hooks": hooks_config,
            })

            self._initialized = True
            self._initialization_result = response
            if self.state == SessionState.CREATED:
                self.state = SessionState.INITIALIZED
        logger.debug(f"initialize: session ready ({len(self.hook_callbacks)} hook callback(s))")
        return response

    async def send_control_request(
        self,
        request: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a control request and wait for its response.

        Raises:
            ProcessError: Session closed, not streaming, or not initialized
                (except for ``initialize`` itself); nothing is sent.
            ControlRequestError: The peer answered with an error.
            ControlRequestTimeoutError: No answer within the timeout.
        """
        subtype = str(request.get("subtype", "unknown"))
        self._check_control_allowed(subtype)
        self.start()
        return await self.control.send(request, timeout=timeout)

    async def interrupt(self) -> None:
        """Ask the agent to stop the current turn."""
        await self.send_control_request({"subtype": SUBTYPE_INTERRUPT})

    async def set_permission_mode(self, mode: str) -> None:
        """Change the agent's permission mode."""
        await self.send_control_request({
            "subtype": SUBTYPE_SET_PERMISSION_MODE,
            "mode": mode,
        })
        self.permissions.state.mode = mode

    async def set_model(self, model: Optional[str]) -> None:
        """Switch the model used for subsequent turns."""
        await self.send_control_request({
            "subtype": SUBTYPE_SET_MODEL,
            "model": model,
        })

    # =========================================================================
    # Transport access
    # =========================================================================

    async def _write_frame(self, frame: Dict[str, Any]) -> None:
        """Write one frame, holding the send lock only for the write."""
        self._check_open()
        async with self._send_lock:
            try:
                await self.transport.send(frame)
            except AgentError:
                raise
            except Exception as e:
                raise TransportError(f"Failed to send frame: {e}") from e

    async def receive_message(self) -> Dict[str, Any]:
        """Read the next raw frame from the transport.

        Raises:
            ProcessError: The session is closed.
            TransportError: The transport failed; foreign exceptions are
                wrapped with the cause chained.
        """
        self._check_open()
        try:
            return await self.transport.receive()
        except AgentError:
            raise
        except Exception as e:
            raise TransportError(f"Failed to receive message: {e}") from e

    def _route(self, frame: Dict[str, Any]) -> Optional[ClassifiedFrame]:
        """Dispatch control frames; return frames meant for the consumer."""
        classified = classify_frame(frame)

        if classified.kind == FrameKind.CONTROL_RESPONSE:
            request_id = classified.request_id
            if request_id is None:
                logger.debug("route: control response without request id, discarding")
            else:
                self.control.resolve(request_id, **control_response_payload(frame))
            return None

        if classified.kind == FrameKind.CONTROL_REQUEST:
            self._dispatch_control_request(frame)
            return None

        return classified

    async def _read_routed(self) -> ClassifiedFrame:
        """Read directly until a message or unknown frame arrives."""
        async with self._receive_lock:
            while True:
                frame = await self.receive_message()
                classified = self._route(frame)
                if classified is not None:
                    return classified

    async def _next_frame(self) -> ClassifiedFrame:
        """Next frame for the consumer, from the reader's inbox if it runs."""
        if self._reader_task is None:
            return await self._read_routed()

        item = await self._inbox.get()
        if isinstance(item, _StreamEnd):
            # Leave the marker for any other consumer
            self._inbox.put_nowait(item)
            item.raise_error()
        return item

    # =========================================================================
    # Background reader
    # =========================================================================

    def start(self) -> None:
        """Start the background reader if it is not running yet.

        Must be called from within the running event loop. A reader that
        already stopped is not restarted.
        """
        self._check_open()
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._read_loop())
            logger.debug("start: background reader started")

    async def _read_loop(self) -> None:
        try:
            while True:
                async with self._receive_lock:
                    frame = await self.receive_message()
                classified = self._route(frame)
                if classified is not None:
                    await self._inbox.put(classified)
        except asyncio.CancelledError:
            logger.debug("read loop: cancelled")
            raise
        except AgentError as e:
            if self.closed:
                return
            if isinstance(e, ConnectionClosedError):
                logger.debug(f"read loop: stream ended: {e}")
            else:
                logger.error(f"read loop: stopped on error: {e}")
            # Waiters fail now instead of at their timeout
            self.control.fail_all(f"Receive loop stopped ({e})")
            self._inbox.put_nowait(_StreamEnd(e))

    async def receive_messages(self) -> AsyncIterator[Message]:
        """Yield conversation messages from the background reader.

        Starts the reader if needed. Unknown frames are skipped. Iteration
        ends when the peer closes the stream or the session is closed.
        """
        if self.closed:
            return
        self.start()
        while True:
            try:
                classified = await self._next_frame()
            except ConnectionClosedError:
                return
            except ProcessError:
                if self.closed:
                    return
                raise

            if classified.kind != FrameKind.MESSAGE:
                logger.warning(f"receive_messages: skipping unrecognized frame: {classified.frame!r}")
                continue
            yield classified.message

    async def receive_response(self) -> AsyncIterator[Message]:
        """Yield messages up to and including the next result message."""
        async for message in self.receive_messages():
            yield message
            if message.is_terminal:
                return

    # =========================================================================
    # Queries
    # =========================================================================

    def _query_envelope(
        self,
        messages: List[Any],
        tools: Optional[List[Any]],
        system: Optional[str],
        stream: bool,
    ) -> Dict[str, Any]:
        return {
            "type": FRAME_QUERY,
            "messages": [m.to_dict() if isinstance(m, Message) else m for m in messages],
            "tools": tools,
            "system": system,
            "stream": stream,
        }

    async def execute_query(
        self,
        messages: List[Any],
        tools: Optional[List[Any]] = None,
        system: Optional[str] = None,
    ) -> Union[Message, Dict[str, Any]]:
        """Send a one-shot query and return the next frame.

        Control traffic arriving first is handled and skipped. A frame that
        is not a conversation message is returned as received.
        """
        self._check_open()
        await self._write_frame(self._query_envelope(messages, tools, system, stream=False))
        self.state = SessionState.ACTIVE

        classified = await self._next_frame()
        if classified.kind == FrameKind.MESSAGE:
            return classified.message
        logger.debug(f"execute_query: returning non-message frame {classified.frame!r}")
        return classified.frame

    async def execute_query_streaming(
        self,
        messages: List[Any],
        tools: Optional[List[Any]] = None,
        system: Optional[str] = None,
    ) -> List[Message]:
        """Send a streaming query and collect messages through the result."""
        self._check_open()
        await self._write_frame(self._query_envelope(messages, tools, system, stream=True))
        self.state = SessionState.ACTIVE
        return await self.process_messages()

    async def process_messages(self) -> List[Message]:
        """Collect conversation messages until a result message arrives.

        Returns:
            Messages in arrival order, the result message last.
        """
        self._check_open()
        if self.is_streaming_mode:
            self.start()

        collected: List[Message] = []
        while True:
            classified = await self._next_frame()
            if classified.kind != FrameKind.MESSAGE:
                logger.warning(f"process_messages: skipping unrecognized frame: {classified.frame!r}")
                continue
            collected.append(classified.message)
            if classified.message.is_terminal:
                return collected

    # =========================================================================
    # Message queue
    # =========================================================================

    def handle_message(self, message: Message) -> None:
        """Queue a message for a later ``get_messages()``."""
        self._message_queue.append(message)

    def get_messages(self) -> List[Message]:
        """Drain queued messages without waiting."""
        messages = list(self._message_queue)
        self._message_queue.clear()
        return messages

    # =========================================================================
    # Permissions
    # =========================================================================

    async def handle_tool_use(
        self,
        tool_name: str,
        tool_input: Dict[str, Any],
        suggestions: Optional[List[PermissionUpdate]] = None,
    ) -> PermissionResult:
        """Decide whether the agent may run a tool."""
        return await self.permissions.check(tool_name, tool_input, suggestions)

    async def handle_permission_update(self, update: PermissionUpdate) -> None:
        """Apply one permission update.

        Rule and directory updates change the local permission state;
        ``setMode`` goes to the agent as a ``set_permission_mode`` request
        and is recorded once acknowledged.

        Raises:
            ProcessError: Unknown update kind or setMode without a mode;
                nothing is changed.
        """
        validate_permission_update(update)
        if update.type == "setMode":
            await self.set_permission_mode(update.mode)
        else:
            self.permissions.state.apply(update)

    async def apply_permission_updates(self, result: PermissionResult) -> None:
        """Apply the updates carried by an Allow result, in order."""
        if not isinstance(result, PermissionResultAllow):
            return
        for update in result.updated_permissions or []:
            await self.handle_permission_update(update)

    # =========================================================================
    # Hooks
    # =========================================================================

    def register_hook_callback(self, callback_id: str, callback: HookCallback) -> None:
        self.hook_callbacks.register_callback(callback_id, callback)

    async def execute_hook(
        self,
        callback_id: str,
        input_data: Dict[str, Any],
        tool_use_id: Optional[str] = None,
        context: Optional[HookContext] = None,
    ) -> Dict[str, Any]:
        """Run a registered hook callback by id."""
        return await self.hook_callbacks.execute(callback_id, input_data, tool_use_id, context)

    # =========================================================================
    # MCP servers
    # =========================================================================

    def add_mcp_server(self, name: str, uri: str) -> None:
        if self.sdk_mcp_servers is None:
            self.sdk_mcp_servers = {}
        self.sdk_mcp_servers[name] = uri

    def list_mcp_servers(self) -> Optional[Dict[str, str]]:
        """Configured MCP servers, or None if none were ever configured."""
        if self.sdk_mcp_servers is None:
            return None
        return dict(self.sdk_mcp_servers)

    # =========================================================================
    # Peer-initiated control requests
    # =========================================================================

    def _dispatch_control_request(self, frame: Dict[str, Any]) -> None:
        """Answer a peer control request without blocking the reader."""
        task = asyncio.create_task(self._handle_control_request(frame))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    async def _handle_control_request(self, frame: Dict[str, Any]) -> None:
        request_id = frame.get("request_id")
        request = frame.get("request")
        if not isinstance(request_id, str) or not isinstance(request, dict):
            logger.warning(f"control request: malformed frame ignored: {frame!r}")
            return

        subtype = request.get("subtype")
        logger.debug(f"control request: {subtype} ({request_id})")
        try:
            if subtype == SUBTYPE_CAN_USE_TOOL:
                response = await self._answer_can_use_tool(request)
            elif subtype == SUBTYPE_HOOK_CALLBACK:
                response = await self._answer_hook_callback(request)
            else:
                raise ProcessError(f"Unsupported control request subtype: {subtype}")
        except AgentError as e:
            logger.debug(f"control request: {subtype} ({request_id}) failed: {e}")
            await self._reply(request_id, error=str(e))
            return
        except Exception as e:
            logger.warning(f"control request: {subtype} ({request_id}) failed: {e}", exc_info=True)
            await self._reply(request_id, error=str(e))
            return

        await self._reply(request_id, response=response)

    async def _answer_can_use_tool(self, request: Dict[str, Any]) -> Dict[str, Any]:
        tool_name = request.get("tool_name")
        if not isinstance(tool_name, str):
            raise ProcessError("can_use_tool request without tool_name")
        tool_input = request.get("input") or {}
        suggestions = [
            PermissionUpdate.from_dict(s) for s in request.get("permission_suggestions") or []
        ]

        result = await self.handle_tool_use(tool_name, tool_input, suggestions)
        await self.apply_permission_updates(result)
        return result.to_response(tool_input)

    async def _answer_hook_callback(self, request: Dict[str, Any]) -> Dict[str, Any]:
        callback_id = request.get("callback_id")
        if not isinstance(callback_id, str):
            raise ProcessError("hook_callback request without callback_id")
        output = await self.execute_hook(
            callback_id,
            request.get("input") or {},
            request.get("tool_use_id"),
        )
        return convert_hook_output(output or {})

    async def _reply(
        self,
        request_id: str,
        response: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """Send a control response unless the session has closed."""
        if self.closed:
            logger.debug(f"control request: session closed, reply to {request_id} suppressed")
            return

        frame: Dict[str, Any] = {"type": FRAME_CONTROL_RESPONSE, "request_id": request_id}
        if error is not None:
            frame["error"] = error
        else:
            frame["response"] = response
        try:
            await self._write_frame(frame)
        except AgentError as e:
            # No caller to surface this to; the peer sees the missing reply
            logger.warning(f"control request: failed to reply to {request_id}: {e}")

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close(self) -> None:
        """Close the session. Idempotent.

        Outstanding control requests fail with ProcessError, the background
        reader and pending handlers are stopped, and every later operation
        fails without touching the transport. The transport itself is left
        open for its owner to close.
        """
        if self.closed:
            return
        self.state = SessionState.CLOSED

        self.control.fail_all("Query session closed")

        tasks = list(self._handler_tasks)
        if self._reader_task is not None:
            tasks.append(self._reader_task)
        # close() may itself run inside a hook handler
        current = asyncio.current_task()
        tasks = [task for task in tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._inbox.put_nowait(_StreamEnd())
        logger.debug("close: query session closed")


__all__ = [
    "Query",
    "SessionState",
]

"""Control request registry.

Outgoing control requests (interrupt, set_model, ...) share the stream
with ordinary conversation traffic, so each one is tagged with a unique
request id and its caller is parked on a per-request future until the
matching ``control_response`` frame arrives or the timeout expires.

Usage:
    registry = ControlRequestRegistry(send_frame, timeout=60.0)

    # Caller side: send and wait
    response = await registry.send({"subtype": "interrupt"})

    # Receive loop side: wake the caller
    registry.resolve(request_id, response={...})

Table access happens on the event loop between suspension points, so a
registration or resolution is never interleaved with another one.
"""

import asyncio
import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .constants import DEFAULT_CONTROL_TIMEOUT, FRAME_CONTROL_REQUEST
from .errors import ControlRequestError, ControlRequestTimeoutError, ProcessError

logger = logging.getLogger(__name__)

SendFrame = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class ControlResult:
    """Outcome of a control request: a response value or a peer error."""
    response: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PendingControlRequest:
    """An in-flight control request waiting for its response."""
    request_id: str
    subtype: str
    future: "asyncio.Future[ControlResult]"
    created_at: float = field(default_factory=time.monotonic)


class ControlRequestRegistry:
    """Correlates control requests with their responses.

    Any number of requests may be outstanding; each one resolves or times
    out on its own without affecting the others.
    """

    def __init__(self, send_frame: SendFrame, timeout: float = DEFAULT_CONTROL_TIMEOUT):
        """Initialize the registry.

        Args:
            send_frame: Coroutine writing one frame to the transport. It is
                expected to hold the shared send path only for that write.
            timeout: Default seconds to wait for each response.
        """
        self._send_frame = send_frame
        self.timeout = timeout
        self._pending: Dict[str, PendingControlRequest] = {}
        self._counter = itertools.count(1)

    @property
    def pending_request_ids(self) -> List[str]:
        """Ids of the requests currently awaiting a response."""
        return list(self._pending)

    def has_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    def next_request_id(self) -> str:
        """Generate a fresh request id.

        The counter keeps ids unique within the session; the random suffix
        keeps them from colliding with a previous process' ids.
        """
        return f"req_{next(self._counter)}_{uuid.uuid4().hex[:8]}"

    def register(self, subtype: str) -> PendingControlRequest:
        """Create the pending entry for a new request.

        Must be called from within the running event loop.
        """
        loop = asyncio.get_running_loop()
        pending = PendingControlRequest(
            request_id=self.next_request_id(),
            subtype=subtype,
            future=loop.create_future(),
        )
        self._pending[pending.request_id] = pending
        logger.debug(f"control: registered {pending.request_id} ({subtype})")
        return pending

    async def send(self, request: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        """Send a control request and wait for its response.

        Args:
            request: Request body; its ``subtype`` names the operation.
            timeout: Seconds to wait, overriding the registry default.

        Returns:
            The ``response`` value of the matching control response.

        Raises:
            ControlRequestError: The peer answered with an error.
            ControlRequestTimeoutError: No answer arrived in time.
            TransportError: The envelope could not be written.
        """
        subtype = str(request.get("subtype", "unknown"))
        pending = self.register(subtype)

        envelope = {
            "type": FRAME_CONTROL_REQUEST,
            "request_id": pending.request_id,
            "request": request,
        }
        try:
            await self._send_frame(envelope)
        except BaseException:
            self.discard(pending.request_id)
            raise

        return await self.wait(pending, timeout)

    async def wait(self, pending: PendingControlRequest, timeout: Optional[float] = None) -> Any:
        """Wait for a registered request to resolve.

        On timeout the entry is removed before the error is raised, so a
        late response can no longer match it.
        """
        limit = self.timeout if timeout is None else timeout
        try:
            result = await asyncio.wait_for(pending.future, limit)
        except asyncio.TimeoutError:
            self.discard(pending.request_id)
            logger.warning(
                f"control: {pending.subtype} request {pending.request_id} timed out after {limit}s"
            )
            raise ControlRequestTimeoutError(pending.subtype, pending.request_id, limit) from None
        except asyncio.CancelledError:
            self.discard(pending.request_id)
            raise

        if not result.ok:
            raise ControlRequestError(pending.subtype, result.error)
        return result.response

    def resolve(self, request_id: str, response: Any = None, error: Optional[str] = None) -> bool:
        """Deliver a response to the request waiting on ``request_id``.

        Returns:
            True if a waiter was woken, False if the id is unknown (already
            resolved, timed out, or never issued) and the response was
            discarded.
        """
        pending = self._pending.pop(request_id, None)
        if pending is None:
            logger.debug(f"control: discarding response for unknown request {request_id}")
            return False
        if pending.future.done():
            return False

        pending.future.set_result(ControlResult(response=response, error=error))
        logger.debug(f"control: resolved {request_id} ({pending.subtype}, ok={error is None})")
        return True

    def discard(self, request_id: str) -> None:
        """Drop a pending entry without waking anyone."""
        self._pending.pop(request_id, None)

    def fail_all(self, reason: str) -> int:
        """Reject every outstanding request with a ProcessError.

        Returns:
            Number of waiters that were rejected.
        """
        failed = 0
        while self._pending:
            _, pending = self._pending.popitem()
            if not pending.future.done():
                pending.future.set_exception(ProcessError(f"{reason}: {pending.subtype}"))
                failed += 1
        if failed:
            logger.debug(f"control: rejected {failed} pending request(s): {reason}")
        return failed


__all__ = [
    "ControlRequestRegistry",
    "ControlResult",
    "PendingControlRequest",
]

"""Transports carrying newline-delimited JSON frames.

The session engine only needs two coroutines from a transport: ``send``
writes one frame and ``receive`` waits for the next one. Anything that
implements :class:`Transport` can drive a session, which is how the test
suite runs the engine against an in-memory fake.

:class:`StreamTransport` is the concrete implementation for an agent
process whose stdin/stdout are already wired to asyncio streams::

    proc = await asyncio.create_subprocess_exec(
        "agent", "--output-format", "stream-json",
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
    )
    transport = StreamTransport.from_process(proc)

Framing: one JSON object per line, UTF-8, ``\\n`` terminated. Blank lines
are ignored.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .constants import MAX_LINE_SIZE
from .errors import ConnectionClosedError, SerializationError, TransportError
from .trace import resolve_trace_path, trace_frame

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Bidirectional frame channel consumed by the session engine."""

    @abstractmethod
    async def send(self, frame: Dict[str, Any]) -> Any:
        """Write one frame to the peer."""

    @abstractmethod
    async def receive(self) -> Dict[str, Any]:
        """Wait for the next frame from the peer.

        Raises:
            ConnectionClosedError: The channel ended.
        """

    async def close(self) -> None:
        """Release the channel. The default does nothing."""


class StreamTransport(Transport):
    """Newline-delimited JSON over an asyncio reader/writer pair."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: Any,
        max_line_size: int = MAX_LINE_SIZE,
        trace: bool = False,
        trace_log: Optional[str] = None,
    ):
        """Initialize the transport.

        Args:
            reader: Stream the peer writes frames to.
            writer: Stream we write frames to; anything with ``write()``,
                ``drain()`` and ``close()`` (an ``asyncio.StreamWriter``).
            max_line_size: Longest line accepted from the peer, in bytes.
            trace: Append every frame to the wire trace file.
            trace_log: Explicit trace file path; implies ``trace``.
        """
        self._reader = reader
        self._writer = writer
        self.max_line_size = max_line_size
        self._trace_path = resolve_trace_path(trace_log) if (trace or trace_log) else None
        self._closed = False

    @classmethod
    def from_process(cls, proc: asyncio.subprocess.Process, **kwargs: Any) -> 'StreamTransport':
        """Wrap the stdout/stdin pipes of an already spawned process."""
        if proc.stdout is None or proc.stdin is None:
            raise TransportError("Process must be started with stdin and stdout pipes")
        return cls(proc.stdout, proc.stdin, **kwargs)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def send(self, frame: Dict[str, Any]) -> None:
        if self._closed:
            raise TransportError("Transport is closed")

        try:
            line = json.dumps(frame, ensure_ascii=False) + "\n"
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Frame is not JSON serializable: {e}") from e

        try:
            self._writer.write(line.encode("utf-8"))
            await self._writer.drain()
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.debug(f"send: connection lost while writing: {e}")
            raise TransportError("Connection lost") from e

        trace_frame(">>", frame, self._trace_path)

    async def receive(self) -> Dict[str, Any]:
        while True:
            line = await self._read_line()
            try:
                text = line.decode("utf-8").strip()
            except UnicodeDecodeError as e:
                raise SerializationError(f"Frame is not valid UTF-8: {e}") from e
            if not text:
                continue  # Blank keep-alive line

            try:
                frame = json.loads(text)
            except json.JSONDecodeError as e:
                raise SerializationError(f"Invalid JSON frame: {e}") from e
            if not isinstance(frame, dict):
                raise SerializationError(
                    f"Frame must be a JSON object, got {type(frame).__name__}"
                )

            trace_frame("<<", frame, self._trace_path)
            return frame

    async def _read_line(self) -> bytes:
        """Read one raw line from the peer, up to ``max_line_size`` bytes.

        The reader's own buffer limit is usually far smaller (64 KiB for
        subprocess pipes), so a longer line is drained in pieces.
        """
        if self._closed:
            raise ConnectionClosedError("Transport is closed")

        chunks: List[bytes] = []
        size = 0
        while True:
            done = True
            try:
                chunk = await self._reader.readuntil(b"\n")
            except asyncio.LimitOverrunError as e:
                # Line exceeds the reader's buffer; take what is buffered
                chunk = await self._reader.readexactly(e.consumed)
                done = False
            except asyncio.IncompleteReadError as e:
                # EOF; a final line may lack its newline
                chunk = e.partial
            except (ConnectionResetError, BrokenPipeError) as e:
                raise ConnectionClosedError("Connection reset by peer") from e

            chunks.append(chunk)
            size += len(chunk)
            if size > self.max_line_size:
                raise SerializationError(
                    f"Frame too large: more than {self.max_line_size} bytes"
                )
            if done:
                break

        line = b"".join(chunks)
        if not line:
            raise ConnectionClosedError("Peer closed the stream")
        return line

    async def close(self) -> None:
        """Close the write side. Idempotent."""
        if self._closed:
            return
        self._closed = True

        try:
            self._writer.close()
            wait_closed = getattr(self._writer, "wait_closed", None)
            if wait_closed is not None:
                await wait_closed()
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.debug(f"close: error while closing writer: {e}")


__all__ = [
    "StreamTransport",
    "Transport",
]

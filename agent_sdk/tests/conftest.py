"""Shared fixtures for agent_sdk tests.

Run tests with: pytest agent_sdk/tests/
"""

import asyncio
from typing import Any, Dict, List

import pytest

from agent_sdk.errors import ConnectionClosedError
from agent_sdk.transport import Transport


_EOF = object()


class FakeTransport(Transport):
    """In-memory transport driven by the test.

    Frames written by the code under test are recorded in ``sent``; frames
    the test wants the code to read are queued with ``feed()``.
    """

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.receive_calls = 0
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._sent_event = asyncio.Event()

    def feed(self, *frames: Dict[str, Any]) -> None:
        for frame in frames:
            self._inbox.put_nowait(frame)

    def feed_eof(self) -> None:
        self._inbox.put_nowait(_EOF)

    async def send(self, frame: Dict[str, Any]) -> None:
        if self.closed:
            raise ConnectionClosedError("fake transport closed")
        self.sent.append(frame)
        self._sent_event.set()

    async def receive(self) -> Dict[str, Any]:
        self.receive_calls += 1
        frame = await self._inbox.get()
        if frame is _EOF:
            self._inbox.put_nowait(_EOF)
            raise ConnectionClosedError("fake transport closed")
        return frame

    async def next_sent(self, index: int, timeout: float = 1.0) -> Dict[str, Any]:
        """Wait until at least ``index + 1`` frames were sent; return that one."""
        async def _wait():
            while len(self.sent) <= index:
                self._sent_event.clear()
                await self._sent_event.wait()
            return self.sent[index]
        return await asyncio.wait_for(_wait(), timeout)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()



"""Tests for agent_sdk.client.AgentClient."""

from unittest.mock import MagicMock

import pytest

from agent_sdk.client import AgentClient, ClientConfig, ControlConfig, TransportConfig
from agent_sdk.errors import MessageParseError, ProcessError
from agent_sdk.query import Query
from agent_sdk.transport import StreamTransport
from agent_sdk.types import AssistantMessage, ResultMessage, TextBlock


def _assistant(text="hi"):
    return {"type": "assistant", "content": [{"type": "text", "text": text}], "model": "m"}


def _result():
    return {
        "type": "result",
        "subtype": "success",
        "duration_ms": 10,
        "duration_api_ms": 8,
        "is_error": False,
        "num_turns": 1,
        "session_id": "sess-1",
    }


def _client(transport, **config_overrides) -> AgentClient:
    return AgentClient(transport, config=ClientConfig(**config_overrides))


class TestQuery:

    @pytest.mark.asyncio
    async def test_one_shot_returns_next_frame_verbatim(self, transport):
        client = _client(transport)
        transport.feed(_assistant("answer"))

        reply = await client.query([{"role": "user", "content": "q"}])

        assert reply == _assistant("answer")
        assert transport.sent[0]["type"] == "query"
        assert transport.sent[0]["stream"] is False

    @pytest.mark.asyncio
    async def test_stream_without_sink_returns_first_frame(self, transport):
        client = _client(transport)
        transport.feed(_assistant("first"), _result())

        assert await client.query([], stream=True) == _assistant("first")
        assert transport.receive_calls == 1

    @pytest.mark.asyncio
    async def test_stream_calls_sink_until_result(self, transport):
        client = _client(transport)
        delivered = []
        transport.feed(_assistant("1"), _assistant("2"), _assistant("3"), _result(), _assistant("4"))

        result = await client.query([], stream=True, on_message=delivered.append)

        assert len(delivered) == 4
        assert isinstance(result, ResultMessage)
        assert delivered[-1] is result
        # The frame after the result is left unread
        assert transport.receive_calls == 4

    @pytest.mark.asyncio
    async def test_stream_with_async_sink(self, transport):
        client = _client(transport)
        delivered = []

        async def sink(message):
            delivered.append(message)

        transport.feed(_assistant(), _result())
        await client.query([], stream=True, on_message=sink)

        assert [type(m) for m in delivered] == [AssistantMessage, ResultMessage]

    @pytest.mark.asyncio
    async def test_stream_ends_on_non_message_frame(self, transport):
        client = _client(transport)
        delivered = []
        error_frame = {"type": "error", "error": "rate limited"}
        transport.feed(_assistant(), error_frame, _result())

        result = await client.query([], stream=True, on_message=delivered.append)

        assert result == error_frame
        assert len(delivered) == 1


class TestMessages:

    @pytest.mark.asyncio
    async def test_get_next_message_is_strict(self, transport):
        client = _client(transport)
        transport.feed(_assistant(), {"type": "mystery"})

        assert isinstance(await client.get_next_message(), AssistantMessage)
        with pytest.raises(MessageParseError):
            await client.get_next_message()

    @pytest.mark.asyncio
    async def test_send_helpers_write_wire_form(self, transport):
        client = _client(transport)

        await client.send_user_message("hello")
        await client.send_assistant_message([TextBlock(text="hi")], model="m")
        await client.send_system_message("init", {"cwd": "/w"})
        await client.send_result_message("success", 1, 1, False, 1, "s")
        await client.send_stream_event("u-1", "s", {"delta": "x"})

        assert [frame["type"] for frame in transport.sent] == [
            "user", "assistant", "system", "result", "stream_event",
        ]
        assert transport.sent[0] == {"type": "user", "content": "hello", "parent_tool_use_id": None}
        assert transport.sent[1]["content"] == [{"type": "text", "text": "hi"}]
        assert transport.sent[2]["data"] == {"cwd": "/w"}


class TestSessions:

    def test_create_session_uses_config_timeout(self, transport):
        client = _client(transport, control=ControlConfig(timeout=7.5))

        session = client.create_session(streaming=True)

        assert isinstance(session, Query)
        assert session.transport is transport
        assert session.is_streaming_mode
        assert session.control.timeout == 7.5


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self, transport):
        async with _client(transport) as client:
            await client.send_user_message("hi")
        assert transport.closed

    @pytest.mark.asyncio
    async def test_closed_client_rejects_operations(self, transport):
        client = _client(transport)
        await client.close()
        await client.close()

        with pytest.raises(ProcessError):
            await client.send_user_message("hi")
        with pytest.raises(ProcessError):
            await client.receive_message()
        with pytest.raises(ProcessError):
            client.create_session()

    def test_from_process_applies_transport_config(self):
        proc = MagicMock()
        config = ClientConfig(transport=TransportConfig(max_line_size=4096))

        client = AgentClient.from_process(proc, config=config)

        assert isinstance(client.transport, StreamTransport)
        assert client.transport.max_line_size == 4096
        assert client.config is config

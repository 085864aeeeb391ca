import asyncio

import pytest

from arm_teleop.transport import ConnectError, NullSession, SendError, SessionState
from arm_teleop.ws_transport import WebSocketSession

from helpers import FakeSession


def test_connect_and_disconnect_transitions():
    async def scenario():
        session = FakeSession()
        assert session.state is SessionState.DISCONNECTED
        await session.connect()
        assert session.state is SessionState.CONNECTED
        assert session.connected
        await session.disconnect()
        assert session.state is SessionState.DISCONNECTED
        assert session.closed == 1

    asyncio.run(scenario())


def test_connect_failure_is_wrapped_and_leaves_disconnected():
    async def scenario():
        session = FakeSession(connect_error=OSError("adapter off"))
        with pytest.raises(ConnectError, match="adapter off"):
            await session.connect()
        assert session.state is SessionState.DISCONNECTED

    asyncio.run(scenario())


def test_send_requires_connection():
    async def scenario():
        session = FakeSession()
        assert session.send(b"x") is None
        assert session.writes == []

    asyncio.run(scenario())


def test_send_while_busy_is_dropped_not_queued():
    async def scenario():
        session = FakeSession()
        await session.connect()
        first = session.send(b"one")
        assert session.busy
        assert session.send(b"two") is None
        assert await first is True
        assert not session.busy
        assert session.writes == [b"one"]
        assert session.stats.packets_dropped == 1
        assert session.stats.packets_sent == 1

    asyncio.run(scenario())


def test_send_failure_is_swallowed_and_counted():
    async def scenario():
        session = FakeSession(fail=True)
        await session.connect()
        assert await session.send(b"one") is False
        assert not session.busy
        assert session.connected
        assert session.stats.packets_failed == 1

    asyncio.run(scenario())


def test_link_lost_notifies_and_disconnects():
    async def scenario():
        events = []

        async def on_lost():
            events.append("lost")

        session = FakeSession()
        session.on_disconnected = on_lost
        await session.connect()
        await session._link_lost()
        assert session.state is SessionState.DISCONNECTED
        assert session.send(b"x") is None
        assert events == ["lost"]

        # An explicit disconnect is not reported as a loss
        await session.connect()
        await session.disconnect()
        await session._link_lost()
        assert events == ["lost"]

    asyncio.run(scenario())


def test_null_session_never_connects():
    async def scenario():
        session = NullSession()
        with pytest.raises(ConnectError):
            await session.connect()
        assert not session.connected

    asyncio.run(scenario())


def test_stats_snapshot():
    async def scenario():
        session = FakeSession()
        await session.connect()
        await session.send(b"one")
        return session.get_stats()

    stats = asyncio.run(scenario())
    assert stats["state"] == "connected"
    assert stats["packets_sent"] == 1
    assert stats["busy"] is False


class ClosedSocket:
    """Server side already gone: iteration ends immediately."""

    def __aiter__(self):
        return self

    async def __anext__(self):
        raise StopAsyncIteration


def test_ws_server_close_drops_connection_reference():
    async def scenario():
        events = []

        async def on_lost():
            events.append("lost")

        session = WebSocketSession("ws://relay.invalid/control", "tok", on_disconnected=on_lost)
        ws = ClosedSocket()
        session._ws = ws
        session.state = SessionState.CONNECTED

        await session._read_loop(ws)
        assert session._ws is None
        assert session.state is SessionState.DISCONNECTED
        assert events == ["lost"]
        with pytest.raises(SendError):
            await session._write(b"B090S090E090G000\r\n")

    asyncio.run(scenario())

import asyncio
import os
import signal

import pytest

from arm_teleop.main import TeleopClient

from helpers import FakeSession

posix_signals = pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="needs SIGUSR1/SIGUSR2")


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def test_retry_hint_follows_preview_mode():
    assert TeleopClient(FakeSession(), show_preview=True).retry_hint == "press 'c'"
    assert "SIGUSR1" in TeleopClient(FakeSession(), show_preview=False).retry_hint


def test_failed_connect_reports_headless_trigger():
    async def scenario():
        client = TeleopClient(FakeSession(connect_error=OSError("no device")))
        client.request_connect()
        await client._connect_task
        return client

    client = asyncio.run(scenario())
    assert not client.session.connected
    assert client.status.startswith("Connect failed")
    assert "SIGUSR1" in client.status


def test_link_loss_reports_headless_trigger():
    async def scenario():
        client = TeleopClient(FakeSession())
        client.request_connect()
        await client._connect_task
        await client.session._link_lost()
        return client

    client = asyncio.run(scenario())
    assert client.status.startswith("Link lost")
    assert "SIGUSR1" in client.status


@posix_signals
def test_signals_retry_and_drop_connection_without_preview():
    async def scenario():
        session = FakeSession(connect_error=OSError("no device"))
        client = TeleopClient(session, show_preview=False)
        client.install_signal_handlers()

        client.request_connect()
        await client._connect_task
        assert not session.connected

        session.connect_error = None
        os.kill(os.getpid(), signal.SIGUSR1)
        await wait_until(lambda: session.connected)
        assert client.status.startswith("Connected")

        os.kill(os.getpid(), signal.SIGUSR2)
        await wait_until(lambda: not session.connected)
        await wait_until(lambda: client.status == "Disconnected")
        assert session.closed == 1

    asyncio.run(scenario())

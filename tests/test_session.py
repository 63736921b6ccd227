"""
Tests for session lifecycle and the per-tool registry
"""

import asyncio

import pytest
from click.testing import CliRunner

from conftest import FakeTransport
from probekit import __version__
from probekit.cli import main
from probekit.models import SessionState
from probekit.ping import PingSession
from probekit.port import TcpSession
from probekit.session import SessionRegistry
from probekit.transport.base import ProbeReply


def _endless_ping(transport):
    return PingSession("192.0.2.1", count=0, interval=0.01, transport=transport)


class TestSessionLifecycle:
    """Test start, cancel and streaming"""

    async def test_start_twice(self):
        session = PingSession("192.0.2.1", count=1, transport=FakeTransport())
        session.start()
        with pytest.raises(RuntimeError):
            session.start()
        await session.wait()

    async def test_cancel_before_start(self):
        session = PingSession("192.0.2.1", count=1, transport=FakeTransport())
        session.cancel()

        assert session.state is SessionState.CANCELLED
        assert session.latest.state is SessionState.CANCELLED
        assert [s async for s in session] == [session.latest]

    async def test_first_snapshot_is_running(self):
        session = PingSession("192.0.2.1", count=1, transport=FakeTransport(default_echo=ProbeReply.success(1.0)))
        snapshots = [s async for s in session]

        assert snapshots[0].state is SessionState.RUNNING
        assert snapshots[-1].state is SessionState.COMPLETED
        assert all(not s.state.is_terminal for s in snapshots[:-1])

    async def test_task_cancellation_maps_to_cancelled(self):
        session = _endless_ping(FakeTransport(default_echo=ProbeReply.success(1.0)))
        task = session.start()
        await asyncio.sleep(0.03)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.latest.state is SessionState.CANCELLED


class TestSessionRegistry:
    """Test one running session per tool"""

    async def test_new_session_cancels_previous(self):
        registry = SessionRegistry()
        transport = FakeTransport(default_echo=ProbeReply.success(1.0))
        first = _endless_ping(transport)
        second = _endless_ping(transport)

        registry.start(first)
        await asyncio.sleep(0.02)
        registry.start(second)

        assert (await first.wait()).state is SessionState.CANCELLED
        assert registry.get("ping") is second
        assert second.state is SessionState.RUNNING

        registry.cancel_all()
        assert (await second.wait()).state is SessionState.CANCELLED

    async def test_other_tools_unaffected(self):
        registry = SessionRegistry()
        transport = FakeTransport(default_echo=ProbeReply.success(1.0))
        ping = _endless_ping(transport)
        registry.start(ping)

        tcp = TcpSession("192.0.2.1", 443, transport=transport)
        registry.start(tcp)
        await tcp.wait()

        assert ping.state is SessionState.RUNNING
        registry.cancel_all()
        await ping.wait()


class TestCli:
    """Test the command line entry point"""

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_commands_listed(self):
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("ping", "trace", "tcp", "udp", "dns", "cloud"):
            assert command in result.output

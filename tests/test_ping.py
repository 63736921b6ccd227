"""
Tests for the ping session
"""

import asyncio

import pytest

from conftest import FakeTransport
from probekit.errors import InvalidTargetError
from probekit.models import ErrorKind, IPFamily, IPPreference, ProbeStatus, SessionState
from probekit.ping import PingSession
from probekit.transport.base import ProbeReply


class TestPingSession:
    """Test scheduling, ordering and statistics"""

    async def test_mixed_replies(self):
        transport = FakeTransport(echo={
            1: ProbeReply.success(10.0),
            2: ProbeReply.success(12.0),
            4: ProbeReply.success(11.0),
            5: ProbeReply.success(13.0),
        })
        session = PingSession("192.0.2.10", count=5, size=56, interval=0.2, transport=transport)
        snapshot = await session.run()

        assert snapshot.state is SessionState.COMPLETED
        assert [o.sequence for o in snapshot.outcomes] == [1, 2, 3, 4, 5]
        assert snapshot.outcomes[2].status is ProbeStatus.TIMEOUT
        stats = snapshot.statistics
        assert stats.sent == 5
        assert stats.received == 4
        assert stats.lost == 1
        assert stats.loss_rate == pytest.approx(20.0)
        assert stats.avg_ms == pytest.approx(11.5)
        assert stats.min_ms == 10.0
        assert stats.max_ms == 13.0

    async def test_every_snapshot_balances(self):
        transport = FakeTransport(echo={1: ProbeReply.success(1.0), 3: ProbeReply.success(2.0)})
        session = PingSession("192.0.2.10", count=4, interval=0.0, transport=transport)

        async for snapshot in session:
            stats = snapshot.statistics
            assert stats.sent == stats.received + stats.lost
            assert stats.sent == len(snapshot.outcomes)

    async def test_outcomes_published_in_send_order(self):
        transport = FakeTransport(
            echo={1: ProbeReply.success(50.0), 2: ProbeReply.success(1.0)},
            delays={1: 0.05},
        )
        session = PingSession("192.0.2.10", count=2, interval=0.0, transport=transport)
        snapshot = await session.run()

        assert transport.finished == [2, 1]
        assert [o.sequence for o in snapshot.outcomes] == [1, 2]

    async def test_slow_probe_does_not_delay_schedule(self):
        transport = FakeTransport(default_echo=ProbeReply.success(1.0), delays={1: 0.1})
        session = PingSession("192.0.2.10", count=3, interval=0.01, transport=transport)
        await session.run()

        assert transport.started.index(3) < transport.finished.index(1)

    async def test_cancel_keeps_results_and_stops(self):
        transport = FakeTransport(default_echo=ProbeReply.success(1.0))
        session = PingSession("192.0.2.10", count=0, interval=0.005, transport=transport)

        published_at_cancel = None
        async for snapshot in session:
            if published_at_cancel is None and len(snapshot.outcomes) >= 3:
                published_at_cancel = len(session.latest.outcomes)
                session.cancel()

        final = session.latest
        assert final.state is SessionState.CANCELLED
        assert len(final.outcomes) == published_at_cancel
        sequences = [o.sequence for o in final.outcomes]
        assert sequences == sorted(set(sequences))

    async def test_cancel_unbounded_zero_interval(self):
        transport = FakeTransport(default_echo=ProbeReply.success(1.0))
        session = PingSession("192.0.2.10", count=0, interval=0, transport=transport)
        asyncio.get_running_loop().call_later(0.01, session.cancel)

        final = await asyncio.wait_for(session.run(), timeout=2.0)

        assert final.state is SessionState.CANCELLED
        assert transport.started

    async def test_hostname_target(self):
        transport = FakeTransport(hosts={"example.com": "192.0.2.20"}, default_echo=ProbeReply.success(3.0))
        snapshot = await PingSession("example.com", count=1, transport=transport).run()
        assert snapshot.address == "192.0.2.20"
        assert snapshot.family is IPFamily.IPV4
        assert snapshot.outcomes[0].target == "example.com"


class TestPingFailures:
    """Test failure classification"""

    async def test_no_ipv6_route(self):
        transport = FakeTransport(unavailable={IPFamily.IPV6})
        snapshot = await PingSession("2001:db8::1", count=3, transport=transport).run()

        assert snapshot.state is SessionState.FAILED
        assert snapshot.failure.kind is ErrorKind.FAMILY_UNAVAILABLE
        assert snapshot.failure.label != ErrorKind.TIMEOUT.label
        assert snapshot.failure.label != ErrorKind.UNREACHABLE.label
        assert transport.started == []

    async def test_family_error_per_probe(self):
        transport = FakeTransport(echo={
            1: ProbeReply.error(ErrorKind.FAMILY_UNAVAILABLE, "No route for this address family"),
        })
        snapshot = await PingSession("192.0.2.10", count=1, transport=transport).run()

        outcome = snapshot.outcomes[0]
        assert outcome.status is ProbeStatus.ERROR
        assert outcome.error_kind is ErrorKind.FAMILY_UNAVAILABLE
        assert snapshot.state is SessionState.COMPLETED

    async def test_unresolvable_host(self):
        snapshot = await PingSession("missing.example", count=1, transport=FakeTransport()).run()
        assert snapshot.state is SessionState.FAILED
        assert snapshot.failure.kind is ErrorKind.RESOLUTION

    async def test_literal_contradicts_preference(self):
        session = PingSession("192.0.2.1", count=1, preference=IPPreference.IPV6, transport=FakeTransport())
        snapshot = await session.run()
        assert snapshot.failure.kind is ErrorKind.RESOLUTION

    def test_invalid_host_rejected_before_io(self):
        with pytest.raises(InvalidTargetError):
            PingSession("not a host!", transport=FakeTransport())

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            PingSession("192.0.2.1", count=-1, transport=FakeTransport())

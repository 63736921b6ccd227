"""
Shared fixtures: a scripted transport that never touches the network.
"""

import asyncio

import pytest

from probekit.config import ProbeConfig, set_config
from probekit.errors import ResolutionError
from probekit.models import ErrorKind, IPFamily, IPPreference, ProbeStatus, ResolvedTarget
from probekit.transport.base import DnsReply, ProbeReply, Transport
from probekit.validation import is_ip_address


class FakeTransport(Transport):
    """
    Replays scripted replies.

    Echo replies are keyed by sequence number, hop-limited replies by
    (ttl, probe index), TCP/UDP replies by port and DNS replies by
    (name, type). Anything unscripted times out immediately.
    """

    def __init__(
        self,
        *,
        hosts: dict[str, str] | None = None,
        echo: dict[int, ProbeReply] | None = None,
        default_echo: ProbeReply | None = None,
        hops: dict[tuple[int, int], ProbeReply] | None = None,
        tcp: dict[int, ProbeReply] | None = None,
        udp: dict[int, ProbeReply] | None = None,
        dns: dict[tuple[str, str], DnsReply] | None = None,
        system: dict[str, DnsReply] | None = None,
        unavailable: set[IPFamily] | None = None,
        delays: dict | None = None,
    ):
        self.hosts = hosts or {}
        self.echo_replies = echo or {}
        self.default_echo = default_echo or ProbeReply.timeout()
        self.hop_replies = hops or {}
        self.tcp_replies = tcp or {}
        self.udp_replies = udp or {}
        self.dns_replies = dns or {}
        self.system_replies = system or {}
        self.unavailable = unavailable or set()
        self.delays = delays or {}
        self.started: list = []
        self.finished: list = []
        self.events: list[tuple[str, object]] = []
        self.timeouts: list[float] = []
        self.payloads: list[bytes] = []
        self.dns_queries: list[tuple[str, str, str | None]] = []
        self._hop_index: dict[int, int] = {}

    async def resolve(self, host: str, preference: IPPreference = IPPreference.AUTO) -> ResolvedTarget:
        if is_ip_address(host):
            return await super().resolve(host, preference)
        if host not in self.hosts:
            raise ResolutionError(f"Could not resolve {host}")
        return await super().resolve(self.hosts[host], preference)

    async def family_available(self, family: IPFamily) -> bool:
        return family not in self.unavailable

    async def echo(self, address, family, *, sequence, size=56, timeout=2.0, ttl=None):
        if ttl is None:
            key = sequence
            reply = self.echo_replies.get(sequence, self.default_echo)
        else:
            index = self._hop_index.get(ttl, 0)
            self._hop_index[ttl] = index + 1
            key = (ttl, index)
            reply = self.hop_replies.get(key, ProbeReply.timeout())

        self.started.append(key)
        self.events.append(("start", key))
        self.timeouts.append(timeout)
        delay = self.delays.get(key, 0)
        if delay:
            await asyncio.sleep(delay)
        self.finished.append(key)
        self.events.append(("finish", key))
        return reply

    async def tcp_connect(self, address, family, port, timeout=3.0):
        self.started.append(port)
        await asyncio.sleep(self.delays.get(port, 0))
        return self.tcp_replies.get(port, ProbeReply.timeout())

    async def udp_exchange(self, address, family, port, payload=b"ping", timeout=3.0):
        self.payloads.append(payload)
        return self.udp_replies.get(port, ProbeReply.timeout())

    async def dns_query(self, name, rdtype, *, server=None, timeout=3.0):
        self.dns_queries.append((name, rdtype, server))
        await asyncio.sleep(self.delays.get((name, rdtype), 0))
        reply = self.dns_replies.get((name, rdtype))
        if reply is None:
            return DnsReply(status=ProbeStatus.TIMEOUT, server=server, error_kind=ErrorKind.TIMEOUT, reason="Query timed out")
        return reply

    async def resolve_addresses(self, name, timeout=3.0):
        self.dns_queries.append((name, "SYSTEM", None))
        reply = self.system_replies.get(name)
        if reply is None:
            return DnsReply(status=ProbeStatus.TIMEOUT, error_kind=ErrorKind.TIMEOUT, reason="Query timed out")
        return reply


@pytest.fixture(autouse=True)
def default_config():
    """Isolate every test from the user's environment and .env files."""
    config = ProbeConfig(hop_pause=0.0, enrichment_timeout=0.5)
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def fake_transport():
    return FakeTransport()

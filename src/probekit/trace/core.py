"""
Traceroute session.

Hops are discovered strictly one after another. Every probe for a hop
is sent concurrently and the hop is published only once all of them
have resolved, with latencies kept in probe order.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace

from probekit.config import ProbeConfig
from probekit.enrich import Enricher
from probekit.models import (
    IPFamily,
    IPPreference,
    ProbeFailure,
    ProbeStatus,
    ResolvedTarget,
    SessionState,
)
from probekit.session import ProbeSession
from probekit.stats import LatencySummary, summarize_slots
from probekit.transport.base import ProbeReply, Transport
from probekit.validation import is_ip_address, validate_host

logger = logging.getLogger(__name__)

NO_REPLY = "*"
PROBES_PER_HOP_CHOICES = (3, 5, 10, 20)


@dataclass(frozen=True)
class TraceHop:
    """One TTL value's worth of probes."""
    hop: int
    address: str = NO_REPLY
    slots: tuple[float | None, ...] = field(default_factory=tuple)  # None = no reply
    reached: bool = False
    hostname: str | None = None
    location: str | None = None

    @property
    def is_timeout(self) -> bool:
        return self.address == NO_REPLY

    @property
    def summary(self) -> LatencySummary:
        return summarize_slots(self.slots)

    @property
    def sent_count(self) -> int:
        return len(self.slots)

    @property
    def received_count(self) -> int:
        return sum(1 for s in self.slots if s is not None)

    @property
    def loss_rate(self) -> float:
        return self.summary.loss_rate

    @property
    def avg_ms(self) -> float | None:
        return self.summary.avg_ms


@dataclass(frozen=True)
class TraceSnapshot:
    """Published view of a traceroute run."""
    host: str
    state: SessionState
    probes_per_hop: int
    max_hops: int
    address: str | None = None
    family: IPFamily | None = None
    hops: tuple[TraceHop, ...] = field(default_factory=tuple)
    reached_target: bool = False
    failure: ProbeFailure | None = None


class TraceSession(ProbeSession[TraceSnapshot]):
    """
    Hop-limited route discovery.

    TTL starts at 1 and grows by one per hop. Discovery stops when the
    target answers, when max_hops is reached, or on cancellation. A hop
    where every probe timed out is recorded with the "*" address and
    does not stop discovery.
    """

    tool = "trace"

    def __init__(
        self,
        host: str,
        probes_per_hop: int = 3,
        max_hops: int | None = None,
        preference: IPPreference = IPPreference.AUTO,
        timeout: float | None = None,
        hop_pause: float | None = None,
        transport: Transport | None = None,
        enricher: Enricher | None = None,
        config: ProbeConfig | None = None,
    ):
        super().__init__(transport=transport, enricher=enricher, config=config)
        host = host.strip()
        self.host = host if is_ip_address(host) else validate_host(host)
        if probes_per_hop < 1:
            raise ValueError("probes_per_hop must be positive")
        self.probes_per_hop = probes_per_hop
        self.max_hops = max_hops if max_hops is not None else self.config.max_hops
        if self.max_hops < 1:
            raise ValueError("max_hops must be positive")
        self.preference = preference
        self._timeout = timeout
        self.hop_pause = hop_pause if hop_pause is not None else self.config.hop_pause
        self.target: ResolvedTarget | None = None
        self.hops: list[TraceHop] = []
        self.reached_target = False

    @property
    def timeout(self) -> float:
        """Per-probe timeout, longer for IPv6 unless set explicitly."""
        if self._timeout is not None:
            return self._timeout
        if self.target is not None and self.target.family is IPFamily.IPV6:
            return self.config.trace_timeout_v6
        return self.config.trace_timeout_v4

    def snapshot(self) -> TraceSnapshot:
        hops = []
        for hop in self.hops:
            annotation = self.annotations.get(hop.address)
            if annotation is not None:
                hop = replace(hop, hostname=annotation.hostname, location=annotation.location)
            hops.append(hop)

        return TraceSnapshot(
            host=self.host,
            state=self.state,
            probes_per_hop=self.probes_per_hop,
            max_hops=self.max_hops,
            address=self.target.address if self.target else None,
            family=self.target.family if self.target else None,
            hops=tuple(hops),
            reached_target=self.reached_target,
            failure=self.failure,
        )

    async def execute(self) -> None:
        self.target = await self.resolve_target(self.host, self.preference)
        logger.debug(f"Tracing {self.host} ({self.target.address}), {self.probes_per_hop} probes per hop")
        self.publish()

        for ttl in range(1, self.max_hops + 1):
            if self.cancelled:
                return

            probes = [self._probe(ttl, index) for index in range(self.probes_per_hop)]
            completed, replies = await self.until_cancelled(asyncio.gather(*probes))
            if not completed:
                return

            hop = self._build_hop(ttl, replies)
            self.hops.append(hop)
            if not hop.is_timeout:
                self.enrich(hop.address)

            if hop.reached:
                self.reached_target = True
                self.publish()
                return
            self.publish()

            if ttl < self.max_hops and not await self.sleep(self.hop_pause):
                return

    async def _probe(self, ttl: int, index: int) -> ProbeReply:
        return await self.transport.echo(
            self.target.address,
            self.target.family,
            sequence=(ttl - 1) * self.probes_per_hop + index + 1,
            timeout=self.timeout,
            ttl=ttl,
        )

    def _build_hop(self, ttl: int, replies: list[ProbeReply]) -> TraceHop:
        slots = []
        address = NO_REPLY
        reached = False
        for reply in replies:
            if reply.status is ProbeStatus.SUCCESS:
                slots.append(reply.latency_ms)
            else:
                slots.append(None)
            if reply.responder:
                address = reply.responder
                if reply.status is ProbeStatus.SUCCESS and (
                    reply.reached or reply.responder == self.target.address
                ):
                    reached = True
        return TraceHop(hop=ttl, address=address, slots=tuple(slots), reached=reached)

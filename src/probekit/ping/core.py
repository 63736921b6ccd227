"""
Ping session.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from probekit.config import ProbeConfig
from probekit.enrich import Enricher
from probekit.models import (
    IPFamily,
    IPPreference,
    ProbeFailure,
    ProbeOutcome,
    ProbeStatus,
    ResolvedTarget,
    SessionState,
)
from probekit.session import ProbeSession
from probekit.stats import PingStatistics, summarize_outcomes
from probekit.transport.base import Transport
from probekit.validation import is_ip_address, validate_host

logger = logging.getLogger(__name__)

DEFAULT_PACKET_SIZE = 56
DEFAULT_INTERVAL = 0.2


@dataclass(frozen=True)
class PingSnapshot:
    """Published view of a ping run."""
    host: str
    state: SessionState
    address: str | None = None
    family: IPFamily | None = None
    size: int = DEFAULT_PACKET_SIZE
    interval: float = DEFAULT_INTERVAL
    count: int = 0
    outcomes: tuple[ProbeOutcome, ...] = field(default_factory=tuple)
    statistics: PingStatistics = field(default_factory=PingStatistics)
    hostname: str | None = None
    location: str | None = None
    failure: ProbeFailure | None = None

    @property
    def last(self) -> ProbeOutcome | None:
        return self.outcomes[-1] if self.outcomes else None


class PingSession(ProbeSession[PingSnapshot]):
    """
    Echo probes at a fixed interval.

    Probe n is sent at start + (n - 1) * interval whether or not earlier
    probes have been answered. Outcomes are published in sequence order.
    A count of 0 runs until cancelled.
    """

    tool = "ping"

    def __init__(
        self,
        host: str,
        count: int = 0,
        size: int = DEFAULT_PACKET_SIZE,
        interval: float = DEFAULT_INTERVAL,
        preference: IPPreference = IPPreference.AUTO,
        timeout: float | None = None,
        transport: Transport | None = None,
        enricher: Enricher | None = None,
        config: ProbeConfig | None = None,
    ):
        super().__init__(transport=transport, enricher=enricher, config=config)
        host = host.strip()
        self.host = host if is_ip_address(host) else validate_host(host)
        if count < 0:
            raise ValueError("count must be 0 (unlimited) or positive")
        if size < 0:
            raise ValueError("size must not be negative")
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.count = count
        self.size = size
        self.interval = interval
        self.preference = preference
        self.timeout = timeout if timeout is not None else self.config.ping_timeout
        self.target: ResolvedTarget | None = None
        self.outcomes: list[ProbeOutcome] = []
        self.statistics = PingStatistics()

    def snapshot(self) -> PingSnapshot:
        address = self.target.address if self.target else None
        annotation = self.annotations.get(address)
        return PingSnapshot(
            host=self.host,
            state=self.state,
            address=address,
            family=self.target.family if self.target else None,
            size=self.size,
            interval=self.interval,
            count=self.count,
            outcomes=tuple(self.outcomes),
            statistics=self.statistics,
            hostname=annotation.hostname if annotation else None,
            location=annotation.location if annotation else None,
            failure=self.failure,
        )

    async def execute(self) -> None:
        self.target = await self.resolve_target(self.host, self.preference)
        logger.debug(f"Pinging {self.host} ({self.target.address}) size={self.size} interval={self.interval}")
        self.enrich(self.target.address)
        self.publish()

        loop = asyncio.get_running_loop()
        in_flight: asyncio.Queue = asyncio.Queue()
        collector = asyncio.create_task(self._collect(in_flight))

        start = loop.time()
        sequence = 0
        try:
            while self.count == 0 or sequence < self.count:
                if not await self.sleep(start + sequence * self.interval - loop.time()):
                    break
                sequence += 1
                in_flight.put_nowait(asyncio.create_task(self._probe(sequence)))
            in_flight.put_nowait(None)
            await collector
        finally:
            collector.cancel()
            while not in_flight.empty():
                task = in_flight.get_nowait()
                if task is not None:
                    task.cancel()

    async def _probe(self, sequence: int) -> ProbeOutcome:
        reply = await self.transport.echo(
            self.target.address,
            self.target.family,
            sequence=sequence,
            size=self.size,
            timeout=self.timeout,
        )
        return ProbeOutcome(
            sequence=sequence,
            target=self.host,
            address=self.target.address,
            status=reply.status,
            latency_ms=reply.latency_ms if reply.status is ProbeStatus.SUCCESS else None,
            error_kind=reply.error_kind,
            reason=reply.reason,
        )

    async def _collect(self, in_flight: asyncio.Queue) -> None:
        """Publish outcomes in send order, stopping at cancellation."""
        while True:
            task = await in_flight.get()
            if task is None:
                return
            completed, outcome = await self.until_cancelled(task)
            if not completed:
                return
            self.outcomes.append(outcome)
            self.statistics = summarize_outcomes(self.outcomes)
            self.publish()

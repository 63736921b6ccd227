"""
TCP and UDP reachability sessions.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from probekit.config import ProbeConfig
from probekit.enrich import Enricher
from probekit.models import (
    ErrorKind,
    IPFamily,
    IPPreference,
    ProbeFailure,
    ProbeStatus,
    ResolvedTarget,
    SessionState,
)
from probekit.session import ProbeSession
from probekit.transport.base import Transport
from probekit.validation import is_ip_address, validate_host, validate_port

logger = logging.getLogger(__name__)

UDP_NO_RESPONSE = "No response (UDP is connectionless, this may be normal)"
DEFAULT_UDP_PAYLOAD = b"ping"

# Common ports to check
COMMON_PORTS = [
    21,    # FTP
    22,    # SSH
    23,    # Telnet
    25,    # SMTP
    53,    # DNS
    80,    # HTTP
    110,   # POP3
    143,   # IMAP
    443,   # HTTPS
    465,   # SMTPS
    587,   # Submission
    993,   # IMAPS
    995,   # POP3S
    3306,  # MySQL
    3389,  # RDP
    5432,  # PostgreSQL
    6379,  # Redis
    8080,  # HTTP Alt
    8443,  # HTTPS Alt
]


@dataclass(frozen=True)
class TCPResult:
    """Outcome of one TCP connect attempt."""
    port: int
    status: ProbeStatus
    latency_ms: float | None = None
    error_kind: ErrorKind | None = None
    reason: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status is ProbeStatus.SUCCESS

    @property
    def status_text(self) -> str:
        if self.is_open:
            return f"Open ({self.latency_ms:.1f} ms)"
        if self.status is ProbeStatus.TIMEOUT:
            return "Filtered (timed out)"
        if self.error_kind is ErrorKind.REFUSED:
            return "Closed (connection refused)"
        if self.error_kind is not None:
            return self.error_kind.label
        return self.reason or ErrorKind.PROTOCOL.label


@dataclass(frozen=True)
class UDPResult:
    """Outcome of one UDP send/await exchange."""
    port: int
    status: ProbeStatus
    latency_ms: float | None = None
    response: bytes | None = None
    error_kind: ErrorKind | None = None
    reason: str | None = None

    @property
    def responded(self) -> bool:
        return self.status is ProbeStatus.SUCCESS

    @property
    def response_text(self) -> str:
        if self.response is None:
            return ""
        return self.response.decode("utf-8", errors="replace")

    @property
    def status_text(self) -> str:
        if self.responded:
            return f"Response received ({self.latency_ms:.1f} ms)"
        if self.status is ProbeStatus.TIMEOUT:
            return UDP_NO_RESPONSE
        return self.reason or (self.error_kind.label if self.error_kind else ErrorKind.PROTOCOL.label)


@dataclass(frozen=True)
class TcpSnapshot:
    """Published view of a TCP connect test or scan."""
    host: str
    state: SessionState
    ports: tuple[int, ...]
    address: str | None = None
    family: IPFamily | None = None
    results: tuple[TCPResult, ...] = field(default_factory=tuple)
    location: str | None = None
    failure: ProbeFailure | None = None

    @property
    def progress(self) -> float:
        """Fraction of ports tested, 0.0 to 1.0."""
        if not self.ports:
            return 1.0
        return len(self.results) / len(self.ports)

    @property
    def open_ports(self) -> list[int]:
        return [r.port for r in self.results if r.is_open]


@dataclass(frozen=True)
class UdpSnapshot:
    """Published view of a UDP test."""
    host: str
    state: SessionState
    port: int
    address: str | None = None
    family: IPFamily | None = None
    result: UDPResult | None = None
    location: str | None = None
    failure: ProbeFailure | None = None


class _PortSession(ProbeSession):
    """Shared target handling for TCP and UDP sessions."""

    def __init__(
        self,
        host: str,
        preference: IPPreference = IPPreference.AUTO,
        timeout: float | None = None,
        transport: Transport | None = None,
        enricher: Enricher | None = None,
        config: ProbeConfig | None = None,
    ):
        super().__init__(transport=transport, enricher=enricher, config=config)
        host = host.strip()
        self.host = host if is_ip_address(host) else validate_host(host)
        self.preference = preference
        self.timeout = timeout if timeout is not None else self.config.connect_timeout
        self.target: ResolvedTarget | None = None

    def _location(self) -> str | None:
        annotation = self.annotations.get(self.target.address if self.target else None)
        return annotation.location if annotation else None

    async def _prepare(self) -> None:
        self.target = await self.resolve_target(self.host, self.preference)
        self.enrich(self.target.address)
        self.publish()


class TcpSession(_PortSession):
    """
    TCP connect test against one port, or a sequential scan of several.

    Ports are tried in the order given; each snapshot reports how far the
    scan has progressed.
    """

    tool = "tcp"

    def __init__(self, host: str, ports: int | Iterable[int] = 443, **kwargs):
        super().__init__(host, **kwargs)
        if isinstance(ports, (int, str)):
            ports = [ports]
        self.ports = tuple(validate_port(p) for p in ports)
        if not self.ports:
            raise ValueError("At least one port is required")
        self.results: list[TCPResult] = []

    def snapshot(self) -> TcpSnapshot:
        return TcpSnapshot(
            host=self.host,
            state=self.state,
            ports=self.ports,
            address=self.target.address if self.target else None,
            family=self.target.family if self.target else None,
            results=tuple(self.results),
            location=self._location(),
            failure=self.failure,
        )

    async def execute(self) -> None:
        await self._prepare()
        for port in self.ports:
            if self.cancelled:
                return
            completed, reply = await self.until_cancelled(
                self.transport.tcp_connect(self.target.address, self.target.family, port, timeout=self.timeout)
            )
            if not completed:
                return
            logger.debug(f"tcp {self.target.address}:{port} -> {reply.status.value}")
            self.results.append(TCPResult(
                port=port,
                status=reply.status,
                latency_ms=reply.latency_ms if reply.status is ProbeStatus.SUCCESS else None,
                error_kind=reply.error_kind,
                reason=reply.reason,
            ))
            self.publish()


class UdpSession(_PortSession):
    """Send one datagram and wait for any reply."""

    tool = "udp"

    def __init__(self, host: str, port: int, payload: bytes = DEFAULT_UDP_PAYLOAD, **kwargs):
        super().__init__(host, **kwargs)
        self.port = validate_port(port)
        self.payload = payload
        self.result: UDPResult | None = None

    def snapshot(self) -> UdpSnapshot:
        return UdpSnapshot(
            host=self.host,
            state=self.state,
            port=self.port,
            address=self.target.address if self.target else None,
            family=self.target.family if self.target else None,
            result=self.result,
            location=self._location(),
            failure=self.failure,
        )

    async def execute(self) -> None:
        await self._prepare()
        completed, reply = await self.until_cancelled(
            self.transport.udp_exchange(
                self.target.address,
                self.target.family,
                self.port,
                payload=self.payload,
                timeout=self.timeout,
            )
        )
        if not completed:
            return

        reason = reply.reason
        if reply.status is ProbeStatus.TIMEOUT:
            reason = UDP_NO_RESPONSE
        self.result = UDPResult(
            port=self.port,
            status=reply.status,
            latency_ms=reply.latency_ms if reply.status is ProbeStatus.SUCCESS else None,
            response=reply.payload,
            error_kind=reply.error_kind,
            reason=reason,
        )
        self.publish()

"""
Transport contract.

A transport performs single send/await-reply primitives for each
protocol. Transports never raise for network conditions: every call
returns a reply classified as success, timeout or error. Sessions are
written against this interface so the network can be swapped out.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import errno
import logging
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from probekit.errors import ResolutionError
from probekit.models import ErrorKind, IPFamily, IPPreference, ProbeStatus, ResolvedTarget
from probekit.validation import ip_family

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeReply:
    """Reply to one echo, hop-limited, TCP or UDP probe."""
    status: ProbeStatus
    latency_ms: float | None = None
    responder: str | None = None   # Address the reply came from
    reached: bool = False          # Reply came from the destination itself
    error_kind: ErrorKind | None = None
    reason: str | None = None
    payload: bytes | None = None

    @classmethod
    def success(
        cls,
        latency_ms: float,
        responder: str | None = None,
        reached: bool = True,
        payload: bytes | None = None,
    ) -> "ProbeReply":
        return cls(
            status=ProbeStatus.SUCCESS,
            latency_ms=latency_ms,
            responder=responder,
            reached=reached,
            payload=payload,
        )

    @classmethod
    def timeout(cls, reason: str | None = None) -> "ProbeReply":
        return cls(status=ProbeStatus.TIMEOUT, error_kind=ErrorKind.TIMEOUT, reason=reason)

    @classmethod
    def error(cls, kind: ErrorKind, reason: str, responder: str | None = None) -> "ProbeReply":
        return cls(status=ProbeStatus.ERROR, error_kind=kind, reason=reason, responder=responder)


@dataclass(frozen=True)
class RawRecord:
    """One resource record as returned by the resolver."""
    name: str
    rdtype: int
    type_name: str
    ttl: int | None
    value: str
    wire: bytes = b""


@dataclass(frozen=True)
class DnsReply:
    """Reply to a DNS query."""
    status: ProbeStatus
    records: tuple[RawRecord, ...] = field(default_factory=tuple)
    server: str | None = None
    latency_ms: float = 0.0
    query_id: int | None = None
    error_kind: ErrorKind | None = None
    reason: str | None = None


def classify_os_error(exc: OSError, family: IPFamily | None = None) -> tuple[ErrorKind, str]:
    """Map a socket-level OSError onto an error class and reason."""
    code = exc.errno
    reason = exc.strerror or str(exc) or exc.__class__.__name__

    if code in (errno.EAFNOSUPPORT, errno.EPFNOSUPPORT, errno.EADDRNOTAVAIL):
        return ErrorKind.FAMILY_UNAVAILABLE, reason
    if code == errno.ENETUNREACH:
        # No route at all for this family usually means no IPv6 connectivity
        if family is IPFamily.IPV6:
            return ErrorKind.FAMILY_UNAVAILABLE, reason
        return ErrorKind.UNREACHABLE, reason
    if code == errno.ECONNREFUSED or isinstance(exc, ConnectionRefusedError):
        return ErrorKind.REFUSED, reason
    if code in (errno.EHOSTUNREACH, errno.EHOSTDOWN):
        return ErrorKind.UNREACHABLE, reason
    if code == errno.ETIMEDOUT or isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT, reason
    return ErrorKind.PROTOCOL, reason


class Transport(ABC):
    """Per-protocol send/receive primitives."""

    async def resolve(self, host: str, preference: IPPreference = IPPreference.AUTO) -> ResolvedTarget:
        """
        Resolve a host to one address honouring the IP preference.

        IP literals are used as-is unless they contradict an explicit
        preference, in which case resolution fails.

        Raises:
            ResolutionError: If no address of an acceptable family exists
        """
        literal_family = ip_family(host)
        if literal_family is not None:
            if preference is IPPreference.IPV4 and literal_family is IPFamily.IPV6:
                raise ResolutionError(f"{host} is an IPv6 address but IPv4 was requested")
            if preference is IPPreference.IPV6 and literal_family is IPFamily.IPV4:
                raise ResolutionError(f"{host} is an IPv4 address but IPv6 was requested")
            return ResolvedTarget(host=host, address=host, family=literal_family)

        if preference is IPPreference.IPV4:
            af = socket.AF_INET
        elif preference is IPPreference.IPV6:
            af = socket.AF_INET6
        else:
            af = socket.AF_UNSPEC

        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, None, family=af, type=socket.SOCK_DGRAM)
        except socket.gaierror as e:
            raise ResolutionError(f"Could not resolve {host}: {e}") from e

        for info_family, _, _, _, sockaddr in infos:
            if info_family == socket.AF_INET:
                return ResolvedTarget(host=host, address=sockaddr[0], family=IPFamily.IPV4)
            if info_family == socket.AF_INET6:
                return ResolvedTarget(host=host, address=sockaddr[0], family=IPFamily.IPV6)

        if preference is IPPreference.AUTO:
            raise ResolutionError(f"Could not resolve {host}")
        raise ResolutionError(f"Could not resolve {preference.value.upper()} address for {host}")

    @abstractmethod
    async def family_available(self, family: IPFamily) -> bool:
        """Whether the local host has a usable route for this IP version."""
        raise NotImplementedError

    @abstractmethod
    async def echo(
        self,
        address: str,
        family: IPFamily,
        *,
        sequence: int,
        size: int = 56,
        timeout: float = 2.0,
        ttl: int | None = None,
    ) -> ProbeReply:
        """Send one echo request, optionally hop-limited, and await the reply."""
        raise NotImplementedError

    @abstractmethod
    async def tcp_connect(self, address: str, family: IPFamily, port: int, timeout: float = 3.0) -> ProbeReply:
        """Open (and immediately close) a TCP connection."""
        raise NotImplementedError

    @abstractmethod
    async def udp_exchange(
        self,
        address: str,
        family: IPFamily,
        port: int,
        payload: bytes = b"ping",
        timeout: float = 3.0,
    ) -> ProbeReply:
        """Send one datagram and wait for any datagram in return."""
        raise NotImplementedError

    @abstractmethod
    async def dns_query(
        self,
        name: str,
        rdtype: str,
        *,
        server: str | None = None,
        timeout: float = 3.0,
    ) -> DnsReply:
        """Query one record type, optionally against an explicit server."""
        raise NotImplementedError

    @abstractmethod
    async def resolve_addresses(self, name: str, timeout: float = 3.0) -> DnsReply:
        """Resolve a name the way the platform resolver does (all families)."""
        raise NotImplementedError

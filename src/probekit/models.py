"""
Shared result data model.

Outcome, status and error classification types used by every probe
session. Protocol-specific entities (trace hops, DNS records, cloud
results) live next to the sessions that produce them.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import socket
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class IPFamily(str, Enum):
    """IP protocol version of a resolved address."""
    IPV4 = "ipv4"
    IPV6 = "ipv6"

    @property
    def af(self) -> int:
        return socket.AF_INET6 if self is IPFamily.IPV6 else socket.AF_INET

    @property
    def version(self) -> int:
        return 6 if self is IPFamily.IPV6 else 4


class IPPreference(str, Enum):
    """User preference for which IP version to resolve and probe with."""
    AUTO = "auto"   # Let the system resolver choose
    IPV4 = "ipv4"   # IPv4 only
    IPV6 = "ipv6"   # IPv6 only


class ProbeStatus(str, Enum):
    """Status tag of a single probe attempt."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Classification of a failed probe."""
    TIMEOUT = "timeout"
    FAMILY_UNAVAILABLE = "family_unavailable"
    UNREACHABLE = "unreachable"
    REFUSED = "refused"
    RESOLUTION = "resolution"
    PROTOCOL = "protocol"

    @property
    def label(self) -> str:
        return _ERROR_LABELS[self]


_ERROR_LABELS = {
    ErrorKind.TIMEOUT: "Request timed out",
    ErrorKind.FAMILY_UNAVAILABLE: "Address family unavailable (no local route for this IP version)",
    ErrorKind.UNREACHABLE: "Destination unreachable",
    ErrorKind.REFUSED: "Connection refused",
    ErrorKind.RESOLUTION: "Could not resolve host",
    ErrorKind.PROTOCOL: "Protocol error",
}


class SessionState(str, Enum):
    """Lifecycle of a local probe session."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED)


@dataclass(frozen=True)
class ResolvedTarget:
    """A user-supplied host and the address chosen for probing it."""
    host: str
    address: str
    family: IPFamily


@dataclass(frozen=True)
class ProbeFailure:
    """Why a session could not run, carried on its terminal snapshot."""
    kind: ErrorKind
    reason: str

    @property
    def label(self) -> str:
        return self.kind.label


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of one probe attempt. Immutable once created."""
    sequence: int
    target: str
    address: str
    status: ProbeStatus
    latency_ms: float | None = None
    error_kind: ErrorKind | None = None
    reason: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_success(self) -> bool:
        return self.status is ProbeStatus.SUCCESS

    @property
    def status_text(self) -> str:
        if self.status is ProbeStatus.SUCCESS:
            return f"{self.latency_ms:.1f} ms" if self.latency_ms is not None else "OK"
        if self.status is ProbeStatus.TIMEOUT:
            return ErrorKind.TIMEOUT.label
        if self.reason:
            return self.reason
        return self.error_kind.label if self.error_kind else ErrorKind.PROTOCOL.label

"""
Transport Module

Per-protocol probe primitives: echo, hop-limited echo, TCP connect,
UDP datagram exchange and DNS queries.
"""

from probekit.transport.base import (
    Transport,
    ProbeReply,
    DnsReply,
    RawRecord,
    classify_os_error,
)
from probekit.transport.system import SystemTransport, parse_ping_output

__all__ = [
    "Transport",
    "ProbeReply",
    "DnsReply",
    "RawRecord",
    "classify_os_error",
    "SystemTransport",
    "parse_ping_output",
]

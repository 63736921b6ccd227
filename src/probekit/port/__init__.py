"""
Port Module

TCP connect tests and port scans, and UDP send/await reachability tests.
"""

from probekit.port.core import (
    TcpSession,
    UdpSession,
    TcpSnapshot,
    UdpSnapshot,
    TCPResult,
    UDPResult,
    COMMON_PORTS,
    UDP_NO_RESPONSE,
)

__all__ = [
    "TcpSession",
    "UdpSession",
    "TcpSnapshot",
    "UdpSnapshot",
    "TCPResult",
    "UDPResult",
    "COMMON_PORTS",
    "UDP_NO_RESPONSE",
]

"""
Ping Module

Interval-scheduled echo probes with running loss and latency statistics.
"""

from probekit.ping.core import (
    PingSession,
    PingSnapshot,
    DEFAULT_PACKET_SIZE,
    DEFAULT_INTERVAL,
)

__all__ = [
    "PingSession",
    "PingSnapshot",
    "DEFAULT_PACKET_SIZE",
    "DEFAULT_INTERVAL",
]

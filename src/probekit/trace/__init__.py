"""
Traceroute Module

Hop-by-hop route discovery with per-hop multi-probe aggregation.
"""

from probekit.trace.core import (
    TraceSession,
    TraceSnapshot,
    TraceHop,
    NO_REPLY,
    PROBES_PER_HOP_CHOICES,
)

__all__ = [
    "TraceSession",
    "TraceSnapshot",
    "TraceHop",
    "NO_REPLY",
    "PROBES_PER_HOP_CHOICES",
]

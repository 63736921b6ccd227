"""
Cloud Probe Module

Delegates ping, DNS, TCP and UDP measurements to remote vantage points
through a create-then-poll task API.
"""

from probekit.cloud.client import CloudProbeClient
from probekit.cloud.models import (
    ProbeKind,
    PingOptions,
    DnsOptions,
    GeoFilter,
    CloudProbeTask,
    CloudPingResult,
    CloudDnsAnswer,
    CloudDnsResult,
    CloudProbeResult,
    ProbeLocation,
    LocationCatalog,
    build_catalog_request,
    build_create_request,
    build_query_request,
    decode_results,
)
from probekit.cloud.orchestrator import (
    CloudProbeOrchestrator,
    CloudSnapshot,
    CloudTaskState,
)

__all__ = [
    "CloudProbeClient",
    "ProbeKind",
    "PingOptions",
    "DnsOptions",
    "GeoFilter",
    "CloudProbeTask",
    "CloudPingResult",
    "CloudDnsAnswer",
    "CloudDnsResult",
    "CloudProbeResult",
    "ProbeLocation",
    "LocationCatalog",
    "build_catalog_request",
    "build_create_request",
    "build_query_request",
    "decode_results",
    "CloudProbeOrchestrator",
    "CloudSnapshot",
    "CloudTaskState",
]

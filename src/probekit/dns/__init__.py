"""
DNS Module

Record queries through the platform resolver or an explicit server,
with a dig-style text report.
"""

from probekit.dns.core import (
    DnsSession,
    DnsSnapshot,
    DNSRecord,
    DNSRecordType,
    DNSResult,
    query,
    query_all,
    reverse_name,
)
from probekit.dns.report import format_dig_report

__all__ = [
    "DnsSession",
    "DnsSnapshot",
    "DNSRecord",
    "DNSRecordType",
    "DNSResult",
    "query",
    "query_all",
    "reverse_name",
    "format_dig_report",
]

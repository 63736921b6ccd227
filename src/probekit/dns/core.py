"""
DNS query session.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import random
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

import dns.reversename

from probekit.config import ProbeConfig
from probekit.enrich import Enricher
from probekit.errors import InvalidTargetError
from probekit.models import ProbeFailure, ProbeStatus, SessionState
from probekit.session import ProbeSession
from probekit.transport.base import DnsReply, Transport
from probekit.transport.system import SYSTEM_DNS
from probekit.validation import is_ip_address, validate_host

logger = logging.getLogger(__name__)

_IPV4_IN_TEXT = re.compile(r"(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})")
_IPV6_IN_TEXT = re.compile(r"([0-9a-fA-F:]+:[0-9a-fA-F:]+)")


class DNSRecordType(str, Enum):
    """Record types a query can ask for."""
    SYSTEM = "SYSTEM"  # Platform resolver, every address family it returns
    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    NS = "NS"
    PTR = "PTR"

    @property
    def display_name(self) -> str:
        return "SYSTEM" if self is DNSRecordType.SYSTEM else self.value

    @classmethod
    def concrete(cls) -> list["DNSRecordType"]:
        """Every type that maps to a single wire query."""
        return [t for t in cls if t is not cls.SYSTEM]


def extract_ip(value: str) -> str | None:
    """Find an IP address in a record value, e.g. the target of a CNAME."""
    if is_ip_address(value):
        return value
    for pattern in (_IPV4_IN_TEXT, _IPV6_IN_TEXT):
        match = pattern.search(value)
        if match and is_ip_address(match.group(1)):
            return match.group(1)
    return None


@dataclass(frozen=True)
class DNSRecord:
    """A single answer record."""
    name: str | None
    rdtype: int
    type_name: str
    ttl: int | None
    value: str
    raw: bytes = b""
    location: str | None = None
    is_primary: bool = False  # First record of the answer, display priority only
    rdclass: str = "IN"

    @property
    def dig_line(self) -> str:
        """name.<TAB>TTL<TAB>class<TAB>type<TAB>value"""
        name = self.name or "."
        if not name.endswith("."):
            name += "."
        ttl = str(self.ttl) if self.ttl is not None else "0"
        return f"{name}\t{ttl}\t{self.rdclass}\t{self.type_name}\t{self.value}"

    @property
    def display_value(self) -> str:
        if self.location:
            return f"{self.value} ({self.location})"
        return self.value

    @property
    def raw_hex(self) -> str:
        return " ".join(f"{b:02x}" for b in self.raw)


@dataclass(frozen=True)
class DNSResult:
    """Decoded answer for one query."""
    domain: str
    record_type: DNSRecordType
    records: tuple[DNSRecord, ...] = field(default_factory=tuple)
    latency_ms: float = 0.0
    server: str | None = None
    error: str | None = None
    query_id: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now().astimezone())

    @property
    def ok(self) -> bool:
        return self.error is None

    def dig_report(self) -> str:
        from probekit.dns.report import format_dig_report
        return format_dig_report(self)


@dataclass(frozen=True)
class DnsSnapshot:
    """Published view of a DNS query."""
    domain: str
    state: SessionState
    record_type: DNSRecordType
    server: str | None = None
    result: DNSResult | None = None
    failure: ProbeFailure | None = None


def reverse_name(address: str) -> str:
    """in-addr.arpa / ip6.arpa name for an IP address, without final dot."""
    return dns.reversename.from_address(address).to_text(omit_final_dot=True)


class DnsSession(ProbeSession[DnsSnapshot]):
    """
    One DNS query for one record type.

    SYSTEM resolves through the platform resolver and returns every
    address it exposes. A PTR query for an IP address is sent for the
    reverse name while the result keeps the address as its domain.
    A and AAAA answers are enriched with a location.
    """

    tool = "dns"

    def __init__(
        self,
        domain: str,
        record_type: DNSRecordType | str = DNSRecordType.A,
        server: str | None = None,
        timeout: float | None = None,
        transport: Transport | None = None,
        enricher: Enricher | None = None,
        config: ProbeConfig | None = None,
    ):
        super().__init__(transport=transport, enricher=enricher, config=config)
        self.record_type = DNSRecordType(record_type.upper() if isinstance(record_type, str) else record_type)

        domain = domain.strip().rstrip(".")
        if self.record_type is DNSRecordType.PTR and is_ip_address(domain):
            self.domain = domain
            self.query_name = reverse_name(domain)
        else:
            self.domain = validate_host(domain)
            self.query_name = self.domain

        if server:
            server = server.strip()
            if not is_ip_address(server):
                raise InvalidTargetError(server, "DNS server must be an IP address")
        self.server = server or None

        if timeout is not None:
            self.timeout = timeout
        elif self.server:
            self.timeout = self.config.dns_server_timeout
        else:
            self.timeout = self.config.dns_timeout
        self.result: DNSResult | None = None

    def snapshot(self) -> DnsSnapshot:
        result = self.result
        if result is not None and result.records:
            records = []
            for record in result.records:
                annotation = self.annotations.get(extract_ip(record.value))
                if annotation is not None and annotation.location:
                    record = replace(record, location=annotation.location)
                records.append(record)
            result = replace(result, records=tuple(records))

        return DnsSnapshot(
            domain=self.domain,
            state=self.state,
            record_type=self.record_type,
            server=self.server,
            result=result,
            failure=self.failure,
        )

    async def execute(self) -> None:
        if self.record_type is DNSRecordType.SYSTEM:
            query = self.transport.resolve_addresses(self.query_name, timeout=self.timeout)
        else:
            query = self.transport.dns_query(
                self.query_name,
                self.record_type.value,
                server=self.server,
                timeout=self.timeout,
            )

        completed, reply = await self.until_cancelled(query)
        if not completed:
            return

        self.result = self._build_result(reply)
        logger.debug(
            f"dns {self.record_type.value} {self.query_name}: "
            f"{len(self.result.records)} records, error={self.result.error}"
        )
        for record in self.result.records:
            self.enrich(extract_ip(record.value))
        self.publish()

    def _build_result(self, reply: DnsReply) -> DNSResult:
        records = tuple(
            DNSRecord(
                name=raw.name,
                rdtype=raw.rdtype,
                type_name=raw.type_name,
                ttl=raw.ttl,
                value=raw.value,
                raw=raw.wire,
                is_primary=index == 0,
            )
            for index, raw in enumerate(reply.records)
        )

        error = None
        if reply.status is not ProbeStatus.SUCCESS:
            error = reply.reason or (reply.error_kind.label if reply.error_kind else "Query failed")
        elif not records:
            if self.record_type is DNSRecordType.SYSTEM:
                error = "No records found"
            else:
                error = f"No {self.record_type.value} records found"

        return DNSResult(
            domain=self.domain,
            record_type=self.record_type,
            records=records,
            latency_ms=reply.latency_ms,
            server=reply.server or self.server or SYSTEM_DNS,
            error=error,
            query_id=reply.query_id if reply.query_id is not None else random.randint(0, 0xFFFF),
        )


async def query(
    domain: str,
    record_type: DNSRecordType | str = DNSRecordType.A,
    server: str | None = None,
    **kwargs,
) -> DNSResult:
    """Run a single DNS query and return its result."""
    session = DnsSession(domain, record_type, server=server, **kwargs)
    snapshot = await session.run()
    if snapshot.result is None:
        reason = snapshot.failure.reason if snapshot.failure else "Query cancelled"
        return DNSResult(domain=session.domain, record_type=session.record_type, server=server, error=reason)
    return snapshot.result


async def query_all(domain: str, server: str | None = None, **kwargs) -> list[DNSResult]:
    """Query every concrete record type in turn."""
    results = []
    for record_type in DNSRecordType.concrete():
        results.append(await query(domain, record_type, server=server, **kwargs))
    return results

"""
dig-style text report for DNS results.

The line layout is consumed by copy/export, so it is fixed: tabs
between fields and a trailing dot on every name.
"""

from probekit.dns.core import DNSResult

WHEN_FORMAT = "%a %b %d %H:%M:%S %Z %Y"


def format_dig_report(result: DNSResult) -> str:
    """Render a DNSResult in dig's output layout."""
    status = "NOERROR" if result.error is None else "ERROR"
    domain = result.domain.rstrip(".")

    lines = [
        f"; <<>> ProbeKit DNS <<>> {domain}",
        ";; Got answer:",
        f";; ->>HEADER<<- opcode: QUERY, status: {status}, id: {result.query_id & 0xFFFF}",
        f";; flags: qr rd ra; QUERY: 1, ANSWER: {len(result.records)}, AUTHORITY: 0, ADDITIONAL: 0",
        "",
        ";; QUESTION SECTION:",
        f";{domain}.\t\t\tIN\t{result.record_type.display_name}",
        "",
    ]

    if result.records:
        lines.append(";; ANSWER SECTION:")
        lines.extend(record.dig_line for record in result.records)
        lines.append("")

    lines.append(f";; Query time: {result.latency_ms:.0f} msec")
    lines.append(f";; SERVER: {result.server or 'unknown'}")
    lines.append(f";; WHEN: {result.timestamp.strftime(WHEN_FORMAT)}")

    return "\n".join(lines)

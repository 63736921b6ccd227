"""
DNS CLI commands.
"""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from probekit.dns.core import DNSRecordType, DNSResult, DnsSession
from probekit.dns.report import format_dig_report
from probekit.enrich import Enricher
from probekit.errors import InvalidTargetError
from probekit.services.ipinfo import IPInfoClient
from probekit.transport.system import SystemTransport


def print_dns_result(console: Console, result: DNSResult) -> None:
    if result.error:
        console.print(f"[yellow]{result.record_type.display_name}:[/yellow] {result.error}")
        return

    table = Table(title=f"{result.record_type.display_name} records for {result.domain}")
    table.add_column("Name", style="cyan")
    table.add_column("TTL", justify="right")
    table.add_column("Type", style="green")
    table.add_column("Value")

    for record in result.records:
        value = record.display_value
        if record.is_primary:
            value = f"[bold]{value}[/bold]"
        table.add_row(record.name or ".", str(record.ttl) if record.ttl is not None else "-", record.type_name, value)

    console.print(table)
    console.print(f"[dim]{result.server} in {result.latency_ms:.0f} ms[/dim]")


@click.command(name="dns")
@click.argument("domain")
@click.argument(
    "record_type",
    default="A",
    type=click.Choice([t.value for t in DNSRecordType], case_sensitive=False),
)
@click.option("-s", "--server", help="DNS server to query (default: system resolver)")
@click.option("-t", "--timeout", default=None, type=float, help="Query timeout in seconds")
@click.option("--all", "query_every_type", is_flag=True, help="Query every record type")
@click.option("--dig", "dig_output", is_flag=True, help="Print a dig-style report")
@click.option("--geoip", is_flag=True, help="Look up locations of returned addresses")
def dns_cmd(
    domain: str,
    record_type: str,
    server: str | None,
    timeout: float | None,
    query_every_type: bool,
    dig_output: bool,
    geoip: bool,
):
    """Query DNS records for a domain.

    Examples:
        probekit dns example.com
        probekit dns example.com MX -s 1.1.1.1
        probekit dns 8.8.8.8 PTR
        probekit dns example.com --all --dig
    """
    console = Console()
    types = DNSRecordType.concrete() if query_every_type else [DNSRecordType(record_type.upper())]

    transport = SystemTransport()
    enricher = Enricher(transport, geolocator=IPInfoClient(), resolve_hostnames=False) if geoip else None

    try:
        sessions = [
            DnsSession(domain, t, server=server, timeout=timeout, transport=transport, enricher=enricher)
            for t in types
        ]
    except InvalidTargetError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    async def run():
        results = []
        try:
            with console.status(f"[cyan]Querying {domain}...[/cyan]"):
                for session in sessions:
                    snapshot = await session.run()
                    if snapshot.result is not None:
                        results.append(snapshot.result)
        finally:
            if enricher is not None:
                await enricher.close()
        return results

    for result in asyncio.run(run()):
        if dig_output:
            console.print(format_dig_report(result), markup=False, highlight=False)
            console.print()
        else:
            print_dns_result(console, result)

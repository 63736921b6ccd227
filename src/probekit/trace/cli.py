"""
Traceroute CLI commands.
"""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from probekit.enrich import Enricher
from probekit.errors import InvalidTargetError
from probekit.models import IPPreference, SessionState
from probekit.services.ipinfo import IPInfoClient
from probekit.trace.core import PROBES_PER_HOP_CHOICES, TraceHop, TraceSession
from probekit.transport.system import SystemTransport


def _rtt_text(hop: TraceHop) -> str:
    return "  ".join(f"{s:.1f}ms" if s is not None else "*" for s in hop.slots)


@click.command(name="trace")
@click.argument("host")
@click.option("-q", "--probes", default="3", type=click.Choice([str(n) for n in PROBES_PER_HOP_CHOICES]),
              help="Probes per hop")
@click.option("-m", "--max-hops", default=None, type=int, help="Maximum number of hops")
@click.option("-t", "--timeout", default=None, type=float, help="Timeout per probe in seconds")
@click.option("-4", "ipv4", is_flag=True, help="Use IPv4 only")
@click.option("-6", "ipv6", is_flag=True, help="Use IPv6 only")
@click.option("--no-dns", is_flag=True, help="Don't resolve hop hostnames")
@click.option("--geoip", is_flag=True, help="Include GeoIP information for each hop")
def trace_cmd(
    host: str,
    probes: str,
    max_hops: int | None,
    timeout: float | None,
    ipv4: bool,
    ipv6: bool,
    no_dns: bool,
    geoip: bool,
):
    """Perform a traceroute to a host.

    Examples:
        probekit trace 8.8.8.8
        probekit trace example.com -q 5 -m 20
        probekit trace 1.1.1.1 --geoip
    """
    console = Console()
    preference = IPPreference.IPV6 if ipv6 else IPPreference.IPV4 if ipv4 else IPPreference.AUTO

    transport = SystemTransport()
    enricher = Enricher(
        transport,
        geolocator=IPInfoClient() if geoip else None,
        resolve_hostnames=not no_dns,
        resolve_locations=geoip,
    )
    try:
        session = TraceSession(
            host, probes_per_hop=int(probes), max_hops=max_hops, preference=preference,
            timeout=timeout, transport=transport, enricher=enricher,
        )
    except (InvalidTargetError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    async def run():
        shown = 0
        try:
            async for snapshot in session:
                for hop in snapshot.hops[shown:]:
                    console.print(f"{hop.hop:>3}  {hop.address:<40} {_rtt_text(hop)}")
                shown = len(snapshot.hops)
            return session.latest
        finally:
            session.cancel()
            await enricher.close()

    try:
        snapshot = asyncio.run(run())
    except KeyboardInterrupt:
        session.cancel()
        snapshot = session.latest

    if snapshot is None:
        return
    if snapshot.state is SessionState.FAILED and snapshot.failure:
        console.print(f"[red]Error:[/red] {snapshot.failure.label}: {snapshot.failure.reason}")
        raise SystemExit(1)

    if not snapshot.hops:
        console.print(f"[yellow]No route found to {host}[/yellow]")
        return

    table = Table(title=f"Traceroute: {host} ({snapshot.address})", box=None)
    table.add_column("Hop", style="cyan", width=4)
    table.add_column("IP", style="white")
    table.add_column("Hostname", style="dim")
    table.add_column("RTT", style="white")
    table.add_column("Loss", justify="right")
    if geoip:
        table.add_column("Location", style="yellow")

    for hop in snapshot.hops:
        if hop.is_timeout:
            row = [str(hop.hop), "*", "[dim]Request timed out[/dim]", _rtt_text(hop), "100%"]
        else:
            row = [str(hop.hop), hop.address, hop.hostname or "-", _rtt_text(hop), f"{hop.loss_rate:.0f}%"]
        if geoip:
            row.append(hop.location or "-")
        table.add_row(*row)

    console.print()
    console.print(table)
    if not snapshot.reached_target:
        console.print(f"[yellow]Target not reached within {snapshot.max_hops} hops[/yellow]")

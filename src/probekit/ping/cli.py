"""
Ping CLI commands.
"""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from probekit.enrich import Enricher
from probekit.errors import InvalidTargetError
from probekit.models import IPPreference, SessionState
from probekit.ping.core import DEFAULT_INTERVAL, DEFAULT_PACKET_SIZE, PingSession, PingSnapshot
from probekit.services.ipinfo import IPInfoClient
from probekit.transport.system import SystemTransport


def print_ping_summary(console: Console, snapshot: PingSnapshot) -> None:
    stats = snapshot.statistics

    table = Table(title=f"Ping: {snapshot.host}", show_header=False, box=None)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Host", snapshot.host)
    if snapshot.address:
        table.add_row("IP", snapshot.address)
    if snapshot.hostname:
        table.add_row("Hostname", snapshot.hostname)
    if snapshot.location:
        table.add_row("Location", snapshot.location)
    table.add_row("Packets Sent", str(stats.sent))
    table.add_row("Packets Received", str(stats.received))

    loss_color = "green" if stats.loss_rate == 0 else "yellow" if stats.loss_rate < 50 else "red"
    table.add_row("Packet Loss", f"[{loss_color}]{stats.loss_rate:.1f}%[/{loss_color}]")

    if stats.received:
        table.add_row("", "")
        table.add_row("Min RTT", f"{stats.min_ms:.2f} ms")
        table.add_row("Avg RTT", f"{stats.avg_ms:.2f} ms")
        table.add_row("Max RTT", f"{stats.max_ms:.2f} ms")
        table.add_row("Std Dev", f"{stats.stddev_ms:.2f} ms")

    console.print(table)


@click.command(name="ping")
@click.argument("host")
@click.option("-c", "--count", default=5, help="Number of pings to send (0 = until interrupted)")
@click.option("-s", "--size", default=DEFAULT_PACKET_SIZE, help="Payload size in bytes")
@click.option("-i", "--interval", default=DEFAULT_INTERVAL, help="Seconds between pings")
@click.option("-t", "--timeout", default=None, type=float, help="Timeout per ping in seconds")
@click.option("-4", "ipv4", is_flag=True, help="Use IPv4 only")
@click.option("-6", "ipv6", is_flag=True, help="Use IPv6 only")
@click.option("--geoip", is_flag=True, help="Look up the target's location")
def ping_cmd(
    host: str,
    count: int,
    size: int,
    interval: float,
    timeout: float | None,
    ipv4: bool,
    ipv6: bool,
    geoip: bool,
):
    """Ping a host, streaming each reply.

    Examples:
        probekit ping 8.8.8.8
        probekit ping example.com -c 10 -i 0.5
        probekit ping example.com -6
    """
    console = Console()
    preference = IPPreference.IPV6 if ipv6 else IPPreference.IPV4 if ipv4 else IPPreference.AUTO

    transport = SystemTransport()
    enricher = Enricher(transport, geolocator=IPInfoClient() if geoip else None)
    try:
        session = PingSession(
            host, count=count, size=size, interval=interval, preference=preference,
            timeout=timeout, transport=transport, enricher=enricher,
        )
    except (InvalidTargetError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    async def run():
        header = False
        shown = 0
        try:
            async for snapshot in session:
                if not header and snapshot.address:
                    console.print(f"[cyan]PING {snapshot.host} ({snapshot.address}): {size} data bytes[/cyan]")
                    header = True
                for outcome in snapshot.outcomes[shown:]:
                    color = "green" if outcome.is_success else "red"
                    console.print(f"seq={outcome.sequence} [{color}]{outcome.status_text}[/{color}]")
                shown = len(snapshot.outcomes)
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

    console.print()
    print_ping_summary(console, snapshot)

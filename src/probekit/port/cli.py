"""
TCP and UDP CLI commands.
"""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from probekit.enrich import Enricher
from probekit.errors import InvalidTargetError
from probekit.models import IPPreference, SessionState
from probekit.port.core import COMMON_PORTS, TcpSession, UdpSession
from probekit.services.ipinfo import IPInfoClient
from probekit.transport.system import SystemTransport


def _preference(ipv4: bool, ipv6: bool) -> IPPreference:
    return IPPreference.IPV6 if ipv6 else IPPreference.IPV4 if ipv4 else IPPreference.AUTO


@click.command(name="tcp")
@click.argument("host")
@click.option("-p", "--ports", help="Comma-separated list of ports to check")
@click.option("--common", is_flag=True, help="Check common ports")
@click.option("-t", "--timeout", default=None, type=float, help="Timeout per port in seconds")
@click.option("-4", "ipv4", is_flag=True, help="Use IPv4 only")
@click.option("-6", "ipv6", is_flag=True, help="Use IPv6 only")
@click.option("--geoip", is_flag=True, help="Look up the target's location")
def tcp_cmd(host: str, ports: str | None, common: bool, timeout: float | None, ipv4: bool, ipv6: bool, geoip: bool):
    """Test TCP connectivity to one or more ports.

    Examples:
        probekit tcp example.com
        probekit tcp 192.168.1.1 -p 22,80,443
        probekit tcp example.com --common
    """
    console = Console()

    # Determine ports to scan
    if ports:
        port_list = [p.strip() for p in ports.split(",") if p.strip()]
    elif common:
        port_list = COMMON_PORTS
    else:
        port_list = [443]

    transport = SystemTransport()
    enricher = Enricher(transport, geolocator=IPInfoClient() if geoip else None, resolve_hostnames=False)
    try:
        session = TcpSession(
            host, ports=port_list, preference=_preference(ipv4, ipv6),
            timeout=timeout, transport=transport, enricher=enricher,
        )
    except (InvalidTargetError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    async def run():
        try:
            with console.status(f"[cyan]Connecting to {host}...[/cyan]") as status:
                async for snapshot in session:
                    status.update(f"[cyan]Scanning {host}... {snapshot.progress:.0%}[/cyan]")
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

    title = f"TCP: {host} ({snapshot.address})"
    if snapshot.location:
        title += f" - {snapshot.location}"
    table = Table(title=title)
    table.add_column("Port", style="cyan", justify="right")
    table.add_column("Status")

    for result in snapshot.results:
        color = "green" if result.is_open else "red"
        table.add_row(str(result.port), f"[{color}]{result.status_text}[/{color}]")

    console.print(table)
    console.print(f"[dim]{len(snapshot.open_ports)} of {len(snapshot.results)} ports open[/dim]")


@click.command(name="udp")
@click.argument("host")
@click.option("-p", "--port", default=53, help="Destination port")
@click.option("-d", "--data", default="ping", help="Payload to send")
@click.option("-t", "--timeout", default=None, type=float, help="Seconds to wait for a reply")
@click.option("-4", "ipv4", is_flag=True, help="Use IPv4 only")
@click.option("-6", "ipv6", is_flag=True, help="Use IPv6 only")
def udp_cmd(host: str, port: int, data: str, timeout: float | None, ipv4: bool, ipv6: bool):
    """Send a UDP datagram and wait for any reply.

    Examples:
        probekit udp 8.8.8.8 -p 53
        probekit udp example.com -p 9999 -d hello
    """
    console = Console()

    try:
        session = UdpSession(
            host, port, payload=data.encode(), preference=_preference(ipv4, ipv6), timeout=timeout,
        )
    except (InvalidTargetError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    async def run():
        with console.status(f"[cyan]Sending to {host}:{port}...[/cyan]"):
            return await session.run()

    snapshot = asyncio.run(run())

    if snapshot.state is SessionState.FAILED and snapshot.failure:
        console.print(f"[red]Error:[/red] {snapshot.failure.label}: {snapshot.failure.reason}")
        raise SystemExit(1)

    result = snapshot.result
    if result is None:
        return
    if result.responded:
        console.print(f"[green]{result.status_text}[/green]")
        if result.response_text:
            console.print(f"[dim]{result.response_text}[/dim]")
    else:
        console.print(f"[yellow]{result.status_text}[/yellow]")

"""
Cloud probe CLI commands.
"""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from probekit.cloud.client import CloudProbeClient
from probekit.cloud.models import CloudProbeTask, GeoFilter, LocationCatalog, ProbeKind
from probekit.cloud.orchestrator import CloudProbeOrchestrator, CloudSnapshot, CloudTaskState
from probekit.errors import CloudProbeError, InvalidTargetError


def _fmt_ms(value: float | None) -> str:
    return f"{value:.1f}" if value is not None else "-"


def print_cloud_results(console: Console, snapshot: CloudSnapshot) -> None:
    task = snapshot.task
    title = f"Cloud {task.kind.display_name}: {task.target_address}"

    if task.kind is ProbeKind.DNS:
        table = Table(title=title)
        table.add_column("Country", style="cyan")
        table.add_column("Province")
        table.add_column("ISP")
        table.add_column("Name Server", style="dim")
        table.add_column("Answers", style="green")
        table.add_column("RTT (ms)", justify="right")
        for r in snapshot.result.dns_results:
            answers = ", ".join(a.parse_ip or a.name or "" for a in r.answers) or (r.error_message or "-")
            table.add_row(
                r.agent_country or "-", r.agent_province or "-", r.agent_isp or "-",
                r.name_server or "-", answers, _fmt_ms(r.rtt_ms),
            )
    else:
        table = Table(title=title)
        table.add_column("Country", style="cyan")
        table.add_column("Province")
        table.add_column("ISP")
        table.add_column("Peer IP", style="dim")
        table.add_column("Min", justify="right")
        table.add_column("Avg", justify="right")
        table.add_column("Max", justify="right")
        table.add_column("Loss", justify="right")
        for r in snapshot.result.ping_results:
            if r.error_message:
                stats = [f"[red]{r.error_message}[/red]", "", "", ""]
            else:
                loss = f"{r.packet_loss:.0f}%" if r.packet_loss is not None else "-"
                stats = [_fmt_ms(r.min_rtt_ms), _fmt_ms(r.avg_rtt_ms), _fmt_ms(r.max_rtt_ms), loss]
            table.add_row(r.agent_country or "-", r.agent_province or "-", r.agent_isp or "-", r.peer_ip or "-", *stats)

    console.print(table)


@click.group()
def cloud():
    """Run measurements from remote vantage points."""
    pass


@cloud.command()
@click.option("--country", help="Only show this country")
def locations(country: str | None):
    """List available vantage points.

    Examples:
        probekit cloud locations
        probekit cloud locations --country China
    """
    console = Console()
    catalog = LocationCatalog()

    async def fetch():
        async with CloudProbeClient() as client:
            with console.status("[cyan]Fetching probe locations...[/cyan]"):
                await catalog.load(client)

    try:
        asyncio.run(fetch())
    except CloudProbeError as e:
        console.print(f"[red]Error:[/red] {e.details}")
        raise SystemExit(1)

    table = Table(title="Probe Locations")
    table.add_column("Area", style="dim")
    table.add_column("Country", style="cyan")
    table.add_column("ISP")
    table.add_column("AS", justify="right", style="green")

    for loc in catalog.find(country=country):
        table.add_row(loc.display_area, loc.display_country, loc.display_isp, str(loc.as_id))

    console.print(table)
    console.print(f"[dim]{len(catalog.countries())} countries, {len(catalog)} vantage points[/dim]")


@cloud.command()
@click.argument("kind", type=click.Choice([k.value for k in ProbeKind], case_sensitive=False))
@click.argument("host")
@click.option("-p", "--port", help="Target port for tcp/udp (default 443)")
@click.option("-r", "--rtype", default="A", help="Record type for dns")
@click.option("--country", help="Only use agents in this country")
@click.option("--isp", help="Only use agents on this ISP")
@click.option("--asn", type=int, help="Only use agents in this AS")
@click.option("--polls", default=None, type=int, help="Maximum number of result polls")
def run(kind: str, host: str, port: str | None, rtype: str, country: str | None, isp: str | None,
        asn: int | None, polls: int | None):
    """Create a cloud measurement task and poll for results.

    Examples:
        probekit cloud run ping example.com
        probekit cloud run tcp example.com -p 22 --country China
        probekit cloud run dns example.com -r AAAA
    """
    console = Console()
    task = CloudProbeTask(
        kind=ProbeKind(kind.lower()),
        host=host,
        port=port,
        filter=GeoFilter(country=country, isp=isp, as_id=asn),
        dns_record_type=rtype.upper(),
    )

    async def execute():
        async with CloudProbeClient() as client:
            orchestrator = CloudProbeOrchestrator(task, client=client, max_polls=polls)
            with console.status("[cyan]Creating task...[/cyan]") as status:
                async for snapshot in orchestrator:
                    if snapshot.state is CloudTaskState.POLLING and snapshot.attempt:
                        status.update(
                            f"[cyan]Task {snapshot.task_id}: poll {snapshot.attempt}/{snapshot.max_polls}, "
                            f"{snapshot.result.count} results[/cyan]"
                        )
            return orchestrator.latest

    try:
        snapshot = asyncio.run(execute())
    except InvalidTargetError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    if snapshot.state is CloudTaskState.FAILED:
        console.print(f"[red]Error:[/red] {snapshot.error}")
        raise SystemExit(1)

    print_cloud_results(console, snapshot)
    if snapshot.state is CloudTaskState.EXHAUSTED:
        console.print(f"[yellow]Task not finished after {snapshot.attempt} polls; results may be partial[/yellow]")

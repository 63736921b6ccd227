"""
ProbeKit command line entry point.
"""

import click

from probekit import __version__
from probekit.cloud.cli import cloud
from probekit.dns.cli import dns_cmd
from probekit.logging_config import configure_logging
from probekit.ping.cli import ping_cmd
from probekit.port.cli import tcp_cmd, udp_cmd
from probekit.trace.cli import trace_cmd


@click.group()
@click.version_option(__version__, prog_name="probekit")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--log-file", is_flag=True, help="Also log to ~/.probekit/logs/probekit.log")
def main(debug: bool, log_file: bool):
    """Active network measurement: ping, traceroute, TCP/UDP, DNS and cloud probes."""
    configure_logging(debug=debug, log_to_file=log_file)


main.add_command(ping_cmd)
main.add_command(trace_cmd)
main.add_command(tcp_cmd)
main.add_command(udp_cmd)
main.add_command(dns_cmd)
main.add_command(cloud)


if __name__ == "__main__":
    main()

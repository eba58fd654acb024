"""
CLI commands for DHCPv6 prefix delegation.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

import click
from netaddr import AddrFormatError
from rich.console import Console
from rich.table import Table

from dhcp6pd import __version__
from dhcp6pd.config import get_settings
from dhcp6pd.dhcp6.client import DHCP6Client
from dhcp6pd.dhcp6.errors import DHCP6Error
from dhcp6pd.dhcp6.lease import LeaseConfig
from dhcp6pd.dhcp6.messages import duid_llt, format_duid, parse_duid, parse_mac
from dhcp6pd.dhcp6.transport import interface_hardware_address
from dhcp6pd.logging_config import configure_logging

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def connection_options(func):
    """Options shared by every command that talks to a server."""
    options = [
        click.option("--interface", "-i", help="Network interface to use"),
        click.option("--duid", help="Client DUID as hex (including the DUID type)"),
        click.option("--mac", "-m", help="Override MAC address (xx:xx:xx:xx:xx:xx)"),
        click.option("--server", "-s", help="Unicast server address (default: ff02::1:2)"),
        click.option("--timeout", "-t", type=float, help="Read/write timeout in seconds"),
        click.option("--verbose", "-v", is_flag=True, help="Verbose debug output"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def create_client(
    interface: str | None,
    duid: str | None,
    mac: str | None,
    server: str | None,
    timeout: float | None,
) -> DHCP6Client:
    """Create a DHCPv6 client from settings and command line overrides."""
    config = get_settings().client_config(
        interface=interface,
        duid=duid,
        hardware_address=mac,
        server=server,
        read_timeout=timeout,
        write_timeout=timeout,
    )
    return DHCP6Client(config)


def open_client(interface, duid, mac, server, timeout) -> DHCP6Client:
    try:
        return create_client(interface, duid, mac, server, timeout)
    except PermissionError:
        err_console.print("[red]Error: Permission denied. Binding to port 546 requires root.[/red]")
        sys.exit(1)
    except (DHCP6Error, ValueError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def display_lease(lease: LeaseConfig):
    """Display lease information."""
    table = Table(title="DHCPv6 Prefix Delegation", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    if lease.prefixes:
        for i, prefix in enumerate(lease.prefixes):
            table.add_row("Prefix" if i == 0 else "", str(prefix))
    else:
        table.add_row("Prefix", "N/A")

    if lease.dns:
        for i, server in enumerate(lease.dns):
            table.add_row("DNS Servers" if i == 0 else "", server)
    else:
        table.add_row("DNS Servers", "N/A")

    if lease.has_lease:
        table.add_row("Renew After", lease.renew_after.isoformat())
    else:
        table.add_row("Renew After", "unknown")

    console.print(table)


@click.group()
@click.version_option(__version__, prog_name="dhcp6pd")
def dhcp6():
    """DHCPv6 prefix delegation client.

    Obtains a delegated IPv6 prefix and DNS servers from a DHCPv6
    server, and releases it again.

    \b
    Examples:
        # Obtain a prefix on the uplink
        dhcp6pd obtain -i uplink0 -v

        # Keep the delegation renewed, writing it to a file
        dhcp6pd run -i uplink0 --output /var/lib/dhcp6pd/lease.json

        # Give the prefix back
        dhcp6pd release -i uplink0

    Note: Binding to the DHCPv6 client port requires root privileges.
    """
    settings = get_settings()
    try:
        configure_logging(level=settings.log_level)
    except ValueError as e:
        err_console.print(f"[red]Error: DHCP6PD_LOG_LEVEL: {e}[/red]")
        sys.exit(1)


@dhcp6.command()
@connection_options
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the lease as JSON")
@click.option("--json-output", "json_out", is_flag=True, help="Output as JSON")
def obtain(
    interface: str | None,
    duid: str | None,
    mac: str | None,
    server: str | None,
    timeout: float | None,
    verbose: bool,
    output: str | None,
    json_out: bool,
):
    """Obtain a delegated prefix (Solicit, Advertise, Request, Reply).

    \b
    Examples:
        dhcp6pd obtain -i uplink0
        dhcp6pd obtain -i uplink0 --json-output
        dhcp6pd obtain -i uplink0 --duid 00:03:00:01:4c:5e:0c:41:bf:39
    """
    if verbose:
        configure_logging(debug=True)

    client = open_client(interface, duid, mac, server, timeout)
    with client:
        if not json_out and not verbose:
            err_console.print("[dim]Soliciting prefix delegation...[/dim]")
        client.obtain_or_renew()

        if client.error:
            if json_out:
                click.echo(json.dumps({"success": False, "error": str(client.error)}))
            else:
                err_console.print(f"[red]Failed to obtain prefix: {client.error}[/red]")
            sys.exit(1)

        lease = client.lease
        output = output or get_settings().lease_file
        if output:
            lease.save(output)

        if json_out:
            click.echo(json.dumps({"success": True, "lease": lease.to_dict()}, indent=2))
        else:
            display_lease(lease)


@dhcp6.command()
@connection_options
def release(
    interface: str | None,
    duid: str | None,
    mac: str | None,
    server: str | None,
    timeout: float | None,
    verbose: bool,
):
    """Release the delegated prefix.

    Solicits first to learn the server and the prefix bound to this
    DUID, then sends a Release for it.

    \b
    Examples:
        dhcp6pd release -i uplink0
    """
    if verbose:
        configure_logging(debug=True)

    client = open_client(interface, duid, mac, server, timeout)
    with client:
        try:
            client.solicit()
            client.release()
        except DHCP6Error as e:
            err_console.print(f"[red]Failed to release prefix: {e}[/red]")
            sys.exit(1)
    console.print("[green]Prefix released[/green]")


@dhcp6.command()
@connection_options
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the lease as JSON")
@click.option("--retry-interval", default=60.0, show_default=True,
              help="Seconds to wait after a failure or when no deadline is known")
@click.option("--once", is_flag=True, help="Run a single iteration and exit")
@click.option("--log-file", type=click.Path(dir_okay=False),
              help="Also log to this rotating file (default: DHCP6PD_LOG_FILE)")
def run(
    interface: str | None,
    duid: str | None,
    mac: str | None,
    server: str | None,
    timeout: float | None,
    verbose: bool,
    output: str | None,
    retry_interval: float,
    once: bool,
    log_file: str | None,
):
    """Obtain a prefix and keep renewing it before it is due.

    \b
    Examples:
        dhcp6pd run -i uplink0 --output /var/lib/dhcp6pd/lease.json
        dhcp6pd run -i uplink0 --log-file /var/log/dhcp6pd.log
    """
    settings = get_settings()
    log_file = log_file or settings.log_file
    if verbose or log_file:
        configure_logging(
            debug=verbose,
            log_to_file=bool(log_file),
            level=settings.log_level,
            log_file=log_file,
        )

    output = output or settings.lease_file
    client = open_client(interface, duid, mac, server, timeout)
    with client:
        while True:
            client.obtain_or_renew()

            if client.error:
                logger.warning(f"Obtaining prefix failed: {client.error}")
                wait = retry_interval
            else:
                lease = client.lease
                if output:
                    lease.save(output)
                display_lease(lease)
                wait = renew_delay(lease, retry_interval)

            if once:
                sys.exit(1 if client.error else 0)

            logger.info(f"Next attempt in {wait:.0f}s")
            time.sleep(wait)


def renew_delay(lease: LeaseConfig, fallback: float, now: datetime | None = None) -> float:
    """
    Seconds until the lease should be renewed.

    A deadline that is unknown or not in the future (T1 of 0 leaves the
    timing to the client) waits the fallback interval instead.
    """
    if not lease.has_lease:
        return fallback
    now = now or datetime.now(timezone.utc)
    delay = (lease.renew_after - now).total_seconds()
    if delay <= 0:
        return fallback
    return delay


@dhcp6.command("duid")
@click.option("--interface", "-i", help="Network interface to derive the DUID from")
@click.option("--duid", "duid_value", help="Validate and normalise a DUID given as hex")
@click.option("--mac", "-m", help="Derive the DUID from this MAC address")
def show_duid(interface: str | None, duid_value: str | None, mac: str | None):
    """Print the DUID the client would identify with.

    Without --duid a new DUID-LLT is derived from the hardware address,
    so pass the printed value with --duid (or DHCP6PD_DUID) to keep
    the same identity, and with it the same prefix, across restarts.
    """
    settings = get_settings()
    try:
        duid_value = duid_value or settings.duid
        if duid_value:
            duid = parse_duid(duid_value)
        else:
            mac = mac or settings.hardware_address
            interface = interface or settings.interface
            if mac:
                hardware_address = parse_mac(mac)
            elif interface:
                hardware_address = interface_hardware_address(interface)
            else:
                raise click.UsageError("one of --duid, --mac or --interface is required")
            duid = duid_llt(hardware_address)
    except DHCP6Error as e:
        err_console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    click.echo(format_duid(duid))


@dhcp6.command()
@click.argument("lease_file", type=click.Path(exists=True, dir_okay=False), required=False)
@click.option("--json-output", "json_out", is_flag=True, help="Output as JSON")
def show(lease_file: str | None, json_out: bool):
    """Show a lease file written by obtain or run."""
    lease_file = lease_file or get_settings().lease_file
    if not lease_file:
        raise click.UsageError("no lease file given and DHCP6PD_LEASE_FILE is not set")

    try:
        lease = LeaseConfig.load(lease_file)
    except (OSError, ValueError, AddrFormatError) as e:
        err_console.print(f"[red]Could not read {Path(lease_file)}: {e}[/red]")
        sys.exit(1)

    if json_out:
        click.echo(json.dumps(lease.to_dict(), indent=2))
    else:
        display_lease(lease)


if __name__ == "__main__":
    dhcp6()

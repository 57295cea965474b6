"""
CLI for querying NTP servers and syncing the stable clock.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import json
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from ntpclock import __version__
from ntpclock.clock import Clock, FileTimeStorage
from ntpclock.config import get_config
from ntpclock.dns.core import DNSResolver
from ntpclock.logging_config import configure_logging, get_error_stats, get_server_error_stats
from ntpclock.ntp.client import NTPClient
from ntpclock.ntp.packet import (
    KNOWN_NTP_SERVERS,
    NTPPacket,
    get_leap_description,
    get_stratum_description,
)

console = Console()


def _format_time(timestamp: float | None) -> str:
    if timestamp is None:
        return "N/A"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S.%f UTC')


@click.group()
@click.version_option(__version__, prog_name="ntpclock")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool):
    """Stable NTP time without touching the system clock.

    \b
    Examples:
        # Query a single server
        ntpclock query time.google.com

        # Sync against a pool and store the result
        ntpclock sync pool.ntp.org

        # Show the stored stable time
        ntpclock now
    """
    configure_logging(debug=debug)


# ================================================================
# Single server
# ================================================================

@main.command()
@click.argument("server")
@click.option("--timeout", "-t", type=float, default=None, help="Exchange timeout")
@click.option("--count", "-c", type=int, default=1, help="Number of exchanges")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--json-output", "json_out", is_flag=True, help="Output as JSON")
def query(server: str, timeout: float | None, count: int, verbose: bool, json_out: bool):
    """Query an NTP server.

    SERVER may be a hostname or an IP address; every resolved address is
    queried COUNT times.

    \b
    Examples:
        ntpclock query time.cloudflare.com
        ntpclock query 162.159.200.1 -c 4 -v
    """
    config = get_config()
    client = NTPClient.from_config(config)
    resolver = DNSResolver(nameservers=config.nameservers or None, timeout=config.dns_timeout)

    async def run() -> list[tuple[str, NTPPacket | None]]:
        addresses = await resolver.resolve(server)
        results = []
        for address in addresses:
            packets = await client.query_samples(address, count, timeout=timeout)
            results.extend((address.host, packet) for packet in packets)
        return results

    results = asyncio.run(run())

    if json_out:
        click.echo(json.dumps(
            [{"server": host, "success": p is not None, **(p.to_dict() if p else {})} for host, p in results],
            indent=2,
        ))
        return

    if not results:
        console.print(f"[red]Could not resolve {server}[/red]")
        raise SystemExit(1)

    if verbose:
        for host, packet in results:
            display_packet(host, packet)
        return

    table = Table(title=f"NTP Results: {server}")
    table.add_column("Server", style="cyan")
    table.add_column("Status")
    table.add_column("Stratum", justify="center")
    table.add_column("Offset (ms)", justify="right")
    table.add_column("Delay (ms)", justify="right")

    for host, packet in results:
        if packet is None:
            table.add_row(host, "[red]No valid reply[/red]", "-", "-", "-")
        else:
            table.add_row(
                host,
                "[green]OK[/green]",
                str(packet.stratum),
                f"{packet.offset * 1000:.3f}",
                f"{packet.delay * 1000:.3f}",
            )

    console.print(table)


def display_packet(host: str, packet: NTPPacket | None):
    """Display a single NTP reply."""
    if packet is None:
        console.print(f"[red]{host}: no valid reply[/red]")
        return

    source = packet.clock_source
    reference = source.text + (f" ({source.description})" if source.description else "")
    info = f"""[bold]{host}[/bold]

[cyan]Server Time:[/cyan] {_format_time(packet.transmit_time)}
[cyan]Stratum:[/cyan] {packet.stratum} ({get_stratum_description(packet.stratum)})
[cyan]Reference:[/cyan] {reference}
[cyan]Leap:[/cyan] {get_leap_description(packet.leap)}

[cyan]Clock Offset:[/cyan] {packet.offset * 1000:.6f} ms
[cyan]Round Trip:[/cyan] {packet.delay * 1000:.3f} ms

[dim]NTP Version: {packet.version}
Poll Interval: {packet.poll}
Precision: {packet.precision}
Root Delay: {packet.root_delay:.6f}s
Root Dispersion: {packet.root_dispersion:.6f}s
Reference Timestamp: {_format_time(packet.reference_time)}
Originate Timestamp: {_format_time(packet.origin_time)}
Receive Timestamp: {_format_time(packet.receive_time)}[/dim]
"""

    console.print(Panel(info, title=f"NTP Response: {host}"))


# ================================================================
# Stable clock
# ================================================================

@main.command()
@click.argument("pool", required=False)
@click.option("--known", "-k", type=click.Choice(sorted(KNOWN_NTP_SERVERS)), help="Use a well-known pool")
@click.option("--samples", "-s", type=int, default=None, help="Samples per server")
@click.option("--max-servers", "-m", type=int, default=None, help="Maximum servers to sample")
@click.option("--timeout", "-t", type=float, default=None, help="Exchange timeout")
@click.option("--no-store", is_flag=True, help="Do not persist the result")
@click.option("--json-output", "json_out", is_flag=True, help="Output as JSON")
def sync(
    pool: str | None,
    known: str | None,
    samples: int | None,
    max_servers: int | None,
    timeout: float | None,
    no_store: bool,
    json_out: bool,
):
    """Sync the stable clock against an NTP pool.

    \b
    Examples:
        ntpclock sync
        ntpclock sync pool.ntp.org -s 8
        ntpclock sync --known google
    """
    config = get_config()
    if known:
        pool = KNOWN_NTP_SERVERS[known][0]
    pool = pool or config.pool

    storage = None if no_store else FileTimeStorage(config.storage_path)
    clock = Clock(storage=storage, config=config)

    async def run():
        if json_out:
            return await clock.sync(pool, samples, max_servers, timeout)

        with Progress(
            TextColumn("[cyan]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
            transient=True,
        ) as progress:
            task_id = progress.add_task(f"Sampling {pool}", total=None)
            return await clock.sync(
                pool, samples, max_servers, timeout,
                on_first=lambda date, offset: progress.console.print(
                    f"[dim]First offset {offset * 1000:.3f} ms[/dim]"
                ),
                on_progress=lambda offset, completed, total: progress.update(
                    task_id, completed=completed, total=total
                ),
            )

    date, offset = asyncio.run(run())

    if json_out:
        click.echo(json.dumps({
            "pool": pool,
            "time": date.isoformat() if date else None,
            "offset": offset,
            "errors": get_error_stats(),
            "failing_servers": get_server_error_stats(),
        }, indent=2))
        return

    if offset is None:
        console.print(f"[red]No usable NTP reply from {pool}[/red]")
        raise SystemExit(1)

    console.print(Panel(
        f"[cyan]Time:[/cyan] {date.strftime('%Y-%m-%d %H:%M:%S.%f UTC')}\n"
        f"[cyan]Offset:[/cyan] {offset * 1000:.3f} ms",
        title=f"Synced with {pool}",
    ))


@main.command()
@click.option("--json-output", "json_out", is_flag=True, help="Output as JSON")
def now(json_out: bool):
    """Show the stable time from the last stored sync.

    Stored state is ignored after a reboot; run `ntpclock sync` again.
    """
    config = get_config()
    clock = Clock(storage=FileTimeStorage(config.storage_path), config=config)
    clock.load_from_storage()
    annotated = clock.now_annotated()

    if json_out:
        click.echo(json.dumps({
            "time": annotated.date.isoformat() if annotated else None,
            "offset": clock.current_offset,
            "time_since_last_sync": annotated.time_since_last_sync if annotated else None,
        }, indent=2))
        return

    if annotated is None:
        console.print("[yellow]No stable time stored; run `ntpclock sync` first[/yellow]")
        raise SystemExit(1)

    console.print(Panel(
        f"[cyan]Time:[/cyan] {annotated.date.strftime('%Y-%m-%d %H:%M:%S.%f UTC')}\n"
        f"[cyan]Offset:[/cyan] {clock.current_offset * 1000:.3f} ms\n"
        f"[cyan]Last sync:[/cyan] {annotated.time_since_last_sync:.0f}s ago",
        title="Stable Time",
    ))

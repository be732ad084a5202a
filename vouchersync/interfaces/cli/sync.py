"""Voucher sync CLI.

``sync run`` keeps the auto-sync loop alive until interrupted; ``sync once``
and ``sync site`` run a single sweep; ``sync status`` reports the last
recorded sweep.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import click
from rich.console import Console
from rich.table import Table

from vouchersync.infrastructure.db.repositories import SyncRunRepository
from vouchersync.infrastructure.observability import format_prometheus
from vouchersync.infrastructure.omada import AuthError
from vouchersync.interfaces.cli.context import CLIContext, db_option, store_cli_context
from vouchersync.services import (
    CredentialsMissingError,
    SiteNotFoundError,
    SiteSyncResult,
    SweepResult,
)

console = Console()

_STATUS_STYLES = {
    "success": "green",
    "partial": "yellow",
    "cancelled": "magenta",
    "failed": "red",
}


@click.group()
@db_option
@click.pass_context
def sync(ctx: click.Context, db_path: str | None) -> None:
    """Reconcile voucher status with the Omada controller."""

    store_cli_context(ctx, db_path)


def _site_table(sites: list[SiteSyncResult], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Site", style="bold")
    table.add_column("Groups", justify="right")
    table.add_column("Vouchers", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Sales", justify="right")
    table.add_column("Issues")
    for site in sites:
        table.add_row(
            site.site_name,
            str(len(site.groups)),
            str(site.vouchers_seen),
            str(site.vouchers_updated),
            str(site.sales_created),
            "; ".join(site.all_errors) or ("partial" if site.partial else ""),
        )
    return table


def _print_sweep(result: SweepResult) -> None:
    style = _STATUS_STYLES.get(result.status, "white")
    console.print(
        f"[{style}]Sweep {result.status}[/{style}] in {result.duration_seconds:.1f}s: "
        f"{result.sites_processed} sites synced, {result.sites_failed} failed, "
        f"{result.vouchers_updated} vouchers updated, {result.sales_created} sales recorded."
    )
    if result.sites:
        console.print(_site_table(result.sites, "Sites"))
    for error in result.errors:
        console.print(f"[red]- {error}[/red]")


@sync.command("once")
@click.option(
    "--metrics", "show_metrics", is_flag=True, help="Print Prometheus metrics afterwards."
)
@click.pass_context
def once_cmd(ctx: click.Context, show_metrics: bool) -> None:
    """Run a single sweep over all active sites."""

    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.sync_service()
    with console.status("Syncing vouchers..."):
        result = service.sync_all_sites()
    _print_sweep(result)
    if show_metrics:
        click.echo(format_prometheus())
    if result.status == "failed":
        ctx.exit(1)


@sync.command("site")
@click.argument("site_id")
@click.pass_context
def site_cmd(ctx: click.Context, site_id: str) -> None:
    """Sync the site SITE_ID right now."""

    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.sync_service()
    try:
        with console.status(f"Syncing site {site_id}..."):
            result = service.force_site_sync(site_id)
    except SiteNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        ctx.exit(1)
    except (CredentialsMissingError, AuthError) as exc:
        console.print(f"[red]Cannot sync site {site_id}: {exc}[/red]")
        ctx.exit(1)
    console.print(_site_table([result], f"Site {result.site_name}"))


@sync.command("status")
@click.pass_context
def status_cmd(ctx: click.Context) -> None:
    """Show the sync interval and the most recent sweep."""

    cli_context: CLIContext = ctx.obj["cli_context"]
    with cli_context.repository(SyncRunRepository) as runs:
        latest = runs.latest()
    status = cli_context.sync_service().get_status()

    table = Table(title="Voucher sync")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Interval", f"{status['sync_interval_ms'] // 1000}s")
    if latest is None:
        table.add_row("Last sweep", "never")
    else:
        table.add_row("Last sweep", str(latest["finished_at"] or latest["started_at"]))
        table.add_row("Status", str(latest["status"]))
        table.add_row("Sites synced", str(latest["sites_processed"]))
        table.add_row("Sites failed", str(latest["sites_failed"]))
        table.add_row("Vouchers updated", str(latest["vouchers_updated"]))
        table.add_row("Sales recorded", str(latest["sales_created"]))
        if latest["notes"]:
            table.add_row("Errors", str(latest["notes"]))
    console.print(table)


@sync.command("run")
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Seconds between sweeps (defaults to the configured interval).",
)
@click.pass_context
def run_cmd(ctx: click.Context, interval: float | None) -> None:
    """Run sweeps on an interval until interrupted with Ctrl-C."""

    cli_context: CLIContext = ctx.obj["cli_context"]
    settings = cli_context.settings
    if interval is not None:
        settings = replace(settings, sync_interval_seconds=interval)
    service = replace(cli_context, settings=settings).sync_service()

    async def _run() -> None:
        await service.start_auto_sync()
        try:
            await asyncio.Event().wait()
        finally:
            await service.stop_auto_sync()

    console.print(
        f"[bold]Auto-sync every {settings.sync_interval_seconds:.0f}s[/bold] "
        f"using {cli_context.db_path} (Ctrl-C to stop)"
    )
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Auto-sync stopped.[/yellow]")

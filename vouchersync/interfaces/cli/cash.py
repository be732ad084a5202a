"""Cash closure CLI.

Closing a site counts the vouchers the controller reports as consumed,
values them at their group price and, unless ``--keep-remote`` is given,
deletes them from the controller.
"""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from vouchersync.infrastructure.omada import AuthError
from vouchersync.interfaces.cli.context import CLIContext, db_option, store_cli_context
from vouchersync.services import CredentialsMissingError, SiteNotFoundError

console = Console()


@click.group()
@db_option
@click.pass_context
def cash(ctx: click.Context, db_path: str | None) -> None:
    """Close the cash register of a site."""

    store_cli_context(ctx, db_path)


@cash.command("close")
@click.argument("site_id")
@click.option("--seller", "seller_id", default=None, help="Seller closing the register.")
@click.option(
    "--keep-remote",
    is_flag=True,
    help="Do not delete the counted vouchers from the controller.",
)
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def close_cmd(
    ctx: click.Context,
    site_id: str,
    seller_id: str | None,
    keep_remote: bool,
    yes: bool,
) -> None:
    """Close the register of SITE_ID."""

    if not keep_remote and not yes:
        click.confirm(
            "Consumed vouchers will be deleted from the Omada controller. Continue?",
            abort=True,
        )
    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.cash_closure_service()
    try:
        with console.status(f"Closing site {site_id}..."):
            closure = service.close_site(
                site_id, seller_id, delete_remote=not keep_remote
            )
    except (SiteNotFoundError, CredentialsMissingError, AuthError) as exc:
        console.print(f"[red]{exc}[/red]")
        ctx.exit(1)

    table = Table(title=f"Cash closure {closure.closure_date}")
    table.add_column("Group", style="bold")
    table.add_column("Unit price", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("In use", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Deleted", justify="right")
    for entry in closure.summary:
        table.add_row(
            entry.get("group_name") or entry["group_id"],
            entry["unit_price"],
            str(entry["used_count"]),
            str(entry["in_use_count"]),
            entry["amount"],
            str(entry["deleted_count"]),
        )
    console.print(table)
    console.print(
        f"[green]Closed:[/green] {closure.total_vouchers_used} used, "
        f"{closure.total_vouchers_in_use} in use, total [bold]{closure.total_amount}[/bold]"
    )


@cash.command("list")
@click.argument("site_id")
@click.pass_context
def list_cmd(ctx: click.Context, site_id: str) -> None:
    """List previous closures of SITE_ID, newest first."""

    cli_context: CLIContext = ctx.obj["cli_context"]
    closures = cli_context.cash_closure_service().list_closures(site_id)
    if not closures:
        console.print("[yellow]No cash closures found.[/yellow]")
        return

    table = Table(title=f"Cash closures for {site_id}")
    table.add_column("Date", style="bold")
    table.add_column("Seller")
    table.add_column("Used", justify="right")
    table.add_column("In use", justify="right")
    table.add_column("Total", justify="right")
    for closure in closures:
        table.add_row(
            closure.closure_date,
            closure.seller_id or "",
            str(closure.total_vouchers_used),
            str(closure.total_vouchers_in_use),
            str(closure.total_amount),
        )
    console.print(table)

"""Sales listing CLI."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from vouchersync.domain.models import PAYMENT_METHOD_AUTO_SYNC, PAYMENT_METHOD_MANUAL
from vouchersync.infrastructure.db.repositories import SaleRepository
from vouchersync.interfaces.cli.context import CLIContext, db_option, store_cli_context

console = Console()


@click.group()
@db_option
@click.pass_context
def sales(ctx: click.Context, db_path: str | None) -> None:
    """Inspect recorded sales."""

    store_cli_context(ctx, db_path)


@sales.command("list")
@click.option("--site", "site_id", default=None, help="Only sales of this site.")
@click.option(
    "--payment-method",
    type=click.Choice([PAYMENT_METHOD_AUTO_SYNC, PAYMENT_METHOD_MANUAL]),
    default=None,
    help="Only sales recorded by sync or by hand.",
)
@click.option("--limit", type=int, default=100, show_default=True)
@click.pass_context
def list_cmd(
    ctx: click.Context, site_id: str | None, payment_method: str | None, limit: int
) -> None:
    """List sales, newest first."""

    cli_context: CLIContext = ctx.obj["cli_context"]
    with cli_context.repository(SaleRepository) as repository:
        rows = repository.list(site_id=site_id, payment_method=payment_method, limit=limit)

    if not rows:
        console.print("[yellow]No sales found.[/yellow]")
        return

    table = Table(title="Sales")
    table.add_column("Date", style="bold")
    table.add_column("Voucher")
    table.add_column("Seller")
    table.add_column("Amount", justify="right")
    table.add_column("Source")
    for sale in rows:
        table.add_row(
            sale.sale_date.strftime("%Y-%m-%d %H:%M") if sale.sale_date else "",
            sale.voucher_id,
            sale.seller_id or "",
            f"{sale.amount} {sale.currency}",
            sale.payment_method,
        )
    console.print(table)

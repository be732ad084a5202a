"""Entry point for the vouchersync CLI.

Aggregates the command groups of ``vouchersync.interfaces.cli``. Run it as
``vouchersync`` (console script) or ``python -m vouchersync.interfaces.cli``.
"""

import logging

import click

from vouchersync.infrastructure.observability import configure_logging

from .cash import cash
from .sales import sales
from .sync import sync


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.json (defaults to the one at the repository root).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str) -> None:
    """Omada voucher status reconciliation."""
    configure_logging(level=getattr(logging, log_level.upper()))
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


cli.add_command(sync)
cli.add_command(cash)
cli.add_command(sales)


if __name__ == "__main__":
    cli()

"""Billing CLI.

This module provides the command-line interface of the billing engine:
billing summaries, invoice creation, manual exports and export history.
"""

import sys

import click

from msp_billing import __version__
from msp_billing.cli.commands.accounting import check_connection, list_contacts
from msp_billing.cli.commands.customers import link_customer
from msp_billing.cli.commands.database import init_db
from msp_billing.cli.commands.exports import list_exports, refresh_status
from msp_billing.cli.commands.invoice import complete_invoice, create_invoice, record_export
from msp_billing.cli.commands.summary import summary
from msp_billing.cli.utils.formatters import format_error
from msp_billing.config.logging_config import LoggingConfig, configure_logging
from msp_billing.config.settings import get_config


@click.group(help="Billing CLI - Reconcile unbilled work into customer invoices")
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Show full stack traces on errors")
@click.pass_context
def cli(ctx: click.Context, debug: bool):
    """Billing CLI main entry point."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


# Register commands
cli.add_command(init_db)
cli.add_command(summary)
cli.add_command(create_invoice)
cli.add_command(record_export)
cli.add_command(complete_invoice)
cli.add_command(list_exports)
cli.add_command(refresh_status)
cli.add_command(link_customer)
cli.add_command(list_contacts)
cli.add_command(check_connection)


def main():
    """Main entry point for the CLI."""
    try:
        logging_config = LoggingConfig.from_settings(get_config())
    except ValueError as e:
        click.echo(format_error(f"Configuration Error: {e}"), err=True)
        sys.exit(1)

    configure_logging(logging_config)
    cli()


if __name__ == "__main__":
    main()

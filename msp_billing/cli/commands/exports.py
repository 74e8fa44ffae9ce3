"""Export history and status refresh commands."""

import json
from typing import Optional

import click

from msp_billing.api.billing_api import create_billing_api
from msp_billing.cli.error_handlers import with_error_handling
from msp_billing.cli.utils.formatters import (
    format_hours,
    format_info,
    format_money,
    format_success,
    format_table,
    format_warning,
)
from msp_billing.config.settings import get_config


@click.command(name="exports")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Number of records to show (default: EXPORTS_DEFAULT_LIMIT)",
)
@click.option("--json", "as_json", is_flag=True, help="Print the records as JSON")
@click.pass_context
def list_exports(ctx: click.Context, limit: Optional[int], as_json: bool):
    """List recent export records, newest first.

    Example:
        billing-cli exports --limit 10
    """
    with with_error_handling(ctx.obj["debug"]):
        settings = get_config()
        api = create_billing_api(settings)

        if as_json:
            click.echo(json.dumps(api.exports(limit), indent=2))
            return

        records = api.ledger.list_recent(
            limit if limit is not None else settings.exports_default_limit
        )
        if not records:
            click.echo(format_info("No exports recorded yet."))
            return

        headers = ["Created", "Customer", "Period", "Hours", "Amount", "Invoice", "Status"]
        rows = [
            [
                f"{record.created_at:%Y-%m-%d %H:%M}",
                record.customer_name or record.customer_id,
                f"{record.period_start} - {record.period_end}",
                format_hours(record.total_hours),
                format_money(record.total_amount, settings.currency),
                record.invoice_number or "-",
                record.status.value,
            ]
            for record in records
        ]
        click.echo(format_table(headers, rows))


@click.command(name="refresh-status")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Number of open invoices to check (default: EXPORTS_DEFAULT_LIMIT)",
)
@click.pass_context
def refresh_status(ctx: click.Context, limit: Optional[int]):
    """Pull invoice statuses from the accounting system.

    Example:
        billing-cli refresh-status
    """
    with with_error_handling(ctx.obj["debug"]):
        settings = get_config()
        api = create_billing_api(settings)

        result = api.coordinator.refresh_statuses(
            limit if limit is not None else settings.exports_default_limit
        )

        click.echo(
            format_success(
                f"Checked {result.total} invoices: {result.refreshed} updated, "
                f"{result.unchanged} unchanged"
            )
        )
        if result.failed:
            click.echo(format_warning(f"{result.failed} could not be checked:"))
            for record_id, message in result.failures.items():
                click.echo(f"  {record_id}: {message}")

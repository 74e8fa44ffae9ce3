"""Billing summary command."""

import json
from typing import Optional

import click

from msp_billing.api.billing_api import create_billing_api
from msp_billing.api.schemas import BillingGroupPayload
from msp_billing.cli.error_handlers import with_error_handling
from msp_billing.cli.utils.dates import period_options, resolve_period
from msp_billing.cli.utils.formatters import (
    format_hours,
    format_info,
    format_money,
    format_table,
)
from msp_billing.config.settings import get_config


@click.command(name="summary")
@period_options
@click.option(
    "--customer",
    "customer_id",
    type=str,
    default=None,
    help="Only show this customer (optional)",
)
@click.option("--show-entries", is_flag=True, help="List the entries of each group")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
@click.pass_context
def summary(
    ctx: click.Context,
    month: Optional[str],
    start_date: Optional[str],
    end_date: Optional[str],
    customer_id: Optional[str],
    show_entries: bool,
    as_json: bool,
):
    """Show unbilled work per customer for a period.

    Example:
        billing-cli summary --month 2024-10
        billing-cli summary --start-date 2024-10-01 --end-date 2024-10-15 --json
    """
    with with_error_handling(ctx.obj["debug"]):
        period_start, period_end = resolve_period(month, start_date, end_date)
        settings = get_config()
        api = create_billing_api(settings)

        groups = api.aggregator.aggregate(period_start, period_end, customer_id=customer_id)

        if as_json:
            payload = [BillingGroupPayload.from_group(g).to_dict() for g in groups]
            click.echo(json.dumps(payload, indent=2))
            return

        if not groups:
            click.echo(
                format_info(f"No unbilled entries between {period_start} and {period_end}")
            )
            return

        headers = ["Customer", "Entries", "Hours", "Rate", "Amount", "Eligibility"]
        rows = [
            [
                group.customer_name,
                str(len(group.entries)),
                format_hours(group.total_hours),
                format_money(group.hourly_rate, settings.currency),
                format_money(group.total_amount, settings.currency),
                group.eligibility.value,
            ]
            for group in groups
        ]
        click.echo(format_info(f"Unbilled work from {period_start} to {period_end}"))
        click.echo(format_table(headers, rows))

        if show_entries:
            for group in groups:
                click.echo()
                click.echo(f"{group.customer_name} ({group.customer_id}):")
                for entry in group.entries:
                    click.echo(
                        f"  {entry.id}  {entry.occurred_at:%Y-%m-%d %H:%M}  "
                        f"{entry.duration_seconds / 3600:6.2f} h  "
                        f"{entry.description or ''}"
                    )

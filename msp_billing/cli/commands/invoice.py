"""Billing commands: create invoices and record manual exports."""

from typing import List, Optional, Tuple

import click

from msp_billing.api.billing_api import create_billing_api
from msp_billing.cli.error_handlers import BatchError, InputError, with_error_handling
from msp_billing.cli.utils.dates import period_options, resolve_period
from msp_billing.cli.utils.formatters import (
    format_error,
    format_hours,
    format_info,
    format_money,
    format_success,
    format_warning,
)
from msp_billing.cli.utils.progress import customer_progress
from msp_billing.config.settings import get_config
from msp_billing.errors import BillingError


@click.command(name="create-invoice")
@period_options
@click.option(
    "--customer",
    "customer_ids",
    multiple=True,
    help="Customer to invoice (repeatable)",
)
@click.option(
    "--all-eligible",
    is_flag=True,
    help="Invoice every auto-invoiceable customer of the period",
)
@click.option(
    "--entry",
    "entry_ids",
    multiple=True,
    help="Only invoice these entries (repeatable, single customer only)",
)
@click.pass_context
def create_invoice(
    ctx: click.Context,
    month: Optional[str],
    start_date: Optional[str],
    end_date: Optional[str],
    customer_ids: Tuple[str, ...],
    all_eligible: bool,
    entry_ids: Tuple[str, ...],
):
    """Create invoices in the accounting system.

    Each customer is invoiced in its own operation; a failure for one
    customer does not undo or block the others.

    Example:
        billing-cli create-invoice --month 2024-10 --customer cust-1
        billing-cli create-invoice --month 2024-10 --all-eligible
    """
    with with_error_handling(ctx.obj["debug"]):
        period_start, period_end = resolve_period(month, start_date, end_date)
        if bool(customer_ids) == all_eligible:
            raise InputError("Pass either --customer or --all-eligible")
        if entry_ids and len(customer_ids) != 1:
            raise InputError("--entry requires exactly one --customer")

        settings = get_config()
        api = create_billing_api(settings)
        coordinator = api.coordinator

        if all_eligible:
            groups = api.aggregator.aggregate(period_start, period_end)
            targets = [g.customer_id for g in groups if g.is_auto_invoiceable]
            if not targets:
                click.echo(format_info("No auto-invoiceable customers in this period"))
                return
        else:
            targets = list(customer_ids)

        if len(targets) == 1:
            result = coordinator.create_invoice(
                targets[0], period_start, period_end, entry_ids or None
            )
            click.echo(
                format_success(
                    f"Invoice {result.invoice_number} created: "
                    f"{len(result.record.entry_ids)} entries, "
                    f"{format_hours(result.record.total_hours)}, "
                    f"{format_money(result.record.total_amount, settings.currency)}"
                )
            )
            return

        created: List[str] = []
        failures: List[Tuple[str, BillingError]] = []
        with customer_progress(targets, "Creating invoices") as customers:
            for customer_id in customers:
                try:
                    result = coordinator.create_invoice(
                        customer_id, period_start, period_end
                    )
                    created.append(f"{customer_id}: {result.invoice_number}")
                except BillingError as e:
                    failures.append((customer_id, e))

        click.echo()
        for line in created:
            click.echo(format_success(line))
        for customer_id, error in failures:
            click.echo(format_error(f"{customer_id}: {error.message}"))
            if error.recovery_hint:
                click.echo(format_warning(f"  Hint: {error.recovery_hint}"))

        if failures:
            raise BatchError(
                f"{len(failures)} of {len(targets)} invoices failed",
                recovery_hint="Re-run the summary and retry the failed customers",
            )


@click.command(name="record-export")
@period_options
@click.option("--customer", "customer_id", required=True, help="Customer to mark as billed")
@click.option(
    "--entry",
    "entry_ids",
    multiple=True,
    help="Only mark these entries (repeatable; all unbilled entries if omitted)",
)
@click.pass_context
def record_export(
    ctx: click.Context,
    month: Optional[str],
    start_date: Optional[str],
    end_date: Optional[str],
    customer_id: str,
    entry_ids: Tuple[str, ...],
):
    """Mark a customer's work as billed without creating an invoice.

    Example:
        billing-cli record-export --month 2024-10 --customer cust-2
    """
    with with_error_handling(ctx.obj["debug"]):
        period_start, period_end = resolve_period(month, start_date, end_date)
        settings = get_config()
        api = create_billing_api(settings)

        record = api.coordinator.record_manual_export(
            customer_id, period_start, period_end, entry_ids or None
        )
        click.echo(
            format_success(
                f"Recorded export {record.id}: {len(record.entry_ids)} entries, "
                f"{format_hours(record.total_hours)}, "
                f"{format_money(record.total_amount, settings.currency)}"
            )
        )


@click.command(name="complete-invoice")
@period_options
@click.option("--customer", "customer_id", required=True, help="Customer the invoice bills")
@click.option("--invoice-id", required=True, help="Accounting-system invoice id")
@click.option("--invoice-number", required=True, help="Accounting-system invoice number")
@click.option(
    "--entry",
    "entry_ids",
    multiple=True,
    help="Entries the invoice covers (repeatable; all unbilled entries if omitted)",
)
@click.pass_context
def complete_invoice(
    ctx: click.Context,
    month: Optional[str],
    start_date: Optional[str],
    end_date: Optional[str],
    customer_id: str,
    invoice_id: str,
    invoice_number: str,
    entry_ids: Tuple[str, ...],
):
    """Record an invoice that was created but not recorded locally.

    Use the command printed by a failed create-invoice. Running it again
    for an invoice that is already recorded changes nothing.

    Example:
        billing-cli complete-invoice --month 2024-10 --customer cust-1 \\
            --invoice-id 1001 --invoice-number RE-1001
    """
    with with_error_handling(ctx.obj["debug"]):
        period_start, period_end = resolve_period(month, start_date, end_date)
        settings = get_config()
        api = create_billing_api(settings)

        record = api.complete_invoice_record(
            customer_id,
            entry_ids or None,
            period_start,
            period_end,
            invoice_id,
            invoice_number,
        )
        click.echo(
            format_success(
                f"Invoice {record['invoiceNumber']} recorded as export "
                f"{record['id']}: {len(record['entryIds'])} entries, "
                f"{format_hours(record['totalHours'])}"
            )
        )

"""Customer link command."""

from typing import Optional

import click

from msp_billing.api.billing_api import create_billing_api
from msp_billing.cli.error_handlers import InputError, with_error_handling
from msp_billing.cli.utils.formatters import format_success
from msp_billing.config.settings import get_config


@click.command(name="link-customer")
@click.argument("customer_id")
@click.argument("external_id", required=False)
@click.option("--unlink", is_flag=True, help="Remove the accounting link")
@click.pass_context
def link_customer(
    ctx: click.Context, customer_id: str, external_id: Optional[str], unlink: bool
):
    """Link a customer to an accounting-system contact.

    Example:
        billing-cli link-customer cust-1 4711
        billing-cli link-customer cust-1 --unlink
    """
    with with_error_handling(ctx.obj["debug"]):
        if unlink == (external_id is not None):
            raise InputError("Pass either an EXTERNAL_ID or --unlink")

        api = create_billing_api(get_config())
        customer = api.link_customer(customer_id, None if unlink else external_id)

        if customer["linked"]:
            click.echo(
                format_success(
                    f"{customer['displayName']} linked to contact "
                    f"{customer['externalLink']}"
                )
            )
        else:
            click.echo(format_success(f"{customer['displayName']} unlinked"))

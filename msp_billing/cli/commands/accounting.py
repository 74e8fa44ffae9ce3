"""Accounting-system commands: connection check and contact lookup."""

import json
from typing import Optional

import click

from msp_billing.api.billing_api import create_billing_api
from msp_billing.cli.error_handlers import with_error_handling
from msp_billing.cli.utils.formatters import format_info, format_success, format_table
from msp_billing.config.settings import get_config


@click.command(name="test-connection")
@click.pass_context
def check_connection(ctx: click.Context):
    """Check the accounting API token.

    Example:
        billing-cli test-connection
    """
    with with_error_handling(ctx.obj["debug"]):
        api = create_billing_api(get_config())
        result = api.test_connection()
        click.echo(format_success(f"Connected to {result['accountName']}"))


@click.command(name="contacts")
@click.option("--search", help="Only contacts whose name contains this text")
@click.option("--json", "as_json", is_flag=True, help="Print the contacts as JSON")
@click.pass_context
def list_contacts(ctx: click.Context, search: Optional[str], as_json: bool):
    """List accounting-system contacts to use with link-customer.

    Example:
        billing-cli contacts --search acme
    """
    with with_error_handling(ctx.obj["debug"]):
        api = create_billing_api(get_config())
        contacts = api.contacts()
        if search:
            needle = search.casefold()
            contacts = [c for c in contacts if needle in c["name"].casefold()]

        if as_json:
            click.echo(json.dumps(contacts, indent=2))
            return
        if not contacts:
            click.echo(format_info("No matching contacts."))
            return

        headers = ["Contact ID", "Name", "Customer No.", "Category", "Email"]
        rows = [
            [
                contact["contactId"],
                contact["name"],
                contact["customerNumber"] or "-",
                contact["category"] or "-",
                contact["email"] or "-",
            ]
            for contact in contacts
        ]
        click.echo(format_table(headers, rows))

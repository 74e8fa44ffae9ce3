"""Database setup command."""

import click

from msp_billing.cli.error_handlers import with_error_handling
from msp_billing.cli.utils.formatters import format_info, format_success
from msp_billing.config.settings import get_config
from msp_billing.db.engine import create_db_engine, create_tables


@click.command(name="init-db")
@click.pass_context
def init_db(ctx: click.Context):
    """Create the billing tables if they do not exist.

    Example:
        billing-cli init-db
    """
    with with_error_handling(ctx.obj["debug"]):
        settings = get_config()
        engine = create_db_engine(settings.database_url, echo=settings.database_echo)
        try:
            click.echo(
                format_info(
                    f"Initializing {engine.url.render_as_string(hide_password=True)}"
                )
            )
            create_tables(engine)
        finally:
            engine.dispose()

        click.echo(format_success("Database ready"))

"""Error handling for CLI commands."""

import sys
import traceback
from typing import Optional

import click
from pydantic import ValidationError

from msp_billing.cli.utils.formatters import format_error, format_info, format_warning
from msp_billing.errors import (
    AlreadyBilled,
    BillingError,
    CustomerNotFound,
    EntryLocked,
    ExternalServiceError,
    InvalidRange,
    NoEntriesSelected,
    NotConfigured,
    NotLinked,
    PersistenceError,
)


class CLIError(Exception):
    """Base exception for CLI errors with user-friendly messages."""

    def __init__(self, message: str, recovery_hint: Optional[str] = None):
        """
        Initialize CLI error.

        Args:
            message: Error message to display
            recovery_hint: Optional hint for recovering from the error
        """
        self.message = message
        self.recovery_hint = recovery_hint
        super().__init__(message)


class ConfigurationError(CLIError):
    """Error related to configuration issues."""

    pass


class InputError(CLIError):
    """Error in command-line input (dates, options)."""

    pass


class BatchError(CLIError):
    """Some operations of a multi-customer run failed."""

    pass


# Exit code and title per error class, most specific first
BILLING_ERROR_CODES = [
    (ConfigurationError, 1, "Configuration Error"),
    (NotConfigured, 1, "Configuration Error"),
    (InputError, 2, "Input Error"),
    (InvalidRange, 2, "Invalid Period"),
    (CustomerNotFound, 3, "Customer Not Found"),
    (NotLinked, 4, "Customer Not Invoiceable"),
    (NoEntriesSelected, 5, "Nothing To Bill"),
    (AlreadyBilled, 6, "Already Billed"),
    (ExternalServiceError, 7, "Accounting System Error"),
    (PersistenceError, 8, "Database Error"),
    (EntryLocked, 9, "Entry Locked"),
    (BatchError, 10, "Partial Failure"),
]


def _echo_hint(hint: Optional[str]) -> None:
    if hint:
        click.echo(format_warning(f"Hint: {hint}"))


def handle_cli_error(error: Exception, debug: bool = False) -> int:
    """
    Handle CLI errors with user-friendly messages.

    Args:
        error: The exception that occurred
        debug: Whether to show full stack trace

    Returns:
        Exit code (1-9 for billing and input errors, 130 on cancel,
        255 for anything unexpected)
    """
    if isinstance(error, (CLIError, BillingError)):
        for error_class, exit_code, title in BILLING_ERROR_CODES:
            if isinstance(error, error_class):
                break
        else:
            exit_code, title = 10, "Billing Error"

        click.echo(format_error(f"{title}: {error.message}"))

        if isinstance(error, AlreadyBilled) and error.entry_ids:
            click.echo(format_info(f"Entries: {', '.join(error.entry_ids)}"))
        if isinstance(error, ExternalServiceError) and error.outcome_unknown:
            click.echo(
                format_warning(
                    "The invoice may have been created; check the accounting system"
                )
            )
        if isinstance(error, PersistenceError) and error.invoice_id:
            click.echo(
                format_warning(
                    f"Invoice {error.invoice_number} (id {error.invoice_id}) exists "
                    f"in the accounting system but is not recorded locally"
                )
            )

        _echo_hint(error.recovery_hint)
        if isinstance(error, BillingError) and error.retryable:
            click.echo(format_info("This operation can be retried"))
        return exit_code

    # Invalid settings in the environment or .env file
    elif isinstance(error, ValidationError):
        click.echo(format_error(f"Configuration Error: {error}"))
        _echo_hint("Check the environment variables and the .env file")
        return 1

    # Handle click.Abort (user cancellation)
    elif isinstance(error, click.Abort):
        click.echo(format_warning("\nOperation cancelled by user"))
        return 130  # Standard exit code for SIGINT

    # Handle generic exceptions
    else:
        click.echo(format_error(f"Unexpected Error: {type(error).__name__}"))
        click.echo(str(error))

        if debug:
            click.echo("\nFull stack trace:")
            click.echo(
                "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                )
            )
        else:
            click.echo(format_warning("\nRun with --debug flag for full stack trace"))

        return 255


def with_error_handling(debug: bool = False):
    """
    Context manager adding standardized error handling to CLI commands.

    Args:
        debug: Whether to show full stack traces

    Returns:
        Context manager that exits with the mapped code on error

    Example:
        @click.command()
        @click.pass_context
        def my_command(ctx):
            with with_error_handling(ctx.obj["debug"]):
                # Command implementation
                pass
    """

    class ErrorHandler:
        """Context manager for error handling."""

        def __init__(self, show_debug: bool):
            self.show_debug = show_debug

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is not None and isinstance(exc_val, Exception):
                exit_code = handle_cli_error(exc_val, self.show_debug)
                sys.exit(exit_code)
            return False  # Don't suppress exceptions

    return ErrorHandler(debug)

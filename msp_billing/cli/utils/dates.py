"""Period selection for CLI commands."""

import datetime as dt
from calendar import monthrange
from typing import Callable, Optional, Tuple

import click

from msp_billing.cli.error_handlers import InputError


def parse_date_input(date_str: str) -> dt.date:
    """Parse date string in YYYY-MM-DD format.

    Args:
        date_str: Date string in YYYY-MM-DD format

    Returns:
        Parsed date object

    Raises:
        InputError: If date format is invalid
    """
    try:
        return dt.datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise InputError(
            f"Invalid date format: {date_str}. Expected YYYY-MM-DD",
            recovery_hint="Use ISO dates such as 2024-10-31",
        )


def month_bounds(month: str) -> Tuple[dt.date, dt.date]:
    """First and last day of a YYYY-MM month.

    Raises:
        InputError: If month format is invalid
    """
    try:
        month_date = dt.datetime.strptime(month, "%Y-%m")
    except ValueError:
        raise InputError(f"Invalid month format: {month}. Expected YYYY-MM")

    _, last_day = monthrange(month_date.year, month_date.month)
    return (
        dt.date(month_date.year, month_date.month, 1),
        dt.date(month_date.year, month_date.month, last_day),
    )


def resolve_period(
    month: Optional[str], start_date: Optional[str], end_date: Optional[str]
) -> Tuple[dt.date, dt.date]:
    """Turn the period options into an inclusive date range.

    Exactly one of --month or --start-date/--end-date must be given.

    Raises:
        InputError: If the options are missing, combined or malformed
    """
    if month is not None and (start_date is not None or end_date is not None):
        raise InputError(
            "Cannot use multiple date options. Choose ONE of: "
            "--month or --start-date/--end-date"
        )

    if month is not None:
        return month_bounds(month)

    if start_date is None and end_date is None:
        raise InputError(
            "No period given",
            recovery_hint="Pass --month YYYY-MM or --start-date/--end-date",
        )

    if (start_date is None) != (end_date is None):
        raise InputError("--start-date and --end-date must be used together")

    return parse_date_input(start_date), parse_date_input(end_date)


def period_options(f: Callable) -> Callable:
    """Add --month, --start-date and --end-date to a command."""
    f = click.option(
        "--end-date",
        type=str,
        default=None,
        help="Last day of the period (YYYY-MM-DD). Must be used with --start-date.",
    )(f)
    f = click.option(
        "--start-date",
        type=str,
        default=None,
        help="First day of the period (YYYY-MM-DD). Must be used with --end-date.",
    )(f)
    f = click.option(
        "--month",
        type=str,
        default=None,
        help="Month to bill (YYYY-MM). Cannot be used with --start-date/--end-date.",
    )(f)
    return f

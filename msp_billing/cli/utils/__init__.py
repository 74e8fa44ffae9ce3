"""CLI utility functions."""

from msp_billing.cli.utils.formatters import (
    format_error,
    format_hours,
    format_info,
    format_money,
    format_success,
    format_table,
    format_warning,
)
from msp_billing.cli.utils.progress import customer_progress

__all__ = [
    "format_error",
    "format_hours",
    "format_info",
    "format_money",
    "format_success",
    "format_table",
    "format_warning",
    "customer_progress",
]

"""Output formatting utilities for CLI."""

from decimal import Decimal
from typing import List, Optional

import click


def format_success(message: str) -> str:
    """Format a success message with green color.

    Args:
        message: The success message to format

    Returns:
        Formatted success message with color
    """
    return click.style(f"✓ {message}", fg="green", bold=True)


def format_error(message: str) -> str:
    """Format an error message with red color.

    Args:
        message: The error message to format

    Returns:
        Formatted error message with color
    """
    return click.style(f"✗ {message}", fg="red", bold=True)


def format_warning(message: str) -> str:
    """Format a warning message with yellow color.

    Args:
        message: The warning message to format

    Returns:
        Formatted warning message with color
    """
    return click.style(f"⚠ {message}", fg="yellow", bold=True)


def format_info(message: str) -> str:
    """Format an info message with blue color.

    Args:
        message: The info message to format

    Returns:
        Formatted info message with color
    """
    return click.style(f"ℹ {message}", fg="blue")


def format_money(amount: Optional[Decimal], currency: str = "EUR") -> str:
    """Format an amount with two decimals, or "-" when there is none.

    Example:
        >>> format_money(Decimal("150"))
        '150.00 EUR'
    """
    if amount is None:
        return "-"
    return f"{amount:.2f} {currency}"


def format_hours(hours: Decimal) -> str:
    return f"{hours:.2f} h"


def format_table(headers: List[str], rows: List[List[str]], max_width: int = 80) -> str:
    """Format data as a table.

    Args:
        headers: List of column headers
        rows: List of data rows (each row is a list of cell values)
        max_width: Maximum width for each column (default: 80)

    Returns:
        Formatted table as a string
    """
    if not headers:
        return ""

    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[: len(col_widths)]):
            col_widths[i] = max(col_widths[i], len(str(cell)))

    col_widths = [min(w, max_width) for w in col_widths]

    separator = "+" + "+".join("-" * (w + 2) for w in col_widths) + "+"

    def render(cells: List[str]) -> str:
        padded = [
            f" {str(cell)[: col_widths[i]]:<{col_widths[i]}} "
            for i, cell in enumerate(cells[: len(col_widths)])
        ]
        return "|" + "|".join(padded) + "|"

    table_lines = [separator, render(headers), separator]
    if rows:
        table_lines.extend(render(row) for row in rows)
        table_lines.append(separator)

    return "\n".join(table_lines)

"""Billing calculator for billing groups and invoice positions.

This module implements the arithmetic behind the Aggregator and the
line items submitted to the accounting system:
- Converting integer seconds to decimal hours
- Calculating billed amounts from seconds and an hourly rate
- Classifying eligibility for automated invoicing
- Building invoice line items per entry or per group

Amounts are computed from the exact duration and rounded to cents once,
using ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import List, Literal, Optional, Sequence

from msp_billing.models.billing import Eligibility, LineItem
from msp_billing.models.entry import TimeEntry

CENT = Decimal("0.01")
SECONDS_PER_HOUR = Decimal("3600")

LineItemMode = Literal["per_entry", "aggregated"]

DEFAULT_POSITION_NAME = "Service"


def seconds_to_hours(seconds: int) -> Decimal:
    """Convert a duration in seconds to decimal hours with 2 decimal precision.

    Args:
        seconds: Duration in seconds

    Returns:
        Decimal hours (rounded to 2 decimal places)

    Example:
        >>> seconds_to_hours(5400)
        Decimal('1.50')
        >>> seconds_to_hours(600)
        Decimal('0.17')
    """
    hours = Decimal(seconds) / SECONDS_PER_HOUR
    return hours.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_amount(
    total_seconds: int, hourly_rate: Optional[Decimal]
) -> Optional[Decimal]:
    """Calculate the billed amount for a duration.

    Args:
        total_seconds: Billed duration in seconds
        hourly_rate: Hourly rate, or None when no rate is configured

    Returns:
        Amount rounded to cents, or None when there is no rate. A missing
        rate never yields zero.

    Example:
        >>> calculate_amount(5400, Decimal("100"))
        Decimal('150.00')
        >>> calculate_amount(7200, None) is None
        True
    """
    if hourly_rate is None:
        return None
    amount = Decimal(total_seconds) / SECONDS_PER_HOUR * hourly_rate
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def classify_eligibility(
    external_link: Optional[str], hourly_rate: Optional[Decimal]
) -> Eligibility:
    """Decide whether a customer's group can be invoiced automatically.

    Args:
        external_link: Accounting-system contact id, if linked
        hourly_rate: Hourly rate, if configured

    Returns:
        AUTO_INVOICEABLE if both are present, MANUAL_ONLY otherwise
    """
    if external_link is not None and hourly_rate is not None:
        return Eligibility.AUTO_INVOICEABLE
    return Eligibility.MANUAL_ONLY


def describe_entry(entry: TimeEntry) -> str:
    """Build the position text for one entry.

    Ticket-linked entries are named after the ticket, project-linked
    entries after the project, anything else after its description.

    Example:
        >>> describe_entry(entry)  # ticket_number="T-42", ticket_title="VPN down"
        'T-42: VPN down'
    """
    if entry.ticket_number:
        return (
            f"{entry.ticket_number}: "
            f"{entry.ticket_title or entry.description or 'Support'}"
        )
    if entry.project_name:
        return f"{entry.project_name}: {entry.description or 'Work time'}"
    return entry.description or DEFAULT_POSITION_NAME


def build_line_items(
    entries: Sequence[TimeEntry],
    hourly_rate: Decimal,
    mode: LineItemMode = "per_entry",
    aggregated_name: str = DEFAULT_POSITION_NAME,
) -> List[LineItem]:
    """Derive invoice positions from entries.

    Args:
        entries: Entries to invoice, in invoice order
        hourly_rate: Price per hour
        mode: "per_entry" for one position per entry, "aggregated" for a
            single position covering all entries
        aggregated_name: Position text in aggregated mode

    Returns:
        List of line items (empty if there are no entries)

    Raises:
        ValueError: If mode is unknown
    """
    if not entries:
        return []

    if mode == "per_entry":
        return [
            LineItem(
                name=describe_entry(entry),
                quantity=seconds_to_hours(entry.duration_seconds),
                unit_price=hourly_rate,
                entry_ids=[entry.id],
            )
            for entry in entries
        ]

    if mode == "aggregated":
        total_seconds = sum(entry.duration_seconds for entry in entries)
        return [
            LineItem(
                name=aggregated_name,
                quantity=seconds_to_hours(total_seconds),
                unit_price=hourly_rate,
                entry_ids=[entry.id for entry in entries],
            )
        ]

    raise ValueError(f"Unknown line item mode: {mode}")

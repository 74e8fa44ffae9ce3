"""Calculator modules for the billing reconciliation engine."""

from msp_billing.calculators.billing_calculator import (
    LineItemMode,
    build_line_items,
    calculate_amount,
    classify_eligibility,
    describe_entry,
    seconds_to_hours,
)

__all__ = [
    "LineItemMode",
    "build_line_items",
    "calculate_amount",
    "classify_eligibility",
    "describe_entry",
    "seconds_to_hours",
]

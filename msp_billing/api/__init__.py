"""Presentation-facing API of the billing engine."""

from msp_billing.api.billing_api import (
    BillingApi,
    create_billing_api,
    create_coordinator,
    parse_iso_date,
)

__all__ = [
    "BillingApi",
    "create_billing_api",
    "create_coordinator",
    "parse_iso_date",
]

"""Billing group data models.

This module defines the Aggregator's read model (BillingGroup), its
eligibility classification, and the line items derived from it for the
external accounting system.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import Field, model_validator

from msp_billing.models.base import FrozenDataModel
from msp_billing.models.entry import TimeEntry


class Eligibility(str, Enum):
    """How a billing group may be billed."""

    AUTO_INVOICEABLE = "auto-invoiceable"
    MANUAL_ONLY = "manual-only"


class BillingGroup(FrozenDataModel):
    """Unbilled entries of one customer within one period.

    Groups are derived on every aggregation request and never persisted.

    Attributes:
        customer_id: Local customer identifier
        customer_name: Customer display name
        external_link: Accounting-system contact id, if linked
        hourly_rate: Hourly rate, or None when not configured
        period_start: First day of the period (inclusive)
        period_end: Last day of the period (inclusive)
        entries: Constituent entries, ordered by occurrence
        total_seconds: Sum of entry durations
        total_amount: total_seconds / 3600 * hourly_rate, or None without a rate
        eligibility: AUTO_INVOICEABLE iff linked and rated, else MANUAL_ONLY

    Example:
        >>> group.total_hours
        Decimal('1.50')
        >>> group.eligibility
        <Eligibility.AUTO_INVOICEABLE: 'auto-invoiceable'>
    """

    customer_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    external_link: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    period_start: dt.date
    period_end: dt.date
    entries: List[TimeEntry] = Field(..., min_length=1)
    total_seconds: int = Field(..., ge=0)
    total_amount: Optional[Decimal] = None
    eligibility: Eligibility

    @model_validator(mode="after")
    def validate_group_invariants(self) -> "BillingGroup":
        """Check the derived fields agree with each other.

        Raises:
            ValueError: If totals, amount or eligibility are inconsistent
        """
        if (self.total_amount is None) != (self.hourly_rate is None):
            raise ValueError("total_amount must be None exactly when hourly_rate is")

        expected = (
            Eligibility.AUTO_INVOICEABLE
            if self.external_link is not None and self.hourly_rate is not None
            else Eligibility.MANUAL_ONLY
        )
        if self.eligibility != expected:
            raise ValueError(
                f"eligibility {self.eligibility.value} does not match "
                f"link/rate (expected {expected.value})"
            )

        if sum(e.duration_seconds for e in self.entries) != self.total_seconds:
            raise ValueError("total_seconds does not match entry durations")

        for entry in self.entries:
            if entry.customer_id != self.customer_id:
                raise ValueError(
                    f"entry {entry.id} belongs to customer {entry.customer_id}"
                )
        return self

    @property
    def entry_ids(self) -> List[str]:
        return [entry.id for entry in self.entries]

    @property
    def total_hours(self) -> Decimal:
        # Local import: the calculators package imports this module
        from msp_billing.calculators.billing_calculator import seconds_to_hours

        return seconds_to_hours(self.total_seconds)

    @property
    def is_auto_invoiceable(self) -> bool:
        return self.eligibility == Eligibility.AUTO_INVOICEABLE


class LineItem(FrozenDataModel):
    """One invoice position submitted to the accounting system.

    Attributes:
        name: Position text
        quantity: Hours, rounded to 2 decimals
        unit_price: Hourly rate
        entry_ids: Entries the position covers
    """

    name: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., ge=0)
    unit_price: Decimal = Field(..., ge=0)
    entry_ids: List[str] = Field(default_factory=list)

    @property
    def net_amount(self) -> Decimal:
        return (self.quantity * self.unit_price).quantize(Decimal("0.01"))

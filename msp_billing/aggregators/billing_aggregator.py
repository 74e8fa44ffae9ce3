"""Billing aggregator for grouping unbilled time entries by customer.

This module builds the billing summary for a period: it reads unbilled
entries from the Entry Store, resolves every customer's link and rate
through the Customer Directory, computes totals and classifies each group's
eligibility for automated invoicing.

The result is a pure read-side projection. It is recomputed on every call,
never cached, and only advisory: correctness of billing is enforced when
the Export Ledger writes.
"""

import datetime as dt
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from msp_billing.calculators.billing_calculator import (
    calculate_amount,
    classify_eligibility,
)
from msp_billing.errors import InvalidRange
from msp_billing.models.billing import BillingGroup
from msp_billing.models.customer import CustomerProfile
from msp_billing.models.entry import TimeEntry
from msp_billing.stores.customer_directory import CustomerDirectory
from msp_billing.stores.entry_store import EntryStore
from msp_billing.utils.logging_utils import log_function_call

logger = logging.getLogger(__name__)


def validate_period(period_start: dt.date, period_end: dt.date) -> None:
    """Ensure a period is a valid inclusive date range.

    Raises:
        InvalidRange: If period_start is after period_end
    """
    if period_start > period_end:
        raise InvalidRange(
            f"Period start {period_start.isoformat()} is after "
            f"period end {period_end.isoformat()}"
        )


def build_group(
    profile: CustomerProfile,
    entries: List[TimeEntry],
    period_start: dt.date,
    period_end: dt.date,
) -> BillingGroup:
    """Build one billing group from a customer's unbilled entries.

    Args:
        profile: Resolved customer link and rate
        entries: The customer's entries, already ordered
        period_start: First day of the period
        period_end: Last day of the period

    Returns:
        BillingGroup with totals and eligibility
    """
    total_seconds = sum(entry.duration_seconds for entry in entries)
    return BillingGroup(
        customer_id=profile.customer_id,
        customer_name=profile.display_name,
        external_link=profile.external_link,
        hourly_rate=profile.hourly_rate,
        period_start=period_start,
        period_end=period_end,
        entries=entries,
        total_seconds=total_seconds,
        total_amount=calculate_amount(total_seconds, profile.hourly_rate),
        eligibility=classify_eligibility(profile.external_link, profile.hourly_rate),
    )


def sort_key(group: BillingGroup):
    """Stable display order: customer name (case-insensitive), then id."""
    return (group.customer_name.casefold(), group.customer_id)


class BillingAggregator:
    """Aggregates unbilled entries into per-customer billing groups.

    Attributes:
        entry_store: Source of unbilled time entries
        customer_directory: Resolves customer links and rates

    Example:
        >>> aggregator = BillingAggregator(entry_store, customer_directory)
        >>> groups = aggregator.aggregate(dt.date(2024, 10, 1), dt.date(2024, 10, 31))
        >>> [g.customer_name for g in groups]
        ['Acme', 'Globex']
    """

    def __init__(self, entry_store: EntryStore, customer_directory: CustomerDirectory):
        self.entry_store = entry_store
        self.customer_directory = customer_directory

    @log_function_call
    def aggregate(
        self,
        period_start: dt.date,
        period_end: dt.date,
        customer_id: Optional[str] = None,
    ) -> List[BillingGroup]:
        """Group unbilled entries in an inclusive date range by customer.

        Customers without unbilled entries in the range never appear. Groups
        are ordered by customer name so repeated calls without intervening
        writes return the same list.

        Args:
            period_start: First day of the period
            period_end: Last day of the period
            customer_id: Restrict to one customer (optional)

        Returns:
            List of BillingGroup ordered by customer name

        Raises:
            InvalidRange: If period_start is after period_end
            PersistenceError: If the stores cannot be read
        """
        validate_period(period_start, period_end)

        entries = self.entry_store.list_unbilled(
            period_start, period_end, customer_id=customer_id
        )
        if not entries:
            logger.info(
                f"No unbilled entries between {period_start} and {period_end}"
            )
            return []

        by_customer: Dict[str, List[TimeEntry]] = OrderedDict()
        for entry in entries:
            by_customer.setdefault(entry.customer_id, []).append(entry)

        profiles = self.customer_directory.resolve_many(by_customer.keys())

        groups = []
        for cust_id, customer_entries in by_customer.items():
            profile = profiles.get(cust_id)
            if profile is None:
                # Entries referencing a deleted customer cannot be billed
                logger.warning(
                    f"Skipping {len(customer_entries)} entries of unknown "
                    f"customer {cust_id}"
                )
                continue
            customer_entries.sort(key=lambda e: (e.occurred_at, e.id))
            groups.append(
                build_group(profile, customer_entries, period_start, period_end)
            )

        groups.sort(key=sort_key)

        logger.info(
            f"Aggregated {len(entries)} unbilled entries into {len(groups)} "
            f"billing groups for {period_start} to {period_end}"
        )
        return groups

    def aggregate_customer(
        self, customer_id: str, period_start: dt.date, period_end: dt.date
    ) -> Optional[BillingGroup]:
        """Return the billing group of one customer, or None if it has no unbilled entries."""
        groups = self.aggregate(period_start, period_end, customer_id=customer_id)
        return groups[0] if groups else None

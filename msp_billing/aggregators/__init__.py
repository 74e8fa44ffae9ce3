"""Aggregator modules for the billing reconciliation engine."""

from msp_billing.aggregators.billing_aggregator import (
    BillingAggregator,
    build_group,
    validate_period,
)

__all__ = ["BillingAggregator", "build_group", "validate_period"]

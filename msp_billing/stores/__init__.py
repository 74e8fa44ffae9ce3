"""Collaborator stores: time entries and customers."""

from msp_billing.stores.customer_directory import CustomerDirectory
from msp_billing.stores.entry_store import EntryStore, period_bounds

__all__ = ["CustomerDirectory", "EntryStore", "period_bounds"]

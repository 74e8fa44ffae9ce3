"""Data models for the billing reconciliation engine.

This package contains Pydantic models for all business entities:
- BaseDataModel / FrozenDataModel: Base classes with common configuration
- TimeEntry: Recorded span of billable work
- CustomerProfile: Customer link and rate as resolved by the directory
- AccountingContact: Contact of the accounting system available for linking
- BillingGroup / Eligibility / LineItem: Aggregator read model
- ExportRecord / ExportStatus / CreatedInvoice: Ledger records
"""

from msp_billing.models.base import BaseDataModel, FrozenDataModel
from msp_billing.models.billing import BillingGroup, Eligibility, LineItem
from msp_billing.models.customer import AccountingContact, CustomerProfile
from msp_billing.models.entry import TimeEntry
from msp_billing.models.export import CreatedInvoice, ExportRecord, ExportStatus

__all__ = [
    "BaseDataModel",
    "FrozenDataModel",
    "TimeEntry",
    "CustomerProfile",
    "AccountingContact",
    "BillingGroup",
    "Eligibility",
    "LineItem",
    "ExportRecord",
    "ExportStatus",
    "CreatedInvoice",
]
